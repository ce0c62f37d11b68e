"""Data models used across the monitor."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any


@dataclass(frozen=True)
class CollectedDraft:
    """Unvalidated code candidate as lifted from one source payload."""

    code: str
    reward: str | None = None
    status: str | None = None
    expires: str | None = None
    first_seen: str | None = None
    url: str | None = None
    notes: str | None = None
    is_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CodeMetadata:
    url: str | None = None
    notes: str | None = None
    discovered_by: str | None = None
    notified_at: str | None = None
    is_fallback: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> "CodeMetadata":
        payload = payload or {}
        return cls(
            url=payload.get("url"),
            notes=payload.get("notes"),
            discovered_by=payload.get("discovered_by"),
            notified_at=payload.get("notified_at"),
            is_fallback=payload.get("is_fallback"),
        )


@dataclass(frozen=True)
class CanonicalCode:
    title: str
    code_text: str
    reward: str
    status: str
    expires_at: str | None
    first_seen_at: str
    sources: tuple[str, ...]
    hash: str
    created_at: str
    updated_at: str
    metadata: CodeMetadata = field(default_factory=CodeMetadata)

    @property
    def is_fallback(self) -> bool:
        return bool(self.metadata.is_fallback)

    @property
    def notified_at(self) -> str | None:
        return self.metadata.notified_at

    def with_metadata(self, **changes: Any) -> "CanonicalCode":
        return replace(self, metadata=replace(self.metadata, **changes))

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "code_text": self.code_text,
            "reward": self.reward,
            "status": self.status,
            "expires_at": self.expires_at,
            "first_seen_at": self.first_seen_at,
            "sources": list(self.sources),
            "hash": self.hash,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "CanonicalCode":
        return cls(
            title=payload["title"],
            code_text=payload["code_text"],
            reward=payload.get("reward") or "Unknown",
            status=payload.get("status") or "Active",
            expires_at=payload.get("expires_at"),
            first_seen_at=payload["first_seen_at"],
            sources=tuple(payload.get("sources") or ()),
            hash=payload["hash"],
            created_at=payload["created_at"],
            updated_at=payload.get("updated_at") or payload["created_at"],
            metadata=CodeMetadata.from_dict(payload.get("metadata")),
        )


@dataclass(frozen=True)
class DeliveryAttempt:
    id: str
    code_hash: str
    status: str
    destination: str
    created_at: str
    response_status: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "DeliveryAttempt":
        return cls(
            id=payload["id"],
            code_hash=payload["code_hash"],
            status=payload["status"],
            destination=payload["destination"],
            created_at=payload["created_at"],
            response_status=payload.get("response_status"),
            error=payload.get("error"),
        )


@dataclass(frozen=True)
class SourceFetchResult:
    source: str
    drafts: tuple[CollectedDraft, ...]
    collected_at: str
    used_fallback: bool = False


@dataclass(frozen=True)
class RunSummary:
    run_id: str
    run_at: str
    total_codes: int
    new_codes: int
    duplicates_skipped: int
    notifications_sent: int
    errors: int
    http429: int
    http5xx: int
    sources_scanned: tuple[str, ...]
    duration_seconds: float

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["sources_scanned"] = list(self.sources_scanned)
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "RunSummary":
        return cls(
            run_id=payload["run_id"],
            run_at=payload["run_at"],
            total_codes=int(payload.get("total_codes", 0)),
            new_codes=int(payload.get("new_codes", 0)),
            duplicates_skipped=int(payload.get("duplicates_skipped", 0)),
            notifications_sent=int(payload.get("notifications_sent", 0)),
            errors=int(payload.get("errors", 0)),
            http429=int(payload.get("http429", 0)),
            http5xx=int(payload.get("http5xx", 0)),
            sources_scanned=tuple(payload.get("sources_scanned") or ()),
            duration_seconds=float(payload.get("duration_seconds", 0.0)),
        )
