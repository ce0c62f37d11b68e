"""Typed access to persisted codes, delivery logs and run summaries."""

from __future__ import annotations

import logging

from shiftwatch.common.code_format import identity_hash, normalise_code
from shiftwatch.common.logging import log_event
from shiftwatch.common.models import CanonicalCode, DeliveryAttempt, RunSummary
from shiftwatch.common.time_utils import parse_timestamp
from shiftwatch.store.objects import ObjectStore

CODE_PREFIX = "codes/"
NOTIFICATION_PREFIX = "logs/notification/"
METRICS_KEY = "state/metrics.json"
MIGRATION_MARKER_KEY = "state/migration-complete"
LEGACY_CODE_PREFIX = "code:"

logger = logging.getLogger(__name__)


def _code_key(code_hash: str) -> str:
    return f"{CODE_PREFIX}{code_hash}.json"


def _sort_instant(value: str | None) -> float:
    parsed = parse_timestamp(value)
    return parsed.timestamp() if parsed is not None else 0.0


class CodeRepository:
    def __init__(self, store: ObjectStore) -> None:
        self.store = store

    def load_code(self, code_hash: str) -> CanonicalCode | None:
        payload = self.store.get(_code_key(code_hash))
        if payload is None:
            return None
        return CanonicalCode.from_dict(payload)

    def save_code(self, code: CanonicalCode) -> bool:
        """Persist ``code`` unless the stored copy is already identical."""
        key = _code_key(code.hash)
        payload = code.to_dict()
        if self.store.get(key) == payload:
            return False
        self.store.put(key, payload)
        return True

    def list_codes(self) -> list[CanonicalCode]:
        codes = []
        for key in self.store.iter_keys(CODE_PREFIX):
            payload = self.store.get(key)
            if payload is not None:
                codes.append(CanonicalCode.from_dict(payload))
        return sorted(codes, key=lambda code: (-_sort_instant(code.updated_at), code.hash))

    def save_delivery_attempt(self, attempt: DeliveryAttempt) -> None:
        self.store.put(f"{NOTIFICATION_PREFIX}{attempt.id}.json", attempt.to_dict())

    def list_delivery_attempts(self, limit: int = 100) -> list[DeliveryAttempt]:
        attempts = []
        for key in self.store.iter_keys(NOTIFICATION_PREFIX):
            payload = self.store.get(key)
            if payload is not None:
                attempts.append(DeliveryAttempt.from_dict(payload))
        attempts.sort(key=lambda attempt: _sort_instant(attempt.created_at), reverse=True)
        return attempts[:limit]

    def save_run_summary(self, summary: RunSummary) -> None:
        self.store.put(METRICS_KEY, summary.to_dict())

    def load_run_summary(self) -> RunSummary | None:
        payload = self.store.get(METRICS_KEY)
        if payload is None:
            return None
        return RunSummary.from_dict(payload)

    def migration_done(self) -> bool:
        return self.store.get(MIGRATION_MARKER_KEY) is not None


def _legacy_to_code(payload: dict, title: str) -> CanonicalCode | None:
    code_text = normalise_code(payload.get("code_text") or payload.get("codeText") or payload.get("normalizedCodeText"))
    if code_text is None:
        return None
    metadata = payload.get("metadata") or {}
    created_at = payload.get("created_at") or payload.get("createdAt")
    if not created_at:
        return None
    return CanonicalCode.from_dict(
        {
            "title": payload.get("title") or title,
            "code_text": code_text,
            "reward": payload.get("reward") or payload.get("rewardType"),
            "status": payload.get("status"),
            "expires_at": payload.get("expires_at") or payload.get("expiresAt"),
            "first_seen_at": payload.get("first_seen_at") or payload.get("firstSeenAt") or created_at,
            "sources": payload.get("sources") or [],
            "hash": payload.get("hash") or identity_hash(title, code_text),
            "created_at": created_at,
            "updated_at": payload.get("updated_at") or payload.get("updatedAt") or created_at,
            "metadata": {
                "url": metadata.get("url"),
                "notes": metadata.get("notes"),
                "discovered_by": metadata.get("discovered_by") or metadata.get("discoveredBy"),
                "notified_at": metadata.get("notified_at") or metadata.get("notifiedAt"),
                "is_fallback": metadata.get("is_fallback", metadata.get("isFallback")),
            },
        }
    )


def migrate_legacy_codes(
    repository: CodeRepository,
    legacy_store: ObjectStore,
    *,
    title: str,
    log: logging.Logger | None = None,
) -> int:
    """Copy legacy ``code:<id>`` records into the code layout exactly once.

    Completion is recorded as a marker object in the target store, so a
    restarted process or a second instance sees the same answer.
    """
    log = log or logger
    if repository.migration_done():
        return 0

    copied = 0
    for key in legacy_store.iter_keys(LEGACY_CODE_PREFIX):
        payload = legacy_store.get(key)
        if not isinstance(payload, dict):
            continue
        code = _legacy_to_code(payload, title)
        if code is None:
            continue
        if repository.load_code(code.hash) is not None:
            continue
        repository.save_code(code)
        copied += 1

    repository.store.put(MIGRATION_MARKER_KEY, "ok")
    log_event(log, f"legacy migration copied {copied} codes", event="MIGRATION_DONE", status="ok", rows_out=copied)
    return copied
