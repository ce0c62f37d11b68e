"""Turn collected drafts into canonical, identity-stable code records."""

from __future__ import annotations

import re

from shiftwatch.common.code_format import UNKNOWN_REWARD, identity_hash, normalise_code, normalise_status
from shiftwatch.common.models import CanonicalCode, CodeMetadata, CollectedDraft
from shiftwatch.common.time_utils import parse_timestamp, to_iso

_PARENTHETICAL_RE = re.compile(r"\(.*?\)")


def resolve_expiry(value: str | None) -> str | None:
    if not value:
        return None
    cleaned = _PARENTHETICAL_RE.sub("", value).strip()
    parsed = parse_timestamp(cleaned)
    return to_iso(parsed) if parsed is not None else None


def resolve_first_seen(value: str | None, collected_at: str) -> str:
    parsed = parse_timestamp(value)
    return to_iso(parsed) if parsed is not None else collected_at


def resolve_reward(value: str | None) -> str:
    if value is None or not value.strip():
        return UNKNOWN_REWARD
    return value.strip()


def canonicalize_draft(
    draft: CollectedDraft,
    *,
    source: str,
    title: str,
    collected_at: str,
) -> CanonicalCode | None:
    code_text = normalise_code(draft.code)
    if code_text is None:
        return None

    return CanonicalCode(
        title=title,
        code_text=code_text,
        reward=resolve_reward(draft.reward),
        status=normalise_status(draft.status),
        expires_at=resolve_expiry(draft.expires),
        first_seen_at=resolve_first_seen(draft.first_seen, collected_at),
        sources=(source,),
        hash=identity_hash(title, code_text),
        created_at=collected_at,
        updated_at=collected_at,
        metadata=CodeMetadata(
            url=draft.url or None,
            notes=draft.notes or None,
            is_fallback=draft.is_fallback,
        ),
    )
