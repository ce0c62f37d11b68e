"""Structured JSON feed extraction."""

from __future__ import annotations

import json
from typing import Any, Iterator

from shiftwatch.common.errors import FeedFormatError
from shiftwatch.common.models import CollectedDraft

CODE_KEYS = ("code", "code_text", "codeText", "shiftCode", "shift_code")
REWARD_KEYS = ("rewardType", "reward_type", "reward", "description")
STATUS_KEYS = ("status",)
EXPIRY_KEYS = ("expiresAt", "expires_at", "expires", "expiry")
FIRST_SEEN_KEYS = ("firstSeenAt", "first_seen_at", "firstSeen", "first_seen")
URL_KEYS = ("url", "link")
NOTES_KEYS = ("notes", "note")


def _lookup_first(entry: dict, candidates: tuple[str, ...]) -> str | None:
    for key in candidates:
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def feed_entries(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("codes"), list):
        return payload["codes"]
    return []


def decode_feed(body: str | bytes) -> Any:
    try:
        return json.loads(body)
    except ValueError as exc:
        raise FeedFormatError("Feed body is not valid JSON") from exc


def extract_feed_drafts(body: str | bytes, *, feed_url: str | None = None) -> Iterator[CollectedDraft]:
    """Yield one draft per feed entry that carries a usable code field.

    The feed may be a bare array or an object with a ``codes`` array. Entries
    that are not objects, or have no code under any accepted key, are skipped.
    """
    for entry in feed_entries(decode_feed(body)):
        if not isinstance(entry, dict):
            continue
        code = _lookup_first(entry, CODE_KEYS)
        if code is None:
            continue
        yield CollectedDraft(
            code=code,
            reward=_lookup_first(entry, REWARD_KEYS),
            status=_lookup_first(entry, STATUS_KEYS),
            expires=_lookup_first(entry, EXPIRY_KEYS),
            first_seen=_lookup_first(entry, FIRST_SEEN_KEYS),
            url=_lookup_first(entry, URL_KEYS) or feed_url,
            notes=_lookup_first(entry, NOTES_KEYS),
            is_fallback=False,
        )
