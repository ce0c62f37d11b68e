"""SHiFT code normalisation, validation and identity hashing."""

from __future__ import annotations

import hashlib
import re
from typing import Iterator

SHIFT_CODE_RE = re.compile(r"^[A-Z0-9]{5}(?:-[A-Z0-9]{5}){4}$")
# Unanchored form for locating codes inside free text.
SHIFT_CODE_FINDER_RE = re.compile(r"(?<![A-Z0-9-])[A-Z0-9]{5}(?:-[A-Z0-9]{5}){4}(?![A-Z0-9-])")
# Free-text scans accept any letter case; matches are upper-cased by the caller.
SHIFT_CODE_SCAN_RE = re.compile(SHIFT_CODE_FINDER_RE.pattern, re.IGNORECASE)

STATUS_ACTIVE = "Active"
STATUS_EXPIRED = "Expired"
STATUS_HOLD = "Hold"
STATUS_LOOKUP = {
    "active": STATUS_ACTIVE,
    "expired": STATUS_EXPIRED,
    "hold": STATUS_HOLD,
}
UNKNOWN_REWARD = "Unknown"

_DASH_RE = re.compile(r"[\u2010-\u2015\u2212\ufe58\ufe63\uff0d]")
_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_RE = re.compile(r"[^A-Za-z0-9-]")
_REPEATED_HYPHEN_RE = re.compile(r"-{2,}")


def is_valid_code(value: str) -> bool:
    return bool(SHIFT_CODE_RE.match(value))


def clean_code_text(raw: str | None) -> str:
    """Apply the textual clean-up without judging the result.

    Idempotent: cleaning an already cleaned value returns it unchanged.
    """
    if raw is None:
        return ""
    cleaned = raw.strip()
    if not cleaned:
        return ""
    cleaned = _DASH_RE.sub("-", cleaned)
    cleaned = _WHITESPACE_RE.sub("-", cleaned)
    cleaned = _DISALLOWED_RE.sub("", cleaned)
    cleaned = _REPEATED_HYPHEN_RE.sub("-", cleaned)
    return cleaned.upper()


def normalise_code(raw: str | None) -> str | None:
    cleaned = clean_code_text(raw)
    if not is_valid_code(cleaned):
        return None
    return cleaned


def find_codes(text: str) -> list[str]:
    return SHIFT_CODE_FINDER_RE.findall(text)


def normalise_status(raw: str | None) -> str:
    if raw is None:
        return STATUS_ACTIVE
    return STATUS_LOOKUP.get(str(raw).strip().lower(), STATUS_ACTIVE)


def identity_hash(title: str, code_text: str) -> str:
    return hashlib.sha256(f"{title}:{code_text}".encode("utf-8")).hexdigest()


def iter_code_matches(text: str) -> Iterator[re.Match[str]]:
    return SHIFT_CODE_SCAN_RE.finditer(text)
