"""UTC-focused helpers for run metadata and lenient timestamp parsing."""

from __future__ import annotations

from datetime import datetime, timezone

from dateutil import parser as date_parser


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def utc_timestamp_iso() -> str:
    return to_iso(utc_now())


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse free-form date text into an aware UTC datetime.

    Naive results are taken to be UTC. Anything dateutil cannot make sense of
    yields ``None`` rather than an exception.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        parsed = date_parser.parse(text)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
