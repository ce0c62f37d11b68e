"""Reconcile a freshly observed code with the persisted record of the same identity.

Field precedence when a persisted record exists (existing = E, incoming = N):

    field           result
    -------------   -----------------------------------------------------
    title           E
    code_text       E (identical to N by construction of the hash)
    hash            E
    sources         union of E and N, E's order first
    reward          E, unless E is "Unknown" and N is not
    status          E
    expires_at      E, unless E has none
    first_seen_at   earlier of E and N
    created_at      E
    updated_at      N
    metadata.*      N where N is non-empty, otherwise E (shallow overlay)

``metadata.notified_at`` is never supplied by an observation, so the
persisted delivery marker always survives a merge.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import datetime

from shiftwatch.common.code_format import UNKNOWN_REWARD
from shiftwatch.common.models import CanonicalCode, CodeMetadata
from shiftwatch.common.time_utils import parse_timestamp
from shiftwatch.pipeline.notify import is_eligible
from shiftwatch.pipeline.reduce import union_sources


@dataclass(frozen=True)
class MergeOutcome:
    record: CanonicalCode
    is_new: bool
    notify_candidate: bool


def overlay_metadata(existing: CodeMetadata, incoming: CodeMetadata) -> CodeMetadata:
    changes = {}
    for item in fields(CodeMetadata):
        value = getattr(incoming, item.name)
        if value is None or value == "":
            continue
        changes[item.name] = value
    return replace(existing, **changes)


def _earlier(left: str, right: str) -> str:
    left_dt = parse_timestamp(left)
    right_dt = parse_timestamp(right)
    if left_dt is None:
        return right
    if right_dt is None:
        return left
    return right if right_dt < left_dt else left


def merge_records(existing: CanonicalCode, incoming: CanonicalCode) -> CanonicalCode:
    return replace(
        existing,
        sources=union_sources(existing.sources, incoming.sources),
        reward=incoming.reward if existing.reward == UNKNOWN_REWARD else existing.reward,
        expires_at=existing.expires_at or incoming.expires_at,
        first_seen_at=_earlier(existing.first_seen_at, incoming.first_seen_at),
        updated_at=incoming.updated_at,
        metadata=overlay_metadata(existing.metadata, incoming.metadata),
    )


def merge_observation(
    existing: CanonicalCode | None,
    incoming: CanonicalCode,
    *,
    now: datetime,
) -> MergeOutcome:
    if existing is None:
        return MergeOutcome(record=incoming, is_new=True, notify_candidate=is_eligible(incoming, now))

    merged = merge_records(existing, incoming)
    candidate = existing.notified_at is None and is_eligible(merged, now)
    return MergeOutcome(record=merged, is_new=False, notify_candidate=candidate)
