"""Collapse the canonical codes of one fetch to one record per identity hash."""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from shiftwatch.common.code_format import UNKNOWN_REWARD
from shiftwatch.common.models import CanonicalCode


def union_sources(left: Iterable[str], right: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys([*left, *right]))


def combine_batch_pair(first: CanonicalCode, later: CanonicalCode) -> CanonicalCode:
    """Fold ``later`` into ``first``; whatever ``first`` already has wins."""
    return replace(
        first,
        sources=union_sources(first.sources, later.sources),
        reward=first.reward if first.reward != UNKNOWN_REWARD else later.reward,
        expires_at=first.expires_at or later.expires_at,
        metadata=replace(
            first.metadata,
            url=first.metadata.url or later.metadata.url,
            notes=first.metadata.notes or later.metadata.notes,
        ),
    )


def reduce_batch(codes: Iterable[CanonicalCode]) -> list[CanonicalCode]:
    reduced: dict[str, CanonicalCode] = {}
    for code in codes:
        existing = reduced.get(code.hash)
        reduced[code.hash] = code if existing is None else combine_batch_pair(existing, code)
    return list(reduced.values())
