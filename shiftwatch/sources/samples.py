"""Clearly marked sample drafts used when a source has no configured endpoint."""

from __future__ import annotations

from shiftwatch.common.models import CollectedDraft

SAMPLE_DRAFTS: dict[str, tuple[CollectedDraft, ...]] = {
    "OFFICIAL_SITE": (
        CollectedDraft(
            code="BL4A1-EDGE0-CR0N0-G0LDN-KEY00",
            reward="Golden Keys",
            status="Active",
            notes="Sample code from official site feed",
            is_fallback=True,
        ),
    ),
    "OFFICIAL_X": (
        CollectedDraft(
            code="BL4TW-1TT3R-FAK30-C0D30-EDGE0",
            reward="Vault Card",
            status="Active",
            notes="Sample code from X (Twitter)",
            is_fallback=True,
        ),
    ),
    "MEDIA_TRUSTED": (
        CollectedDraft(
            code="BL4MD-PR3SS-FAK30-C0D30-EDGE0",
            reward="Cosmetic",
            status="Hold",
            notes="Sample code from media partner",
            is_fallback=True,
        ),
    ),
    "COMMUNITY_AUX": (
        CollectedDraft(
            code="BL4CM-UNITY-AUX00-FAK30-C0D30",
            reward="Shift Pack",
            status="Hold",
            notes="Sample community-discovered code",
            is_fallback=True,
        ),
    ),
}


def sample_drafts(source_name: str) -> tuple[CollectedDraft, ...]:
    return SAMPLE_DRAFTS.get(source_name, ())
