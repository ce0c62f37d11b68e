import json

from shiftwatch.common.code_format import identity_hash
from shiftwatch.common.models import CollectedDraft
from shiftwatch.pipeline.canonicalize import canonicalize_draft, resolve_expiry
from shiftwatch.sources.feed import extract_feed_drafts

COLLECTED_AT = "2026-10-18T12:00:00.000+00:00"


def test_feed_entry_becomes_canonical_record():
    body = json.dumps([{"code": "bl4a1-edge0-cr0n0-g0ldn-key00", "status": "active"}])
    draft = next(extract_feed_drafts(body))

    code = canonicalize_draft(draft, source="OFFICIAL_SITE", title="BL4", collected_at=COLLECTED_AT)

    assert code is not None
    assert code.code_text == "BL4A1-EDGE0-CR0N0-G0LDN-KEY00"
    assert code.status == "Active"
    assert code.reward == "Unknown"
    assert code.expires_at is None
    assert code.first_seen_at == COLLECTED_AT
    assert code.sources == ("OFFICIAL_SITE",)
    assert code.hash == identity_hash("BL4", "BL4A1-EDGE0-CR0N0-G0LDN-KEY00")
    assert code.is_fallback is False
    assert code.notified_at is None


def test_invalid_code_is_dropped():
    draft = CollectedDraft(code="NOT-A-CODE")
    assert canonicalize_draft(draft, source="OFFICIAL_SITE", title="BL4", collected_at=COLLECTED_AT) is None


def test_fields_are_normalised():
    draft = CollectedDraft(
        code="ABCDE FGHIJ KLMNO PQRST UVWXY",
        reward="  3 Golden Keys ",
        status="EXPIRED",
        expires="October 31, 2026 (10 AM PT)",
        first_seen="2026-10-01T08:30:00Z",
        url="",
        notes="row",
        is_fallback=True,
    )

    code = canonicalize_draft(draft, source="MEDIA_TRUSTED", title="BL4", collected_at=COLLECTED_AT)

    assert code.code_text == "ABCDE-FGHIJ-KLMNO-PQRST-UVWXY"
    assert code.reward == "3 Golden Keys"
    assert code.status == "Expired"
    assert code.expires_at == "2026-10-31T00:00:00.000+00:00"
    assert code.first_seen_at == "2026-10-01T08:30:00.000+00:00"
    assert code.metadata.url is None
    assert code.metadata.notes == "row"
    assert code.is_fallback is True


def test_unparseable_expiry_is_unknown():
    assert resolve_expiry("whenever they feel like it") is None
    assert resolve_expiry(None) is None
