from dataclasses import replace
from datetime import datetime, timezone

from shiftwatch.common.code_format import identity_hash
from shiftwatch.common.models import CanonicalCode, CodeMetadata
from shiftwatch.pipeline.merge import merge_observation, merge_records
from shiftwatch.pipeline.reduce import reduce_batch

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
CODE = "ABCDE-FGHIJ-KLMNO-PQRST-UVWXY"


def _code(source: str, **overrides) -> CanonicalCode:
    base = CanonicalCode(
        title="BL4",
        code_text=CODE,
        reward="Unknown",
        status="Active",
        expires_at=None,
        first_seen_at="2026-10-18T10:00:00.000+00:00",
        sources=(source,),
        hash=identity_hash("BL4", CODE),
        created_at="2026-10-18T10:00:00.000+00:00",
        updated_at="2026-10-18T10:00:00.000+00:00",
        metadata=CodeMetadata(is_fallback=False),
    )
    return replace(base, **overrides)


def test_reduce_batch_first_value_wins():
    first = _code("MEDIA_TRUSTED", metadata=CodeMetadata(notes="first", is_fallback=False))
    second = _code(
        "MEDIA_TRUSTED",
        reward="Cosmetic",
        expires_at="2026-11-01T00:00:00.000+00:00",
        metadata=CodeMetadata(url="https://example.com", notes="second", is_fallback=False),
    )
    other = replace(_code("MEDIA_TRUSTED"), code_text="12345-67890-ABCDE-FGHIJ-KLMNO", hash="other")

    reduced = reduce_batch([first, other, second])

    assert [code.hash for code in reduced] == [first.hash, "other"]
    assert reduced[0].reward == "Cosmetic"
    assert reduced[0].expires_at == "2026-11-01T00:00:00.000+00:00"
    assert reduced[0].metadata.notes == "first"
    assert reduced[0].metadata.url == "https://example.com"


def test_new_record_is_candidate_when_eligible():
    outcome = merge_observation(None, _code("OFFICIAL_SITE"), now=NOW)
    assert outcome.is_new
    assert outcome.notify_candidate

    fallback = _code("OFFICIAL_SITE", metadata=CodeMetadata(is_fallback=True))
    assert not merge_observation(None, fallback, now=NOW).notify_candidate


def test_source_union_does_not_depend_on_arrival_order():
    site = _code("OFFICIAL_SITE")
    media = _code("MEDIA_TRUSTED")

    left = merge_records(site, media)
    right = merge_records(media, site)

    assert set(left.sources) == set(right.sources) == {"OFFICIAL_SITE", "MEDIA_TRUSTED"}
    assert left.sources == ("OFFICIAL_SITE", "MEDIA_TRUSTED")


def test_merge_precedence():
    existing = _code(
        "OFFICIAL_SITE",
        status="Hold",
        first_seen_at="2026-10-10T00:00:00.000+00:00",
        expires_at="2026-12-01T00:00:00.000+00:00",
        metadata=CodeMetadata(url="https://old.example.com", notes="old", is_fallback=True),
    )
    incoming = _code(
        "MEDIA_TRUSTED",
        reward="3 Golden Keys",
        status="Active",
        first_seen_at="2026-10-12T00:00:00.000+00:00",
        expires_at="2026-11-01T00:00:00.000+00:00",
        updated_at="2026-10-18T12:00:00.000+00:00",
        metadata=CodeMetadata(url="", notes="new", is_fallback=False),
    )

    merged = merge_records(existing, incoming)

    assert merged.reward == "3 Golden Keys"
    assert merged.status == "Hold"
    assert merged.expires_at == "2026-12-01T00:00:00.000+00:00"
    assert merged.first_seen_at == "2026-10-10T00:00:00.000+00:00"
    assert merged.created_at == existing.created_at
    assert merged.updated_at == "2026-10-18T12:00:00.000+00:00"
    assert merged.metadata.url == "https://old.example.com"
    assert merged.metadata.notes == "new"
    assert merged.is_fallback is False


def test_known_reward_is_not_overwritten():
    existing = _code("OFFICIAL_SITE", reward="Vault Card")
    incoming = _code("MEDIA_TRUSTED", reward="Cosmetic")
    assert merge_records(existing, incoming).reward == "Vault Card"


def test_notified_marker_survives_and_blocks_candidacy():
    existing = _code("OFFICIAL_SITE").with_metadata(notified_at="2026-10-17T00:00:00.000+00:00")

    outcome = merge_observation(existing, _code("MEDIA_TRUSTED"), now=NOW)

    assert not outcome.is_new
    assert outcome.record.notified_at == "2026-10-17T00:00:00.000+00:00"
    assert not outcome.notify_candidate


def test_existing_unnotified_record_becomes_candidate_once_eligible():
    existing = _code("OFFICIAL_SITE", metadata=CodeMetadata(is_fallback=True))
    incoming = _code("MEDIA_TRUSTED", metadata=CodeMetadata(is_fallback=False))

    outcome = merge_observation(existing, incoming, now=NOW)

    assert outcome.notify_candidate
