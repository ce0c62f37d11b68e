import json

import pytest

from shiftwatch.common.errors import FeedFormatError
from shiftwatch.sources.feed import extract_feed_drafts


def test_feed_array_with_aliases():
    body = json.dumps(
        [
            {"code": "bl4a1-edge0-cr0n0-g0ldn-key00", "status": "active"},
            {
                "shift_code": "ABCDE-FGHIJ-KLMNO-PQRST-UVWXY",
                "reward_type": "3 Golden Keys",
                "expires_at": "2026-11-01",
                "first_seen_at": "2026-10-01T10:00:00Z",
                "url": "https://example.com/post/1",
                "notes": "from post",
            },
        ]
    )

    drafts = list(extract_feed_drafts(body, feed_url="https://example.com/feed.json"))

    assert len(drafts) == 2
    assert drafts[0].code == "bl4a1-edge0-cr0n0-g0ldn-key00"
    assert drafts[0].status == "active"
    assert drafts[0].url == "https://example.com/feed.json"
    assert drafts[1].reward == "3 Golden Keys"
    assert drafts[1].expires == "2026-11-01"
    assert drafts[1].first_seen == "2026-10-01T10:00:00Z"
    assert drafts[1].url == "https://example.com/post/1"
    assert drafts[1].is_fallback is False


def test_feed_object_with_codes_and_dropped_entries():
    body = json.dumps(
        {
            "codes": [
                {"code": "  "},
                {"reward": "no code here"},
                "not-an-object",
                {"code": 12345},
                {"code_text": "ABCDE-FGHIJ-KLMNO-PQRST-UVWXY", "reward": "", "description": "Cosmetic"},
            ]
        }
    )

    drafts = list(extract_feed_drafts(body))

    assert [draft.code for draft in drafts] == ["ABCDE-FGHIJ-KLMNO-PQRST-UVWXY"]
    assert drafts[0].reward == "Cosmetic"


def test_feed_unexpected_shape_yields_nothing():
    assert list(extract_feed_drafts(json.dumps({"items": []}))) == []
    assert list(extract_feed_drafts("42")) == []


def test_feed_invalid_json_raises():
    with pytest.raises(FeedFormatError):
        list(extract_feed_drafts("<html>not json</html>"))
