from __future__ import annotations

from pathlib import Path

import pytest

from shiftwatch.common.config_loader import load_config, parse_whitelist
from shiftwatch.common.errors import ConfigError

ROOT = Path(__file__).resolve().parents[2]
CONFIG_DIR = ROOT / "config"


def test_load_repo_config_defaults():
    config = load_config(CONFIG_DIR, environ={})

    assert config.title == "BL4"
    assert config.mode == "DRY_RUN"
    assert not config.is_live
    assert config.backfill_days == 7
    assert config.webhook_url is None
    assert [source.name for source in config.sources] == [
        "OFFICIAL_SITE",
        "OFFICIAL_X",
        "MEDIA_TRUSTED",
        "COMMUNITY_AUX",
    ]
    media = config.source("MEDIA_TRUSTED")
    assert media.kind == "article"
    assert media.caption_marker == "Active Borderlands 4 Shift codes"
    assert config.source("OFFICIAL_SITE").url is None


def test_env_overrides_apply():
    environ = {
        "MODE": "PROD",
        "DISCORD_WEBHOOK_URL": "https://discord.example.com/hook",
        "BACKFILL_DAYS": "3",
        "SOURCES_WHITELIST": '["MEDIA_TRUSTED", "OFFICIAL_SITE", "NOT_A_SOURCE", 7]',
        "SOURCE_OFFICIAL_SITE_URL": "https://example.com/feed.json",
    }

    config = load_config(CONFIG_DIR, environ=environ)

    assert config.is_live
    assert config.webhook_url == "https://discord.example.com/hook"
    assert config.backfill_days == 3
    assert [source.name for source in config.sources] == ["MEDIA_TRUSTED", "OFFICIAL_SITE"]
    assert config.source("OFFICIAL_SITE").url == "https://example.com/feed.json"


def test_bad_backfill_env_keeps_configured_value():
    assert load_config(CONFIG_DIR, environ={"BACKFILL_DAYS": "soon"}).backfill_days == 7


def test_invalid_mode_env_raises():
    with pytest.raises(ConfigError):
        load_config(CONFIG_DIR, environ={"MODE": "LOUD"})


def test_parse_whitelist_fallbacks():
    assert parse_whitelist(None, ["OFFICIAL_X"]) == ["OFFICIAL_X"]
    assert parse_whitelist("not json", ["OFFICIAL_X"]) == ["OFFICIAL_X"]
    assert parse_whitelist('{"a": 1}', ["OFFICIAL_X"]) == ["OFFICIAL_X"]
    assert parse_whitelist("[]", ["OFFICIAL_X"]) == []


def test_overlay_config_is_deep_merged(tmp_path: Path):
    overlay_dir = tmp_path / "overlay"
    overlay_dir.mkdir()
    (overlay_dir / "monitor.yml").write_text(
        "sources:\n  MEDIA_TRUSTED:\n    url: null\nstorage:\n  data_dir: /tmp/elsewhere\n",
        encoding="utf-8",
    )

    config = load_config(CONFIG_DIR, overlay_config_dir=overlay_dir, environ={})

    assert config.source("MEDIA_TRUSTED").url is None
    assert config.source("MEDIA_TRUSTED").caption_marker == "Active Borderlands 4 Shift codes"
    assert config.data_dir == Path("/tmp/elsewhere")


def test_missing_config_file_raises(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_config(tmp_path, environ={})


def test_unknown_keys_rejected(tmp_path: Path):
    text = (CONFIG_DIR / "monitor.yml").read_text(encoding="utf-8") + "\nsurprise: true\n"
    (tmp_path / "monitor.yml").write_text(text, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path, environ={})
    assert load_config(tmp_path, allow_unknown=True, environ={}).title == "BL4"


def test_article_source_requires_caption_marker(tmp_path: Path):
    text = (CONFIG_DIR / "monitor.yml").read_text(encoding="utf-8").replace(
        '    caption_marker: "Active Borderlands 4 Shift codes"\n', ""
    )
    (tmp_path / "monitor.yml").write_text(text, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path, environ={})


def test_source_fetch_retry_setting_is_rejected(tmp_path: Path):
    text = (CONFIG_DIR / "monitor.yml").read_text(encoding="utf-8").replace(
        "  rate_per_sec: 2\n", "  rate_per_sec: 2\n  max_attempts: 3\n"
    )
    (tmp_path / "monitor.yml").write_text(text, encoding="utf-8")

    with pytest.raises(ConfigError, match="http"):
        load_config(tmp_path, environ={})


@pytest.mark.parametrize("value", ["soon", "null", "[7]"])
def test_non_numeric_backfill_days_is_config_error(tmp_path: Path, value):
    text = (CONFIG_DIR / "monitor.yml").read_text(encoding="utf-8").replace(
        "backfill_days: 7\n", f"backfill_days: {value}\n"
    )
    (tmp_path / "monitor.yml").write_text(text, encoding="utf-8")

    with pytest.raises(ConfigError, match="backfill_days"):
        load_config(tmp_path, environ={})
