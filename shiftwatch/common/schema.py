"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from shiftwatch.common.constants import MODES, SOURCE_KINDS, SOURCE_NAMES
from shiftwatch.common.errors import ConfigError


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def validate_source_config(name: str, cfg: dict, *, allow_unknown: bool = False) -> dict:
    ctx = f"sources.{name}"
    _assert_required_keys(cfg, {"kind"}, ctx)
    _assert_no_unknown_keys(cfg, {"kind", "url", "caption_marker"}, ctx, allow_unknown)
    if cfg["kind"] not in SOURCE_KINDS:
        raise ConfigError(f"{ctx}.kind must be one of: {', '.join(SOURCE_KINDS)}")
    if cfg["kind"] == "article" and not cfg.get("caption_marker"):
        raise ConfigError(f"{ctx}.caption_marker is required for article sources")
    return cfg


def validate_monitor_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    top_required = {
        "title",
        "mode",
        "log_level",
        "backfill_days",
        "notifications",
        "sources",
        "http",
        "storage",
    }
    _assert_required_keys(cfg, top_required, "monitor config")
    _assert_no_unknown_keys(cfg, top_required, "monitor config", allow_unknown)

    if cfg["mode"] not in MODES:
        raise ConfigError(f"mode must be one of: {', '.join(MODES)}")
    try:
        backfill_days = int(cfg["backfill_days"])
    except (TypeError, ValueError) as exc:
        raise ConfigError("backfill_days must be a positive integer") from exc
    if backfill_days < 1:
        raise ConfigError("backfill_days must be a positive integer")

    _assert_required_keys(cfg["notifications"], {"webhook_url", "destination"}, "notifications")
    http_keys = {"connect_timeout", "read_timeout", "rate_per_sec"}
    _assert_required_keys(cfg["http"], http_keys, "http")
    _assert_no_unknown_keys(cfg["http"], http_keys, "http", allow_unknown)
    _assert_required_keys(cfg["storage"], {"data_dir"}, "storage")

    sources = cfg["sources"]
    _assert_required_keys(sources, {"order"}, "sources")
    _assert_no_unknown_keys(sources, {"order", *SOURCE_NAMES}, "sources", allow_unknown)
    if not isinstance(sources["order"], list):
        raise ConfigError("sources.order must be a list")
    for name in sources["order"]:
        if name not in SOURCE_NAMES:
            raise ConfigError(f"Unknown source in sources.order: {name}")
        if name not in sources:
            raise ConfigError(f"Missing source block: sources.{name}")
        validate_source_config(name, sources[name], allow_unknown=allow_unknown)

    return cfg
