"""Configuration loading and validation."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from shiftwatch.common.constants import MODES, SOURCE_NAMES
from shiftwatch.common.errors import ConfigError
from shiftwatch.common.fs import read_yaml
from shiftwatch.common.http import TimeoutConfig
from shiftwatch.common.schema import validate_monitor_config

CONFIG_FILENAME = "monitor.yml"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceConfig:
    name: str
    kind: str
    url: str | None
    caption_marker: str | None = None


@dataclass(frozen=True)
class MonitorConfig:
    title: str
    mode: str
    log_level: str
    backfill_days: int
    webhook_url: str | None
    destination: str
    sources: tuple[SourceConfig, ...]
    timeout: TimeoutConfig
    rate_per_sec: float
    data_dir: Path
    legacy_dir: Path | None = None

    @property
    def is_live(self) -> bool:
        return self.mode == "PROD"

    def source(self, name: str) -> SourceConfig:
        for source in self.sources:
            if source.name == name:
                return source
        raise KeyError(name)


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    base = read_yaml(path) or {}
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path) or {}
    return _deep_merge(base, overlay)


def _parse_int(value: str | None, fallback: int) -> int:
    if not value:
        return fallback
    try:
        return int(value)
    except ValueError:
        return fallback


def parse_whitelist(raw: str | None, fallback: list[str]) -> list[str]:
    if not raw:
        return fallback
    try:
        decoded = json.loads(raw)
    except ValueError:
        logger.warning("SOURCES_WHITELIST is not valid JSON, keeping configured order")
        return fallback
    if not isinstance(decoded, list):
        return fallback
    return [item for item in decoded if isinstance(item, str) and item in SOURCE_NAMES]


def apply_env_overrides(cfg: dict, environ: Mapping[str, str]) -> dict:
    out = _deep_merge(cfg, {})
    mode = environ.get("MODE")
    if mode:
        if mode not in MODES:
            raise ConfigError(f"MODE must be one of: {', '.join(MODES)}")
        out["mode"] = mode
    if environ.get("LOG_LEVEL"):
        out["log_level"] = environ["LOG_LEVEL"]
    if environ.get("DISCORD_WEBHOOK_URL"):
        out["notifications"] = {**out["notifications"], "webhook_url": environ["DISCORD_WEBHOOK_URL"]}
    out["backfill_days"] = _parse_int(environ.get("BACKFILL_DAYS"), int(out["backfill_days"]))

    sources = dict(out["sources"])
    sources["order"] = parse_whitelist(environ.get("SOURCES_WHITELIST"), list(sources["order"]))
    for name in SOURCE_NAMES:
        url = environ.get(f"SOURCE_{name}_URL")
        if url and name in sources:
            sources[name] = {**sources[name], "url": url}
    out["sources"] = sources
    return out


def build_monitor_config(cfg: dict) -> MonitorConfig:
    sources_cfg = cfg["sources"]
    sources = tuple(
        SourceConfig(
            name=name,
            kind=sources_cfg[name]["kind"],
            url=sources_cfg[name].get("url") or None,
            caption_marker=sources_cfg[name].get("caption_marker"),
        )
        for name in sources_cfg["order"]
    )
    http_cfg = cfg["http"]
    storage_cfg = cfg["storage"]
    legacy_dir = storage_cfg.get("legacy_dir")
    return MonitorConfig(
        title=str(cfg["title"]),
        mode=cfg["mode"],
        log_level=str(cfg["log_level"]),
        backfill_days=int(cfg["backfill_days"]),
        webhook_url=cfg["notifications"].get("webhook_url") or None,
        destination=cfg["notifications"]["destination"],
        sources=sources,
        timeout=TimeoutConfig(
            connect=float(http_cfg["connect_timeout"]),
            read=float(http_cfg["read_timeout"]),
        ),
        rate_per_sec=float(http_cfg["rate_per_sec"]),
        data_dir=Path(storage_cfg["data_dir"]),
        legacy_dir=Path(legacy_dir) if legacy_dir else None,
    )


def load_config(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> MonitorConfig:
    overlay_path = overlay_config_dir / CONFIG_FILENAME if overlay_config_dir is not None else None
    raw = _load_yaml_with_overlay(config_dir / CONFIG_FILENAME, overlay_path)
    validate_monitor_config(raw, allow_unknown=allow_unknown)
    merged = apply_env_overrides(raw, os.environ if environ is None else environ)
    validate_monitor_config(merged, allow_unknown=allow_unknown)
    return build_monitor_config(merged)
