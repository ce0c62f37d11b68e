from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from shiftwatch.cli import main, parse_args, run_command
from shiftwatch.common.constants import EXIT_HARD_FAIL, EXIT_SUCCESS
from shiftwatch.store.objects import FileObjectStore
from shiftwatch.store.repository import CodeRepository

pytestmark = pytest.mark.integration

ROOT = Path(__file__).resolve().parents[2]


def _offline_overlay(tmp_path: Path) -> Path:
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "monitor.yml").write_text("sources:\n  MEDIA_TRUSTED:\n    url: null\n", encoding="utf-8")
    return overlay


def _args(command: str, tmp_path: Path, *extra: str):
    return parse_args(
        [
            command,
            "--config-dir",
            str(ROOT / "config"),
            "--overlay-config-dir",
            str(_offline_overlay(tmp_path)),
            "--data-dir",
            str(tmp_path / "data"),
            "--run-id",
            "run-smoke",
            *extra,
        ]
    )


def test_cli_run_offline_uses_samples(tmp_path: Path, capsys):
    code = run_command(_args("run", tmp_path), environ={})

    assert code == EXIT_SUCCESS
    summary = json.loads(capsys.readouterr().out)
    assert summary["run_id"] == "run-smoke"
    assert summary["total_codes"] == 4
    assert summary["notifications_sent"] == 0

    repository = CodeRepository(FileObjectStore(tmp_path / "data" / "store"))
    assert len(repository.list_codes()) == 4
    assert repository.load_run_summary().run_id == "run-smoke"
    assert (tmp_path / "data" / "run_meta" / "run-smoke.log.jsonl").exists()


def test_cli_fetch_prints_without_persisting(tmp_path: Path, capsys):
    code = run_command(_args("fetch", tmp_path, "--json"), environ={})

    assert code == EXIT_SUCCESS
    output = json.loads(capsys.readouterr().out)
    assert [entry["source"] for entry in output] == ["OFFICIAL_SITE", "OFFICIAL_X", "MEDIA_TRUSTED", "COMMUNITY_AUX"]
    assert all(entry["fallback"] for entry in output)
    assert not (tmp_path / "data" / "store" / "codes").exists()


def test_cli_resend_with_empty_store(tmp_path: Path, capsys):
    code = run_command(_args("resend", tmp_path), environ={})

    assert code == EXIT_SUCCESS
    assert json.loads(capsys.readouterr().out)["requested"] == 0


def test_cli_missing_config_is_hard_failure(tmp_path: Path, capsys):
    code = main(["run", "--config-dir", str(tmp_path / "nowhere"), "--data-dir", str(tmp_path)])

    assert code == EXIT_HARD_FAIL
    assert "CONFIG_ERROR" in capsys.readouterr().err


def test_cli_releases_run_log_handlers(tmp_path: Path, capsys):
    run_command(_args("fetch", tmp_path), environ={})
    capsys.readouterr()

    assert logging.getLogger("shiftwatch.run-smoke").handlers == []


def test_cli_non_numeric_backfill_is_config_error(tmp_path: Path, capsys):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    text = (ROOT / "config" / "monitor.yml").read_text(encoding="utf-8").replace("backfill_days: 7", "backfill_days: weekly")
    (config_dir / "monitor.yml").write_text(text, encoding="utf-8")

    code = main(["run", "--config-dir", str(config_dir), "--data-dir", str(tmp_path / "data")])

    assert code == EXIT_HARD_FAIL
    assert "CONFIG_ERROR" in capsys.readouterr().err
