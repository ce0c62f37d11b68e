"""CLI entrypoint for the SHiFT code monitor."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict, replace
from pathlib import Path
from typing import Mapping

from shiftwatch.common.config_loader import MonitorConfig, load_config
from shiftwatch.common.constants import COMMANDS, EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS
from shiftwatch.common.errors import PipelineError
from shiftwatch.common.http import HttpClient
from shiftwatch.common.ids import generate_run_id
from shiftwatch.common.logging import build_logger, close_logger
from shiftwatch.pipeline.monitor import resend_notifications, run_monitor
from shiftwatch.pipeline.notify import WebhookDispatcher
from shiftwatch.sources.runner import collect_all_sources
from shiftwatch.store.objects import FileObjectStore
from shiftwatch.store.repository import CodeRepository, migrate_legacy_codes


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default=None)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--log-level", default=None, choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--json", action="store_true", help="fetch: print collected drafts as JSON")
    parser.add_argument("--code", action="append", default=None, help="resend: identity hash (repeatable)")
    parser.add_argument("--status", action="append", default=None, choices=["Active", "Expired", "Hold"])
    parser.add_argument("--limit", type=int, default=None)
    parser.add_argument("--include-fallback", action="store_true")
    parser.add_argument("--include-expired", action="store_true")
    return parser.parse_args(argv)


def _resolve_config(args: argparse.Namespace, environ: Mapping[str, str] | None) -> MonitorConfig:
    config = load_config(
        Path(args.config_dir),
        overlay_config_dir=Path(args.overlay_config_dir) if args.overlay_config_dir else None,
        environ=environ,
    )
    if args.data_dir:
        config = replace(config, data_dir=Path(args.data_dir))
    if args.log_level:
        config = replace(config, log_level=args.log_level)
    return config


def _print_collection(collected: dict, as_json: bool) -> None:
    results = collected["results"]
    if as_json:
        output = [
            {
                "source": name,
                "count": len(result.drafts),
                "fallback": result.used_fallback,
                "codes": [draft.to_dict() for draft in result.drafts],
            }
            for name, result in results.items()
        ]
        print(json.dumps(output, ensure_ascii=False, indent=2))
        return

    for name, result in results.items():
        suffix = " (sample data)" if result.used_fallback else ""
        print(f"{name}: {len(result.drafts)} code(s){suffix}")
        for draft in result.drafts:
            print(f"  - {draft.code} [{draft.status or 'Active'}] {draft.reward or 'Unknown'}")
    for name, failure in collected["failed_sources"].items():
        print(f"{name}: failed ({failure})")


def run_command(args: argparse.Namespace, environ: Mapping[str, str] | None = None) -> int:
    run_id = args.run_id or generate_run_id()
    config = _resolve_config(args, environ)
    logger = build_logger(run_id, data_dir=config.data_dir, level=config.log_level)
    try:
        return _execute(args, config, run_id, logger)
    finally:
        close_logger(logger)


def _execute(args: argparse.Namespace, config: MonitorConfig, run_id: str, logger: logging.Logger) -> int:
    repository = CodeRepository(FileObjectStore(config.data_dir / "store"))
    if config.legacy_dir is not None and args.command != "fetch":
        migrate_legacy_codes(repository, FileObjectStore(config.legacy_dir), title=config.title, log=logger)

    with HttpClient(timeout=config.timeout, rate_per_sec=config.rate_per_sec) as client:
        if args.command == "fetch":
            collected = collect_all_sources(config, client, log=logger)
            _print_collection(collected, args.json)
            return EXIT_PARTIAL if collected["failed_sources"] else EXIT_SUCCESS

        dispatcher = WebhookDispatcher(
            repository,
            webhook_url=config.webhook_url,
            live=config.is_live,
            client=client,
            destination=config.destination,
            log=logger,
        )

        if args.command == "resend":
            summary = resend_notifications(
                repository,
                dispatcher,
                code_hashes=args.code,
                statuses=args.status,
                limit=args.limit,
                include_fallback=args.include_fallback,
                include_expired=args.include_expired,
            )
            print(json.dumps(asdict(summary)))
            return EXIT_SUCCESS

        summary = run_monitor(config, repository, client, dispatcher, run_id=run_id, log=logger)
        print(json.dumps(summary.to_dict()))
        return EXIT_PARTIAL if summary.errors else EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError as exc:
        print(f"{exc.error_code}: {exc}", file=sys.stderr)
        return EXIT_HARD_FAIL
    except Exception as exc:
        print(f"UNEXPECTED_ERROR: {exc}", file=sys.stderr)
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
