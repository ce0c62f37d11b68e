"""One monitoring pass: fetch, canonicalise, reduce, merge, dispatch, summarise."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Sequence

import requests

from shiftwatch.common.code_format import STATUS_ACTIVE
from shiftwatch.common.config_loader import MonitorConfig, SourceConfig
from shiftwatch.common.errors import StageError
from shiftwatch.common.http import HttpClient
from shiftwatch.common.ids import generate_run_id
from shiftwatch.common.logging import log_event
from shiftwatch.common.models import CanonicalCode, RunSummary
from shiftwatch.common.time_utils import parse_timestamp, to_iso, utc_now
from shiftwatch.pipeline.canonicalize import canonicalize_draft
from shiftwatch.pipeline.merge import merge_observation
from shiftwatch.pipeline.notify import DispatchResult, WebhookDispatcher
from shiftwatch.pipeline.reduce import reduce_batch
from shiftwatch.sources.runner import FAILURE_HTTP5XX, FAILURE_HTTP429, classify_failure, fetch_source
from shiftwatch.store.repository import CodeRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResendSummary:
    requested: int
    attempted: int
    sent: int
    skipped: int


class RunState:
    """Mutable bookkeeping for a single run."""

    def __init__(self, known: Iterable[CanonicalCode]) -> None:
        self.known: dict[str, CanonicalCode] = {code.hash: code for code in known}
        self.new_hashes: list[str] = []
        self.candidates: dict[str, CanonicalCode] = {}
        self.sources_scanned: list[str] = []
        self.errors = 0
        self.http429 = 0
        self.http5xx = 0


def _within_backfill(code: CanonicalCode, cutoff: datetime) -> bool:
    first_seen = parse_timestamp(code.first_seen_at)
    return first_seen is None or first_seen >= cutoff


def _merge_batch(
    state: RunState,
    batch: Sequence[CanonicalCode],
    repository: CodeRepository,
    *,
    now: datetime,
    backfill_cutoff: datetime,
    run_id: str,
    source: str,
    log: logging.Logger,
) -> None:
    for incoming in batch:
        outcome = merge_observation(state.known.get(incoming.hash), incoming, now=now)
        repository.save_code(outcome.record)
        state.known[incoming.hash] = outcome.record

        if outcome.is_new:
            state.new_hashes.append(incoming.hash)
            event, verb = "CODE_NEW", "new"
        else:
            event, verb = "CODE_UPDATED", "updated"

        # Keyed by hash so a code seen by several sources is sent once, in its latest form.
        if outcome.notify_candidate and _within_backfill(outcome.record, backfill_cutoff):
            state.candidates[incoming.hash] = outcome.record
        else:
            state.candidates.pop(incoming.hash, None)

        log_event(
            log,
            f"{verb} code {outcome.record.code_text}",
            level=logging.DEBUG,
            run_id=run_id,
            stage="merge",
            source=source,
            code_hash=incoming.hash,
            event=event,
            status="ok",
        )


def _process_source(
    state: RunState,
    source_cfg: SourceConfig,
    config: MonitorConfig,
    client: HttpClient,
    repository: CodeRepository,
    *,
    now: datetime,
    backfill_cutoff: datetime,
    run_id: str,
    log: logging.Logger,
) -> None:
    started = time.monotonic()
    log_event(
        log,
        f"fetching {source_cfg.name}",
        run_id=run_id,
        stage="fetch",
        source=source_cfg.name,
        event="SOURCE_START",
        status="ok",
    )
    state.sources_scanned.append(source_cfg.name)

    try:
        fetched = fetch_source(source_cfg, client)
    except (StageError, requests.RequestException) as exc:
        failure = classify_failure(exc)
        state.errors += 1
        if failure == FAILURE_HTTP429:
            state.http429 += 1
        elif failure == FAILURE_HTTP5XX:
            state.http5xx += 1
        log_event(
            log,
            f"fetch failed for {source_cfg.name}: {exc}",
            level=logging.WARNING,
            run_id=run_id,
            stage="fetch",
            source=source_cfg.name,
            event="SOURCE_FAIL",
            status="error",
            error_code=getattr(exc, "error_code", "TRANSPORT_ERROR"),
        )
        return

    if fetched.used_fallback:
        log_event(
            log,
            f"no endpoint configured for {source_cfg.name}, using sample records",
            run_id=run_id,
            stage="fetch",
            source=source_cfg.name,
            event="SOURCE_FALLBACK",
            status="fallback",
        )

    canonical = [
        code
        for code in (
            canonicalize_draft(draft, source=fetched.source, title=config.title, collected_at=fetched.collected_at)
            for draft in fetched.drafts
        )
        if code is not None
    ]
    batch = reduce_batch(canonical)
    _merge_batch(
        state,
        batch,
        repository,
        now=now,
        backfill_cutoff=backfill_cutoff,
        run_id=run_id,
        source=source_cfg.name,
        log=log,
    )
    log_event(
        log,
        f"processed {source_cfg.name}",
        run_id=run_id,
        stage="merge",
        source=source_cfg.name,
        event="SOURCE_END",
        status="ok",
        duration_ms=int((time.monotonic() - started) * 1000),
        rows_in=len(fetched.drafts),
        rows_out=len(batch),
    )


def mark_notified(
    repository: CodeRepository,
    dispatch: DispatchResult,
    known: dict[str, CanonicalCode] | None = None,
) -> None:
    """Persist ``notified_at`` for every SENT outcome, touching no other field."""
    for attempt in dispatch.sent_records:
        stored = repository.load_code(attempt.code_hash)
        if stored is None:
            continue
        updated = stored.with_metadata(notified_at=attempt.created_at)
        repository.save_code(updated)
        if known is not None:
            known[updated.hash] = updated


def run_monitor(
    config: MonitorConfig,
    repository: CodeRepository,
    client: HttpClient,
    dispatcher: WebhookDispatcher,
    *,
    run_id: str | None = None,
    now: datetime | None = None,
    log: logging.Logger | None = None,
) -> RunSummary:
    """Run one monitoring pass over the configured sources, in order.

    A failing source is counted and skipped. Store failures are not caught
    and abort the run.
    """
    run_id = run_id or generate_run_id()
    now = now or utc_now()
    log = log or logger
    started = time.monotonic()
    backfill_cutoff = now - timedelta(days=config.backfill_days)

    log_event(log, "monitor run start", run_id=run_id, stage="run", event="RUN_START", status="ok")
    state = RunState(repository.list_codes())

    for source_cfg in config.sources:
        _process_source(
            state,
            source_cfg,
            config,
            client,
            repository,
            now=now,
            backfill_cutoff=backfill_cutoff,
            run_id=run_id,
            log=log,
        )

    dispatch = dispatcher.dispatch(list(state.candidates.values()))
    mark_notified(repository, dispatch, state.known)

    total = len(state.known)
    new = len(state.new_hashes)
    summary = RunSummary(
        run_id=run_id,
        run_at=to_iso(now),
        total_codes=total,
        new_codes=new,
        # Approximation kept on purpose: counts updated records as duplicates too.
        duplicates_skipped=total - new,
        notifications_sent=dispatch.sent,
        errors=state.errors,
        http429=state.http429,
        http5xx=state.http5xx,
        sources_scanned=tuple(state.sources_scanned),
        duration_seconds=round(time.monotonic() - started, 3),
    )
    repository.save_run_summary(summary)
    log_event(
        log,
        "monitor run end",
        run_id=run_id,
        stage="run",
        event="RUN_END",
        status="partial" if state.errors else "ok",
        duration_ms=int(summary.duration_seconds * 1000),
        rows_out=new,
    )
    return summary


def resend_notifications(
    repository: CodeRepository,
    dispatcher: WebhookDispatcher,
    *,
    code_hashes: Iterable[str] | None = None,
    statuses: Sequence[str] | None = None,
    limit: int | None = None,
    include_fallback: bool = False,
    include_expired: bool = False,
    now: datetime | None = None,
) -> ResendSummary:
    """Re-dispatch stored codes regardless of whether they were notified before."""
    now = now or utc_now()
    wanted = set(code_hashes) if code_hashes is not None else None
    allowed_statuses = list(statuses) if statuses else [STATUS_ACTIVE]

    selected = []
    for code in repository.list_codes():
        if not include_fallback and code.is_fallback:
            continue
        if not include_expired and code.expires_at:
            expires_at = parse_timestamp(code.expires_at)
            if expires_at is not None and expires_at <= now:
                continue
        if wanted is not None and code.hash not in wanted:
            continue
        if code.status not in allowed_statuses:
            continue
        selected.append(code)

    if limit is not None and limit > 0:
        selected = selected[:limit]
    if not selected:
        return ResendSummary(requested=0, attempted=0, sent=0, skipped=0)

    candidates = [code.with_metadata(notified_at=None) for code in selected]
    dispatch = dispatcher.dispatch(candidates)
    mark_notified(repository, dispatch)
    return ResendSummary(
        requested=len(selected),
        attempted=dispatch.attempted,
        sent=dispatch.sent,
        skipped=dispatch.attempted - dispatch.sent,
    )
