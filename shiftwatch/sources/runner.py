"""Source fetching with per-kind extraction and fail-soft collection."""

from __future__ import annotations

import logging
from typing import Callable, Iterable

import requests

from shiftwatch.common.config_loader import MonitorConfig, SourceConfig
from shiftwatch.common.errors import StageError
from shiftwatch.common.http import ACCEPT_HTML, ACCEPT_JSON, HttpClient, HttpRequestError
from shiftwatch.common.logging import log_event
from shiftwatch.common.models import CollectedDraft, SourceFetchResult
from shiftwatch.common.time_utils import utc_timestamp_iso
from shiftwatch.sources.article import extract_article_drafts
from shiftwatch.sources.feed import extract_feed_drafts
from shiftwatch.sources.samples import sample_drafts

FAILURE_HTTP429 = "http429"
FAILURE_HTTP5XX = "http5xx"
FAILURE_OTHER = "other"

logger = logging.getLogger(__name__)


def _extract_json_feed(client: HttpClient, source: SourceConfig) -> Iterable[CollectedDraft]:
    body = client.get_text(source.url, accept=ACCEPT_JSON)
    return extract_feed_drafts(body, feed_url=source.url)


def _extract_article(client: HttpClient, source: SourceConfig) -> Iterable[CollectedDraft]:
    body = client.get_text(source.url, accept=ACCEPT_HTML)
    return extract_article_drafts(body, caption_marker=source.caption_marker or "", page_url=source.url)


EXTRACTORS: dict[str, Callable[[HttpClient, SourceConfig], Iterable[CollectedDraft]]] = {
    "json_feed": _extract_json_feed,
    "article": _extract_article,
}


def classify_failure(exc: BaseException) -> str:
    status = getattr(exc, "status_code", None)
    if isinstance(exc, HttpRequestError) and status is not None:
        if status == 429:
            return FAILURE_HTTP429
        if 500 <= status <= 599:
            return FAILURE_HTTP5XX
    return FAILURE_OTHER


def fetch_source(source: SourceConfig, client: HttpClient) -> SourceFetchResult:
    """Fetch and extract one source.

    A source without a URL contributes its fallback samples instead of a live
    fetch. HTTP and transport failures propagate for the caller to classify.
    """
    collected_at = utc_timestamp_iso()
    if not source.url:
        return SourceFetchResult(
            source=source.name,
            drafts=sample_drafts(source.name),
            collected_at=collected_at,
            used_fallback=True,
        )

    extractor = EXTRACTORS.get(source.kind)
    if extractor is None:
        raise StageError(f"Unknown source kind for {source.name}: {source.kind}")
    drafts = tuple(extractor(client, source))
    return SourceFetchResult(source=source.name, drafts=drafts, collected_at=collected_at)


def collect_all_sources(
    config: MonitorConfig,
    client: HttpClient,
    *,
    log: logging.Logger | None = None,
) -> dict:
    """Fetch every enabled source without persisting anything.

    One source failing never stops the others; failures are listed by name.
    """
    log = log or logger
    results: dict[str, SourceFetchResult] = {}
    failures: dict[str, str] = {}

    for source in config.sources:
        try:
            results[source.name] = fetch_source(source, client)
        except (StageError, requests.RequestException) as exc:
            failures[source.name] = classify_failure(exc)
            log_event(
                log,
                f"collection failed for {source.name}: {exc}",
                level=logging.WARNING,
                stage="fetch",
                source=source.name,
                event="SOURCE_FAIL",
                status="error",
                error_code=getattr(exc, "error_code", "TRANSPORT_ERROR"),
            )

    return {"results": results, "failed_sources": failures}
