"""Notification eligibility and webhook delivery with retry/backoff."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Callable, Sequence

import requests
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

from shiftwatch.common.code_format import STATUS_ACTIVE
from shiftwatch.common.constants import DEFAULT_DESTINATION
from shiftwatch.common.errors import StageError
from shiftwatch.common.http import HttpClient
from shiftwatch.common.ids import generate_record_id
from shiftwatch.common.logging import log_event
from shiftwatch.common.models import CanonicalCode, DeliveryAttempt
from shiftwatch.common.time_utils import parse_timestamp, utc_now, utc_timestamp_iso
from shiftwatch.store.repository import CodeRepository

MAX_DELIVERY_ATTEMPTS = 3
BACKOFF_BASE_SECONDS = 1.0
RETRY_AFTER_MIN_SECONDS = 1
RETRY_AFTER_MAX_SECONDS = 3600

DELIVERY_SENT = "SENT"
DELIVERY_SKIPPED = "SKIPPED"
EMBED_COLOR = 0xFFC43D

logger = logging.getLogger(__name__)


class DeliveryError(StageError):
    error_code = "DELIVERY_ERROR"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RetryableDeliveryError(DeliveryError):
    pass


class RateLimitedDeliveryError(RetryableDeliveryError):
    def __init__(self, message: str, *, retry_after: float, status_code: int = 429) -> None:
        super().__init__(message, status_code=status_code)
        self.retry_after = retry_after


def is_eligible(code: CanonicalCode, now: datetime) -> bool:
    if code.is_fallback:
        return False
    if code.status != STATUS_ACTIVE:
        return False
    if code.expires_at:
        expires_at = parse_timestamp(code.expires_at)
        if expires_at is not None and expires_at <= now:
            return False
    return True


def parse_retry_after(header: str | None, *, now: datetime | None = None) -> int:
    """Seconds to wait for a ``Retry-After`` value, clamped to [1, 3600]."""
    if not header:
        return RETRY_AFTER_MIN_SECONDS
    value = header.strip()
    try:
        seconds = float(value)
    except ValueError:
        seconds = None
    if seconds is not None and seconds >= 0 and math.isfinite(seconds):
        return max(RETRY_AFTER_MIN_SECONDS, min(RETRY_AFTER_MAX_SECONDS, math.ceil(seconds)))

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return RETRY_AFTER_MIN_SECONDS
    if retry_at is None:
        return RETRY_AFTER_MIN_SECONDS
    reference = now or utc_now()
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=reference.tzinfo)
    diff = math.ceil((retry_at - reference).total_seconds())
    return max(RETRY_AFTER_MIN_SECONDS, min(RETRY_AFTER_MAX_SECONDS, diff))


def _format_utc_date(value: str | None) -> str | None:
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    return f"{parsed.strftime('%Y-%m-%d')} (UTC)"


def build_webhook_payload(code: CanonicalCode) -> dict:
    lines = [
        f"**Code:** `{code.code_text}`",
        f"**Sources:** {', '.join(code.sources)}",
        f"**Status:** {code.status}",
        f"**First seen:** {_format_utc_date(code.first_seen_at) or code.first_seen_at}",
        f"**Expires:** {_format_utc_date(code.expires_at) or 'Unknown'}",
        f"**Reward:** {code.reward}",
    ]
    if code.metadata.url:
        lines.append(f"**Source URL:** {code.metadata.url}")
    if code.metadata.notes:
        lines.append(code.metadata.notes)

    return {
        "content": "Borderlands 4 SHiFT code update!",
        "embeds": [
            {
                "title": "New SHiFT Code discovered",
                "description": "\n".join(lines),
                "color": EMBED_COLOR,
                "timestamp": utc_timestamp_iso(),
                "footer": {"text": "Borderlands 4 SHiFT Monitor"},
            }
        ],
    }


def backoff_wait(retry_state: RetryCallState) -> float:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if isinstance(exc, RateLimitedDeliveryError):
        return float(exc.retry_after)
    return BACKOFF_BASE_SECONDS * 2 ** (retry_state.attempt_number - 1)


@dataclass
class DispatchResult:
    attempted: int = 0
    sent: int = 0
    attempts: list[DeliveryAttempt] = field(default_factory=list)

    @property
    def sent_records(self) -> list[DeliveryAttempt]:
        return [attempt for attempt in self.attempts if attempt.status == DELIVERY_SENT]


class WebhookDispatcher:
    """Deliver code notifications and record one terminal outcome per code."""

    def __init__(
        self,
        repository: CodeRepository,
        *,
        webhook_url: str | None,
        live: bool,
        client: HttpClient | None = None,
        destination: str = DEFAULT_DESTINATION,
        sleep: Callable[[float], None] = time.sleep,
        log: logging.Logger | None = None,
    ) -> None:
        self.repository = repository
        self.webhook_url = webhook_url
        self.live = live
        self.client = client or HttpClient()
        self.destination = destination
        self.sleep = sleep
        self.log = log or logger

    def _post_once(self, payload: dict) -> requests.Response:
        try:
            response = self.client.post_json(self.webhook_url, payload)
        except requests.RequestException as exc:
            raise RetryableDeliveryError(str(exc) or exc.__class__.__name__) from exc

        status = response.status_code
        if 200 <= status < 300:
            return response
        if status == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            raise RateLimitedDeliveryError(f"HTTP {status}", retry_after=retry_after)
        if status >= 500:
            raise RetryableDeliveryError(f"HTTP {status}", status_code=status)
        raise DeliveryError(f"HTTP {status}", status_code=status)

    def _log_retry(self, code: CanonicalCode) -> Callable[[RetryCallState], None]:
        def before_sleep(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            log_event(
                self.log,
                f"delivery retry for {code.code_text}: {exc}",
                level=logging.WARNING,
                stage="dispatch",
                code_hash=code.hash,
                event="DELIVERY_RETRY",
                status="retry",
                attempt=retry_state.attempt_number,
            )

        return before_sleep

    def _record(self, code: CanonicalCode, status: str, **details) -> DeliveryAttempt:
        attempt = DeliveryAttempt(
            id=generate_record_id(),
            code_hash=code.hash,
            status=status,
            destination=self.destination,
            created_at=utc_timestamp_iso(),
            **details,
        )
        self.repository.save_delivery_attempt(attempt)
        message = f"delivery {status.lower()} for {code.code_text}"
        if details.get("error"):
            message = f"{message}: {details['error']}"
        log_event(
            self.log,
            message,
            stage="dispatch",
            code_hash=code.hash,
            event=f"DELIVERY_{status}",
            status=status.lower(),
        )
        return attempt

    def deliver(self, code: CanonicalCode) -> DeliveryAttempt:
        if not self.webhook_url:
            return self._record(code, DELIVERY_SKIPPED, error="not configured")
        if not self.live:
            return self._record(code, DELIVERY_SKIPPED, error="dry-run")

        payload = build_webhook_payload(code)
        retrying = Retrying(
            stop=stop_after_attempt(MAX_DELIVERY_ATTEMPTS),
            wait=backoff_wait,
            retry=retry_if_exception_type(RetryableDeliveryError),
            sleep=self.sleep,
            before_sleep=self._log_retry(code),
            reraise=True,
        )
        try:
            response = retrying(self._post_once, payload)
        except DeliveryError as exc:
            return self._record(code, DELIVERY_SKIPPED, response_status=exc.status_code, error=str(exc))
        return self._record(code, DELIVERY_SENT, response_status=response.status_code)

    def dispatch(self, codes: Sequence[CanonicalCode]) -> DispatchResult:
        result = DispatchResult(attempted=len(codes))
        for code in codes:
            attempt = self.deliver(code)
            result.attempts.append(attempt)
            if attempt.status == DELIVERY_SENT:
                result.sent += 1
        return result
