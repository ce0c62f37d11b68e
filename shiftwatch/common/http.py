"""HTTP client with timeouts and host-aware rate limiting.

Source fetches are single-shot: a failing status raises immediately and the
caller decides what the failure means.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from types import TracebackType
from typing import Any
from urllib.parse import urlparse

import requests

from shiftwatch.common.constants import USER_AGENT
from shiftwatch.common.errors import StageError

ACCEPT_JSON = "application/json"
ACCEPT_HTML = "text/html,application/xhtml+xml"


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = 10.0
    read: float = 30.0


class HttpRequestError(StageError):
    error_code = "HTTP_ERROR"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TokenBucket:
    def __init__(self, rate_per_sec: float, capacity: float | None = None) -> None:
        self.rate_per_sec = rate_per_sec
        self.capacity = capacity if capacity is not None else max(rate_per_sec, 1.0)
        self.tokens = self.capacity
        self.updated_at = time.monotonic()
        self.lock = threading.Lock()

    def acquire(self, tokens: float = 1.0) -> None:
        while True:
            with self.lock:
                now = time.monotonic()
                elapsed = now - self.updated_at
                self.tokens = min(self.capacity, self.tokens + elapsed * self.rate_per_sec)
                self.updated_at = now
                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return
                deficit = tokens - self.tokens
                wait_for = max(deficit / self.rate_per_sec, 0.01)
            time.sleep(wait_for)


class HostRateLimiter:
    def __init__(self, default_rate_per_sec: float) -> None:
        self.default_rate_per_sec = default_rate_per_sec
        self.buckets: dict[str, TokenBucket] = {}
        self.lock = threading.Lock()

    def acquire(self, host: str, tokens: float = 1.0) -> None:
        with self.lock:
            bucket = self.buckets.get(host)
            if bucket is None:
                bucket = TokenBucket(rate_per_sec=self.default_rate_per_sec)
                self.buckets[host] = bucket
        bucket.acquire(tokens=tokens)


class HttpClient:
    def __init__(
        self,
        *,
        timeout: TimeoutConfig | None = None,
        rate_per_sec: float = 2.0,
    ) -> None:
        self.timeout = timeout or TimeoutConfig()
        self.session = requests.Session()
        self.limiter = HostRateLimiter(default_rate_per_sec=rate_per_sec)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _host(self, url: str) -> str:
        return urlparse(url).netloc

    def _headers(self, accept: str, headers: dict[str, str] | None) -> dict[str, str]:
        out = {"User-Agent": USER_AGENT, "Accept": accept}
        if headers:
            out.update(headers)
        return out

    def _raise_for_status(self, response: requests.Response) -> None:
        status = response.status_code
        if status >= 400:
            raise HttpRequestError(f"HTTP {status}", status_code=status)

    def get_text(
        self,
        url: str,
        *,
        accept: str = ACCEPT_JSON,
        headers: dict[str, str] | None = None,
    ) -> str:
        self.limiter.acquire(self._host(url))
        response = self.session.request(
            method="GET",
            url=url,
            headers=self._headers(accept, headers),
            timeout=(self.timeout.connect, self.timeout.read),
        )
        self._raise_for_status(response)
        return response.text

    def post_json(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        """POST a JSON body and hand back the raw response; status handling is the caller's."""
        merged = {"Content-Type": "application/json"}
        if headers:
            merged.update(headers)
        return self.session.request(
            method="POST",
            url=url,
            json=payload,
            headers=self._headers(ACCEPT_JSON, merged),
            timeout=(self.timeout.connect, self.timeout.read),
        )
