"""
Outbound HTTP helpers shared by the Telegram and image-host clients.

- RetryPolicy: bounded retry with linear backoff (base_delay * attempt)
- send_request: one httpx call with transport errors mapped to retryable HttpError
- status / body helpers used to build HttpError consistently
"""
import asyncio
import json
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterator, TypeVar

import httpx

from imgrelay.exceptions import HttpError, is_retryable_error

T = TypeVar("T")

BODY_PREVIEW_CHARS = 300


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.2  # seconds
    should_retry: Callable[[BaseException], bool] = field(default=is_retryable_error)
    timeout: float | None = None  # seconds per attempt, covers the whole call

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * attempt

    async def run(self, operation: Callable[[int], Awaitable[T]], *, url: str | None = None) -> T:
        """
        Call operation(attempt) until it succeeds, the error is not retryable,
        or the attempt budget is spent. The last error is re-raised as is.

        An attempt running longer than timeout is cancelled and counts as a
        retryable "Request timeout" HttpError.
        """
        max_attempts = max(1, self.max_attempts)
        attempt = 1
        while True:
            try:
                return await self._attempt(operation, attempt, url)
            except Exception as e:
                if attempt >= max_attempts or not self.should_retry(e):
                    raise
            await asyncio.sleep(self.delay_for(attempt))
            attempt += 1

    async def _attempt(self, operation: Callable[[int], Awaitable[T]], attempt: int, url: str | None) -> T:
        if self.timeout is None:
            return await operation(attempt)
        try:
            return await asyncio.wait_for(operation(attempt), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            target = _safe_url(url) if url else "outbound call"
            raise HttpError(f"Request timeout: {target}", retryable=True) from e


def is_retryable_status(status: int) -> bool:
    return status >= 500 or status == 429


def truncate_text(text: str, max_length: int = BODY_PREVIEW_CHARS) -> str:
    if len(text) <= max_length:
        return text
    return f"{text[:max_length]}..."


def read_json_safe(text: str) -> Any:
    """Parse JSON, returning None for anything that is not valid JSON."""
    try:
        return json.loads(text)
    except ValueError:
        return None


def status_error(label: str, response: httpx.Response, body: str) -> HttpError:
    """Build the HttpError for a non-2xx response."""
    return HttpError(
        f"{label} HTTP {response.status_code}",
        retryable=is_retryable_status(response.status_code),
        status=response.status_code,
        body=truncate_text(body),
    )


@contextmanager
def transport_errors(url: str) -> Iterator[None]:
    """Map httpx timeouts and connection problems to retryable HttpError."""
    try:
        yield
    except httpx.TimeoutException as e:
        raise HttpError(f"Request timeout: {_safe_url(url)}", retryable=True) from e
    except httpx.TransportError as e:
        raise HttpError(f"Request failed: {_safe_url(url)}", retryable=True) from e


async def send_request(client: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
    """Perform one request; the client's timeout bounds the call."""
    with transport_errors(url):
        return await client.request(method, url, **kwargs)


def _safe_url(url: str) -> str:
    # Bot API urls embed the token in the path
    return url.split("/bot", 1)[0] + "/bot***" if "/bot" in url else url


def elapsed_ms(started_at: float) -> int:
    """Milliseconds since a time.monotonic() reading."""
    return int((time.monotonic() - started_at) * 1000)
