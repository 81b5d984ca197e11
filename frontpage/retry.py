"""Exponential backoff for backend source calls."""

from __future__ import annotations

import asyncio
import logging

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_HTTP_CODES = {429, 500, 502, 503, 504}
RETRYABLE_EXCEPTIONS = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.RemoteProtocolError,
    ConnectionError,
    TimeoutError,
)


def _backoff(attempt: int, base_delay: float, max_delay: float) -> float:
    return min(base_delay * (2**attempt), max_delay)


def _retry_after(exc: httpx.HTTPStatusError, default: float, max_delay: float) -> float:
    header = exc.response.headers.get("retry-after")
    if not header:
        return default
    try:
        return min(float(header), max_delay)
    except ValueError:
        return default


async def retry_async(
    fn,
    *args,
    max_retries: int = 2,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    **kwargs,
):
    """Call an async function, retrying transient network and 429/5xx errors.

    Anything else (4xx, malformed payloads) is raised on the first attempt.
    Delays stay short because a user may be waiting on the result.
    """
    last_exc: Exception | None = None
    for attempt in range(max_retries + 1):
        try:
            return await fn(*args, **kwargs)
        except RETRYABLE_EXCEPTIONS as exc:
            last_exc = exc
            if attempt == max_retries:
                break
            delay = _backoff(attempt, base_delay, max_delay)
            logger.warning(
                "Retry %d/%d after %s: %s (waiting %.1fs)",
                attempt + 1, max_retries, type(exc).__name__, exc, delay,
            )
            await asyncio.sleep(delay)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code not in RETRYABLE_HTTP_CODES:
                raise
            last_exc = exc
            if attempt == max_retries:
                break
            delay = _retry_after(
                exc, _backoff(attempt, base_delay, max_delay), max_delay,
            )
            logger.warning(
                "Retry %d/%d after HTTP %d (waiting %.1fs)",
                attempt + 1, max_retries, exc.response.status_code, delay,
            )
            await asyncio.sleep(delay)

    raise last_exc  # type: ignore[misc]
