"""
BattleScope Retry Logic

Exponential backoff for transient upstream HTTP failures, built on tenacity.

Retries on:
- 429 (rate limited), 502, 503, 504
- httpx network errors (connect/read timeouts, connection resets)

Used by the history backfill client and the ESI killmail fetch. The
ingestion loop and the enrichment queue apply their own retry policy and
do not use this decorator.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Optional, TypeVar

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from .errors import UpstreamError
from .logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_WAIT = 2  # seconds
DEFAULT_MAX_WAIT = 30  # seconds

# HTTP status codes that should trigger retry
RETRYABLE_STATUS_CODES = {
    429,  # Too Many Requests (rate limited)
    502,  # Bad Gateway
    503,  # Service Unavailable
    504,  # Gateway Timeout
}


def parse_retry_after(headers: Mapping[str, str]) -> Optional[int]:
    """
    Parse Retry-After header from HTTP response.

    Only the delta-seconds form is handled.

    Returns:
        Number of seconds to wait, or None if absent or unparseable
    """
    retry_after = headers.get("Retry-After")
    if not retry_after:
        return None
    try:
        return int(retry_after)
    except ValueError:
        return None


def raise_for_upstream_status(response: httpx.Response, source: str) -> None:
    """
    Raise UpstreamError for any non-2xx response.

    Args:
        response: Response to check
        source: Human-readable upstream name used in the message
    """
    if response.is_success:
        return
    raise UpstreamError(
        f"{source} returned HTTP {response.status_code}",
        status_code=response.status_code,
        retry_after=parse_retry_after(response.headers),
    )


def should_retry_exception(exc: BaseException) -> bool:
    """
    Determine if an exception should trigger a retry.

    Args:
        exc: The exception to check

    Returns:
        True if the request should be retried
    """
    if isinstance(exc, UpstreamError):
        return exc.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exc, httpx.RequestError):
        return True
    return False


def http_retry(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    min_wait: float = DEFAULT_MIN_WAIT,
    max_wait: float = DEFAULT_MAX_WAIT,
) -> Callable[[F], F]:
    """
    Decorator for upstream requests with retry logic.

    Works on both plain and ``async def`` functions.

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        min_wait: Initial wait between attempts in seconds (default: 2)
        max_wait: Maximum wait between attempts in seconds (default: 30)

    Usage:
        @http_retry()
        async def fetch(client, url):
            ...
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential_jitter(
            initial=min_wait,
            max=max_wait,
            jitter=max_wait * 0.1,
        ),
        retry=retry_if_exception(should_retry_exception),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
