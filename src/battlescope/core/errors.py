"""
BattleScope Exceptions

All errors raised by the pipeline derive from BattlescopeError so callers
(the CLI and the queue runtime) can catch the package's own failures
without swallowing programming errors.
"""

from __future__ import annotations

from typing import Optional


class BattlescopeError(Exception):
    """Base class for BattleScope errors."""

    def __init__(self, message: str) -> None:
        self.message: str = message
        super().__init__(message)


class UpstreamError(BattlescopeError):
    """
    An upstream HTTP endpoint (RedisQ, zKillboard, ESI) answered with a
    non-success status or could not be reached.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.status_code: Optional[int] = status_code
        self.retry_after: Optional[int] = retry_after  # Retry-After header value in seconds


class EnrichmentFetchError(UpstreamError):
    """The detail source returned no usable payload for a killmail."""

    def __init__(
        self,
        killmail_id: int,
        message: str,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.killmail_id = killmail_id


class PayloadError(BattlescopeError):
    """A feed or detail payload is missing required fields."""


class StoreNotInitializedError(BattlescopeError, RuntimeError):
    """The store was used before initialize() was awaited."""

    def __init__(self, message: str = "Store not initialized. Call initialize() first.") -> None:
        super().__init__(message)
