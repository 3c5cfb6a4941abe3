"""
BattleScope core infrastructure: configuration, logging, errors, retry
and datetime helpers.
"""

from .config import BattlescopeSettings, get_settings, reset_settings
from .errors import (
    BattlescopeError,
    EnrichmentFetchError,
    PayloadError,
    StoreNotInitializedError,
    UpstreamError,
)
from .formatters import (
    format_datetime,
    from_epoch,
    get_utc_now,
    get_utc_timestamp,
    parse_datetime,
    to_epoch,
)

__all__ = [
    "BattlescopeError",
    "BattlescopeSettings",
    "EnrichmentFetchError",
    "PayloadError",
    "StoreNotInitializedError",
    "UpstreamError",
    "format_datetime",
    "from_epoch",
    "get_settings",
    "get_utc_now",
    "get_utc_timestamp",
    "parse_datetime",
    "reset_settings",
    "to_epoch",
]
