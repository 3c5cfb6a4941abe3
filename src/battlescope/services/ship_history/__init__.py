"""
Pilot ship history: extraction from enriched killmails and table rebuilds.
"""

from .processor import ParsedKillmailPayload, ShipHistoryProcessor, parse_enrichment_payload
from .reset import (
    ResetMode,
    ResetOptions,
    ResetProgress,
    ResetResult,
    ShipHistoryResetService,
)

__all__ = [
    "ParsedKillmailPayload",
    "ResetMode",
    "ResetOptions",
    "ResetProgress",
    "ResetResult",
    "ShipHistoryProcessor",
    "ShipHistoryResetService",
    "parse_enrichment_payload",
]
