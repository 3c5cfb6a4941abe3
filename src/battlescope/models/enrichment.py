"""
Killmail enrichment state.

Each killmail has exactly one enrichment record, which moves through
``pending -> processing -> succeeded | failed``. The record is a closed set
of variants: only EnrichmentSucceeded carries a payload and only
EnrichmentFailed carries an error message, so a succeeded record without
a payload (or a failed one with a payload) cannot be constructed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union


class EnrichmentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class EnrichmentPending:
    killmail_id: int
    created_at: datetime
    updated_at: datetime

    status = EnrichmentStatus.PENDING


@dataclass(frozen=True)
class EnrichmentProcessing:
    killmail_id: int
    created_at: datetime
    updated_at: datetime

    status = EnrichmentStatus.PROCESSING


@dataclass(frozen=True)
class EnrichmentSucceeded:
    killmail_id: int
    created_at: datetime
    updated_at: datetime
    payload: dict[str, Any]
    fetched_at: datetime

    status = EnrichmentStatus.SUCCEEDED


@dataclass(frozen=True)
class EnrichmentFailed:
    killmail_id: int
    created_at: datetime
    updated_at: datetime
    error: str

    status = EnrichmentStatus.FAILED


KillmailEnrichment = Union[
    EnrichmentPending,
    EnrichmentProcessing,
    EnrichmentSucceeded,
    EnrichmentFailed,
]


def build_enrichment(
    killmail_id: int,
    status: str,
    created_at: datetime,
    updated_at: datetime,
    payload: Optional[dict[str, Any]] = None,
    error: Optional[str] = None,
    fetched_at: Optional[datetime] = None,
) -> KillmailEnrichment:
    """
    Build the variant matching a stored status column.

    Raises:
        ValueError: If the status is unknown or a succeeded row has no payload
    """
    state = EnrichmentStatus(status)
    if state is EnrichmentStatus.PENDING:
        return EnrichmentPending(killmail_id, created_at, updated_at)
    if state is EnrichmentStatus.PROCESSING:
        return EnrichmentProcessing(killmail_id, created_at, updated_at)
    if state is EnrichmentStatus.SUCCEEDED:
        if payload is None:
            raise ValueError(f"Succeeded enrichment {killmail_id} has no payload")
        return EnrichmentSucceeded(
            killmail_id, created_at, updated_at, payload, fetched_at or updated_at
        )
    return EnrichmentFailed(killmail_id, created_at, updated_at, error or "")
