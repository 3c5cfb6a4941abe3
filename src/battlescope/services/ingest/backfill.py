"""
Historical backfill from the zKillboard history endpoint.

``/api/history/YYYYMMDD.json`` returns every killmail of one UTC day as a
``{"<killmail_id>": "<hash>"}`` object. Each id not yet stored is resolved
to its ESI killmail and admitted through the same path as live events, so
the active ruleset applies to historical data too.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import TYPE_CHECKING, Optional, Protocol

import httpx

from ...core.config import get_settings
from ...core.constants import ZKILL_HISTORY_URL
from ...core.errors import BattlescopeError, UpstreamError
from ...core.formatters import format_history_date
from ...core.http_client import create_http_client
from ...core.logging import get_logger
from ...core.retry import http_retry, raise_for_upstream_status
from ..enrichment.source import fetch_esi_killmail
from .service import IngestionResult
from .source import build_killmail_event

if TYPE_CHECKING:
    from ...models import KillmailEvent
    from .service import IngestionService

logger = get_logger(__name__)


# =============================================================================
# History Client
# =============================================================================


class ZKillboardHistoryClient:
    """
    Client for the zKillboard daily history endpoint.

    Requests are spaced at least ``request_delay_ms`` apart.

    Args:
        url_template: History URL with a ``{day}`` placeholder
        request_delay_ms: Minimum delay between requests
        client: Shared HTTP client; one is created (and owned) if omitted
    """

    def __init__(
        self,
        url_template: str = ZKILL_HISTORY_URL,
        request_delay_ms: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url_template = url_template
        if request_delay_ms is None:
            request_delay_ms = get_settings().backfill_request_delay_ms
        self.request_delay = request_delay_ms / 1000
        self._client = client or create_http_client()
        self._owns_client = client is None
        self._last_request: Optional[float] = None

    async def _throttle(self) -> None:
        if self._last_request is not None:
            remaining = self.request_delay - (time.monotonic() - self._last_request)
            if remaining > 0:
                await asyncio.sleep(remaining)
        self._last_request = time.monotonic()

    @http_retry()
    async def _get_history(self, day: date) -> Optional[dict]:
        await self._throttle()
        url = self.url_template.format(day=format_history_date(day))
        response = await self._client.get(url)
        if response.status_code == 404:
            return None
        raise_for_upstream_status(response, "zKillboard history")
        return response.json()

    async def fetch_date(self, day: date) -> list[tuple[int, str]]:
        """
        Fetch every (killmail_id, hash) pair recorded for one day.

        Returns:
            Pairs sorted by killmail id; empty if the day is unknown (404)
        """
        data = await self._get_history(day)
        if not data:
            return []
        if not isinstance(data, dict):
            raise UpstreamError(f"zKillboard history for {day} is not an object")

        pairs = []
        for key, killmail_hash in data.items():
            try:
                pairs.append((int(key), str(killmail_hash)))
            except (TypeError, ValueError):
                logger.debug("Skipping malformed history entry %r", key)
        pairs.sort()
        return pairs

    async def fetch_date_range(self, start: date, end: date) -> dict[str, list[tuple[int, str]]]:
        """
        Fetch history for every day from start to end inclusive.

        Returns:
            Mapping of ``YYYYMMDD`` to that day's pairs
        """
        if end < start:
            raise ValueError(f"end ({end}) is before start ({start})")
        result: dict[str, list[tuple[int, str]]] = {}
        day = start
        while day <= end:
            result[format_history_date(day)] = await self.fetch_date(day)
            day += timedelta(days=1)
        return result

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


# =============================================================================
# Detail Resolution
# =============================================================================


class KillmailDetailFetcher(Protocol):
    async def fetch(self, killmail_id: int, killmail_hash: str) -> KillmailEvent: ...


class EsiKillmailFetcher:
    """Resolves (id, hash) pairs to KillmailEvents via ESI."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client or create_http_client()
        self._owns_client = client is None

    async def fetch(self, killmail_id: int, killmail_hash: str) -> KillmailEvent:
        esi = await fetch_esi_killmail(self._client, killmail_id, killmail_hash)
        return build_killmail_event(esi, {"hash": killmail_hash}, killmail_id=killmail_id)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


# =============================================================================
# Backfill Run
# =============================================================================


@dataclass
class BackfillStats:
    days: int = 0
    seen: int = 0
    skipped_existing: int = 0
    stored: int = 0
    duplicate: int = 0
    rejected: int = 0
    failed: int = 0
    failed_days: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "days": self.days,
            "seen": self.seen,
            "skipped_existing": self.skipped_existing,
            "stored": self.stored,
            "duplicate": self.duplicate,
            "rejected": self.rejected,
            "failed": self.failed,
            "failed_days": list(self.failed_days),
        }


async def backfill(
    service: IngestionService,
    history: ZKillboardHistoryClient,
    detail_fetcher: KillmailDetailFetcher,
    start: date,
    end: date,
    stop_event: Optional[asyncio.Event] = None,
) -> BackfillStats:
    """
    Ingest every killmail recorded between start and end (inclusive).

    A day whose history cannot be fetched is logged and skipped; a killmail
    whose detail cannot be resolved is counted as failed.

    Args:
        service: Ingestion service used to admit each event
        history: History endpoint client
        detail_fetcher: Resolves (id, hash) to a KillmailEvent
        start: First day
        end: Last day
        stop_event: Stops the run between killmails when set

    Returns:
        BackfillStats
    """
    if end < start:
        raise ValueError(f"end ({end}) is before start ({start})")

    stats = BackfillStats()
    day = start
    while day <= end:
        if stop_event is not None and stop_event.is_set():
            break

        label = format_history_date(day)
        stats.days += 1
        try:
            pairs = await history.fetch_date(day)
        except (BattlescopeError, httpx.HTTPError) as e:
            logger.warning("Backfill: history for %s unavailable: %s", label, e)
            stats.failed_days.append(label)
            day += timedelta(days=1)
            continue

        logger.info("Backfill: %s has %d killmails", label, len(pairs))
        for killmail_id, killmail_hash in pairs:
            if stop_event is not None and stop_event.is_set():
                break
            stats.seen += 1
            if await service.store.killmail_exists(killmail_id):
                stats.skipped_existing += 1
                continue

            try:
                event = await detail_fetcher.fetch(killmail_id, killmail_hash)
                result = await service.ingest_event(event)
            except (BattlescopeError, httpx.HTTPError) as e:
                stats.failed += 1
                logger.warning("Backfill: killmail %d failed: %s", killmail_id, e)
                continue

            if result is IngestionResult.STORED:
                stats.stored += 1
            elif result is IngestionResult.DUPLICATE:
                stats.duplicate += 1
            elif result is IngestionResult.REJECTED:
                stats.rejected += 1

        day += timedelta(days=1)

    logger.info("Backfill complete: %s", stats.to_dict())
    return stats
