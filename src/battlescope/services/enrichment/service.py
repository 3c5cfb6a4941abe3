"""
Enrichment state machine for a single killmail.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from ...core.formatters import get_utc_now
from ...core.logging import get_logger

if TYPE_CHECKING:
    from ..killmail_store import KillmailStore
    from .source import EnrichmentSource

logger = get_logger(__name__)


class EnrichmentService:
    """
    Drives one killmail through ``pending -> processing -> succeeded | failed``.

    Args:
        store: Killmail store holding the enrichment records
        source: Detail source
        throttle_ms: Delay before each upstream fetch
    """

    def __init__(
        self,
        store: KillmailStore,
        source: EnrichmentSource,
        throttle_ms: int = 0,
    ):
        self.store = store
        self.source = source
        self.throttle_ms = throttle_ms

    async def process(self, killmail_id: int) -> None:
        """
        Fetch and persist the detail payload for one killmail.

        Processing an already succeeded killmail fetches again and
        overwrites the stored payload.

        Raises:
            Exception: Whatever the fetch or store raised, after the record
                has been marked failed
        """
        await self.store.upsert_enrichment_pending(killmail_id)
        await self.store.mark_enrichment_processing(killmail_id)

        try:
            if self.throttle_ms > 0:
                await asyncio.sleep(self.throttle_ms / 1000)

            payload = await self.source.fetch_killmail(killmail_id)
            await self.store.mark_enrichment_succeeded(killmail_id, payload, get_utc_now())
        except Exception as e:
            logger.warning("Enrichment failed for killmail %d: %s", killmail_id, e)
            await self.store.mark_enrichment_failed(killmail_id, str(e) or type(e).__name__)
            raise

        logger.debug("Enriched killmail %d", killmail_id)
