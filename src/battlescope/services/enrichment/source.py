"""
Killmail detail sources for enrichment.

zKillboard's per-kill endpoint returns a one-element array holding the
``zkb`` block (hash, values, points). Older responses also embed the full
killmail; current ones do not, in which case the ESI killmail is fetched
by hash and merged as ``{"killmail": esi, "zkb": zkb}``.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

import httpx

from ...core.constants import ESI_KILLMAIL_URL, ZKILL_KILLMAIL_URL
from ...core.errors import EnrichmentFetchError, UpstreamError
from ...core.http_client import create_http_client
from ...core.logging import get_logger
from ...core.retry import http_retry, raise_for_upstream_status

logger = get_logger(__name__)


@runtime_checkable
class EnrichmentSource(Protocol):
    """Anything that can return the detail payload for a killmail id."""

    async def fetch_killmail(self, killmail_id: int) -> dict[str, Any]:
        """
        Raises:
            EnrichmentFetchError: If no payload could be obtained
        """
        ...


@http_retry()
async def fetch_esi_killmail(
    client: httpx.AsyncClient,
    killmail_id: int,
    killmail_hash: str,
) -> dict[str, Any]:
    """
    Fetch a single killmail from ESI.

    Transient failures (429, 502-504, network errors) are retried.

    Raises:
        UpstreamError: For any non-2xx response after retries
    """
    url = ESI_KILLMAIL_URL.format(killmail_id=killmail_id, killmail_hash=killmail_hash)
    response = await client.get(url)
    raise_for_upstream_status(response, "ESI")
    return response.json()


class ZKillboardDetailSource:
    """
    Fetches enrichment payloads from zKillboard, completing them from ESI.

    Args:
        client: Shared HTTP client; one is created (and owned) if omitted
        url_template: Detail URL with a ``{killmail_id}`` placeholder
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        url_template: str = ZKILL_KILLMAIL_URL,
    ):
        self._client = client or create_http_client()
        self._owns_client = client is None
        self.url_template = url_template

    async def fetch_killmail(self, killmail_id: int) -> dict[str, Any]:
        url = self.url_template.format(killmail_id=killmail_id)
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise EnrichmentFetchError(killmail_id, f"zKillboard request failed: {e}") from e

        if response.status_code != 200:
            raise EnrichmentFetchError(
                killmail_id,
                f"zKillboard returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        data = response.json()
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            raise EnrichmentFetchError(killmail_id, "zKillboard returned no data for killmail")

        entry = data[0]
        if isinstance(entry.get("victim"), dict):
            return entry

        zkb = entry.get("zkb") or {}
        killmail_hash = zkb.get("hash")
        if not killmail_hash:
            # Nothing to complete the entry with; store what zKillboard gave us
            return entry

        try:
            esi = await fetch_esi_killmail(self._client, killmail_id, killmail_hash)
        except UpstreamError as e:
            raise EnrichmentFetchError(killmail_id, e.message, status_code=e.status_code) from e
        except httpx.HTTPError as e:
            raise EnrichmentFetchError(killmail_id, f"ESI request failed: {e}") from e

        logger.debug("Merged ESI killmail %d with zKillboard data", killmail_id)
        return {"killmail": esi, "zkb": zkb}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
