"""
Killmail feed sources.

RedisQ is a long-poll endpoint: each request waits up to ``ttw`` seconds for
the next kill and returns ``{"package": {...}}`` or ``{"package": null}``.

Package formats:
- New format (2025+): ``{"killID": 123, "killmail": {...}, "zkb": {...}}``
  (the ``killmail`` block may be omitted, in which case it is fetched from ESI)
- Old format: ``{"killmail": {"killmail_id": 123, ...}, "zkb": {...}}``
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from typing import Any, Optional, Protocol, runtime_checkable

import httpx

from ...core.config import get_settings
from ...core.errors import PayloadError, UpstreamError
from ...core.formatters import parse_datetime
from ...core.http_client import create_http_client
from ...core.logging import get_logger
from ...core.retry import parse_retry_after
from ...models import KillmailEvent
from ..enrichment.source import fetch_esi_killmail

logger = get_logger(__name__)

DEFAULT_RATE_LIMIT_BACKOFF = 30


@runtime_checkable
class KillmailSource(Protocol):
    async def pull(self) -> Optional[KillmailEvent]:
        """
        Return the next killmail, or None if none is available right now.

        Raises:
            UpstreamError: If the feed could not be read
        """
        ...

    async def aclose(self) -> None: ...


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def build_killmail_event(
    killmail: Mapping[str, Any],
    zkb: Optional[Mapping[str, Any]] = None,
    killmail_id: Optional[int] = None,
) -> KillmailEvent:
    """
    Build a KillmailEvent from an ESI-shaped killmail and its zKillboard block.

    Args:
        killmail: ESI killmail (``killmail_time``, ``solar_system_id``,
            ``victim``, ``attackers``)
        zkb: zKillboard metadata (``hash``, ``totalValue``, ``url``)
        killmail_id: Overrides ``killmail["killmail_id"]``

    Raises:
        PayloadError: If the id, system or time is missing
    """
    zkb = zkb or {}
    kill_id = _optional_int(killmail_id if killmail_id is not None else killmail.get("killmail_id"))
    if not kill_id:
        raise PayloadError("Killmail has no killmail_id")

    system_id = _optional_int(killmail.get("solar_system_id"))
    if system_id is None:
        raise PayloadError(f"Killmail {kill_id} has no solar_system_id")

    occurred_at = parse_datetime(killmail.get("killmail_time") or "")
    if occurred_at is None:
        raise PayloadError(f"Killmail {kill_id} has no valid killmail_time")

    victim = killmail.get("victim") or {}
    attackers = [a for a in killmail.get("attackers") or [] if isinstance(a, Mapping)]

    total_value = zkb.get("totalValue")
    isk_value = float(total_value) if isinstance(total_value, (int, float)) else None

    return KillmailEvent(
        killmail_id=kill_id,
        system_id=system_id,
        occurred_at=occurred_at,
        victim_alliance_id=_optional_int(victim.get("alliance_id")),
        victim_corp_id=_optional_int(victim.get("corporation_id")),
        victim_character_id=_optional_int(victim.get("character_id")),
        attacker_alliance_ids=tuple(_optional_int(a.get("alliance_id")) for a in attackers),
        attacker_corp_ids=tuple(_optional_int(a.get("corporation_id")) for a in attackers),
        attacker_character_ids=tuple(_optional_int(a.get("character_id")) for a in attackers),
        isk_value=isk_value,
        zkb_url=zkb.get("url") or "",
        killmail_hash=zkb.get("hash") or None,
    )


class RedisQSource:
    """
    Long-polls zKillboard RedisQ for new killmails.

    Args:
        url: RedisQ listen endpoint
        queue_id: Upstream queue identifier; a random one is generated if omitted
        ttw: Seconds the upstream may hold the request open (1-10)
        client: Shared HTTP client; one is created (and owned) if omitted
    """

    def __init__(
        self,
        url: Optional[str] = None,
        queue_id: Optional[str] = None,
        ttw: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.url = url or settings.redisq_url
        self.queue_id = queue_id or settings.redisq_queue_id or f"battlescope-{uuid.uuid4().hex[:8]}"
        self.ttw = ttw or settings.redisq_ttw_seconds
        self._client = client or create_http_client()
        self._owns_client = client is None

    async def pull(self) -> Optional[KillmailEvent]:
        params = {"queueID": self.queue_id, "ttw": str(self.ttw)}
        try:
            response = await self._client.get(self.url, params=params)
        except httpx.HTTPError as e:
            raise UpstreamError(f"RedisQ request failed: {e}") from e

        if response.status_code == 429:
            # Rate limited - respect Retry-After header or use default backoff
            retry_after = parse_retry_after(response.headers) or DEFAULT_RATE_LIMIT_BACKOFF
            raise UpstreamError(
                "RedisQ rate limited (429)", status_code=429, retry_after=retry_after
            )

        if response.status_code != 200:
            raise UpstreamError(
                f"RedisQ returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(f"RedisQ returned invalid JSON: {e}") from e

        package = data.get("package") if isinstance(data, dict) else None
        if package is None:
            # No kill available (normal during quiet periods)
            return None

        return await self.parse_package(package)

    async def parse_package(self, package: Mapping[str, Any]) -> KillmailEvent:
        """
        Convert a RedisQ package to a KillmailEvent.

        Raises:
            PayloadError: If the package cannot be turned into an event
        """
        zkb = package.get("zkb") or {}
        killmail = package.get("killmail") or {}
        kill_id = _optional_int(package.get("killID")) or _optional_int(killmail.get("killmail_id"))
        if not kill_id:
            raise PayloadError("RedisQ package has no kill id")

        if "killmail_time" not in killmail:
            killmail_hash = zkb.get("hash")
            if not killmail_hash:
                raise PayloadError(f"RedisQ package {kill_id} has neither killmail nor hash")
            killmail = await fetch_esi_killmail(self._client, kill_id, killmail_hash)

        return build_killmail_event(killmail, zkb, killmail_id=kill_id)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
