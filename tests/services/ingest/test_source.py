"""Tests for the RedisQ feed source."""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from battlescope.core.errors import PayloadError, UpstreamError
from battlescope.core.http_client import create_http_client
from battlescope.services.ingest import KillmailSource, RedisQSource, build_killmail_event

ZKB = {
    "hash": "abc123",
    "totalValue": 150_000_000.0,
    "url": "https://zkillboard.com/kill/1001/",
}


def make_source(handler) -> RedisQSource:
    client = create_http_client(transport=httpx.MockTransport(handler))
    return RedisQSource(queue_id="test-queue", ttw=1, client=client)


class TestBuildKillmailEvent:
    def test_maps_esi_fields(self, esi_killmail_factory):
        event = build_killmail_event(esi_killmail_factory(), ZKB)

        assert event.killmail_id == 1001
        assert event.system_id == 30000142
        assert event.occurred_at == datetime(2026, 3, 14, 18, 0, tzinfo=timezone.utc)
        assert event.victim_alliance_id == 99000001
        assert event.attacker_character_ids == (2112000002, 2112000003)
        assert event.attacker_alliance_ids == (99000002, 99000002)
        assert event.isk_value == 150_000_000.0
        assert event.zkb_url == ZKB["url"]
        assert event.killmail_hash == "abc123"

    def test_npc_attackers_keep_positions(self, esi_killmail_factory):
        attackers = [{"corporation_id": 1000125, "ship_type_id": 23320}]
        event = build_killmail_event(esi_killmail_factory(attackers=attackers))

        assert event.attacker_character_ids == (None,)
        assert event.attacker_corp_ids == (1000125,)
        assert event.zkb_url == "https://zkillboard.com/kill/1001/"

    @pytest.mark.parametrize("missing", ["solar_system_id", "killmail_time", "killmail_id"])
    def test_missing_required_field(self, esi_killmail_factory, missing):
        killmail = esi_killmail_factory()
        del killmail[missing]

        with pytest.raises(PayloadError):
            build_killmail_event(killmail)


class TestPull:
    async def test_new_format_package(self, esi_killmail_factory):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            package = {"killID": 1001, "killmail": esi_killmail_factory(), "zkb": ZKB}
            return httpx.Response(200, json={"package": package})

        event = await make_source(handler).pull()

        assert event.killmail_id == 1001
        assert seen == {"queueID": "test-queue", "ttw": "1"}

    async def test_old_format_package(self, esi_killmail_factory):
        def handler(request):
            return httpx.Response(
                200, json={"package": {"killmail": esi_killmail_factory(2002), "zkb": ZKB}}
            )

        assert (await make_source(handler).pull()).killmail_id == 2002

    async def test_package_without_killmail_fetched_from_esi(self, esi_killmail_factory):
        def handler(request):
            if request.url.host == "esi.evetech.net":
                assert request.url.path == "/latest/killmails/1001/abc123/"
                return httpx.Response(200, json=esi_killmail_factory())
            return httpx.Response(200, json={"package": {"killID": 1001, "zkb": ZKB}})

        event = await make_source(handler).pull()

        assert event.victim_character_id == 2112000001

    async def test_package_without_killmail_or_hash(self):
        source = make_source(
            lambda request: httpx.Response(200, json={"package": {"killID": 1001, "zkb": {}}})
        )

        with pytest.raises(PayloadError):
            await source.pull()

    async def test_null_package(self):
        source = make_source(lambda request: httpx.Response(200, json={"package": None}))
        assert await source.pull() is None

    async def test_rate_limited(self):
        source = make_source(lambda request: httpx.Response(429, headers={"Retry-After": "12"}))

        with pytest.raises(UpstreamError) as exc_info:
            await source.pull()
        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after == 12

    async def test_rate_limited_default_backoff(self):
        source = make_source(lambda request: httpx.Response(429))

        with pytest.raises(UpstreamError) as exc_info:
            await source.pull()
        assert exc_info.value.retry_after == 30

    async def test_server_error(self):
        source = make_source(lambda request: httpx.Response(503))

        with pytest.raises(UpstreamError) as exc_info:
            await source.pull()
        assert exc_info.value.status_code == 503

    async def test_invalid_json(self):
        source = make_source(lambda request: httpx.Response(200, content=b"<html>"))

        with pytest.raises(UpstreamError):
            await source.pull()

    async def test_network_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(UpstreamError):
            await make_source(handler).pull()


class TestConstruction:
    def test_generates_queue_id(self):
        source = RedisQSource()
        assert source.queue_id.startswith("battlescope-")

    def test_satisfies_protocol(self):
        assert isinstance(RedisQSource(queue_id="q"), KillmailSource)
