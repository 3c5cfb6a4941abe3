"""Tests for the zKillboard/ESI enrichment source."""

from __future__ import annotations

import httpx
import pytest

from battlescope.core.errors import EnrichmentFetchError
from battlescope.core.http_client import create_http_client
from battlescope.services.enrichment import EnrichmentSource, ZKillboardDetailSource

ZKB = {"hash": "abc123", "totalValue": 150_000_000.0, "fittedValue": 90_000_000.0}


def make_source(handler) -> ZKillboardDetailSource:
    client = create_http_client(transport=httpx.MockTransport(handler))
    return ZKillboardDetailSource(client=client)


class TestFetchKillmail:
    async def test_merges_esi_killmail(self, esi_killmail_factory):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(request.url.path)
            if request.url.host == "zkillboard.com":
                return httpx.Response(200, json=[{"killmail_id": 1001, "zkb": ZKB}])
            return httpx.Response(200, json=esi_killmail_factory())

        source = make_source(handler)
        payload = await source.fetch_killmail(1001)

        assert payload["zkb"] == ZKB
        assert payload["killmail"]["victim"]["character_id"] == 2112000001
        assert requested == ["/api/killID/1001/", "/latest/killmails/1001/abc123/"]

    async def test_embedded_killmail_returned_as_is(self, esi_killmail_factory):
        entry = {**esi_killmail_factory(), "zkb": ZKB}
        source = make_source(lambda request: httpx.Response(200, json=[entry]))

        assert await source.fetch_killmail(1001) == entry

    async def test_entry_without_hash_returned_as_is(self):
        entry = {"killmail_id": 1001, "zkb": {"totalValue": 1.0}}
        source = make_source(lambda request: httpx.Response(200, json=[entry]))

        assert await source.fetch_killmail(1001) == entry

    @pytest.mark.parametrize("body", [[], {"error": "x"}, ["not a dict"]])
    async def test_empty_response_fails(self, body):
        source = make_source(lambda request: httpx.Response(200, json=body))

        with pytest.raises(EnrichmentFetchError) as exc_info:
            await source.fetch_killmail(1001)
        assert exc_info.value.killmail_id == 1001

    async def test_http_error_status_fails(self):
        source = make_source(lambda request: httpx.Response(404))

        with pytest.raises(EnrichmentFetchError) as exc_info:
            await source.fetch_killmail(1001)
        assert exc_info.value.status_code == 404

    async def test_network_error_fails(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(EnrichmentFetchError):
            await make_source(handler).fetch_killmail(1001)

    async def test_esi_not_found_fails(self):
        def handler(request):
            if request.url.host == "zkillboard.com":
                return httpx.Response(200, json=[{"killmail_id": 1001, "zkb": ZKB}])
            return httpx.Response(404, json={"error": "Invalid killmail_id and/or killmail_hash"})

        with pytest.raises(EnrichmentFetchError) as exc_info:
            await make_source(handler).fetch_killmail(1001)
        assert exc_info.value.status_code == 404


class TestClientOwnership:
    async def test_shared_client_left_open(self):
        client = create_http_client(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        source = ZKillboardDetailSource(client=client)

        await source.aclose()

        assert not client.is_closed
        await client.aclose()

    async def test_owned_client_closed(self):
        source = ZKillboardDetailSource()
        await source.aclose()
        assert source._client.is_closed

    def test_satisfies_protocol(self):
        assert isinstance(ZKillboardDetailSource(), EnrichmentSource)
