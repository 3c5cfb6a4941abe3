"""Tests for the health endpoint."""

from __future__ import annotations

import asyncio

import httpx
from fastapi.testclient import TestClient

from battlescope.services.health import (
    create_health_app,
    database_check,
    run_checks,
    upstream_check,
)


async def passing() -> None:
    return None


async def failing() -> None:
    raise ConnectionError("connection refused")


async def hanging() -> None:
    await asyncio.sleep(10)


class TestRunChecks:
    async def test_all_ok(self):
        report = await run_checks({"database": passing, "redis": passing})
        assert report == {
            "status": "ok",
            "checks": {"database": {"status": "ok"}, "redis": {"status": "ok"}},
        }

    async def test_failure_degrades(self):
        report = await run_checks({"database": passing, "redis": failing})

        assert report["status"] == "degraded"
        assert report["checks"]["redis"] == {"status": "error", "error": "connection refused"}

    async def test_timeout_reported(self):
        report = await run_checks({"external": hanging}, timeout=0.05)

        assert report["checks"]["external"] == {"status": "error", "error": "TimeoutError"}

    async def test_database_check_uses_store(self, store):
        assert (await run_checks({"database": database_check(store)}))["status"] == "ok"

    async def test_upstream_check(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(503)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            report = await run_checks({"external": upstream_check(client)})

        assert [r.method for r in requests] == ["HEAD"]
        assert requests[0].url.host == "zkillredisq.stream"
        assert requests[0].url.params["ttw"] == "1"
        assert "queueID" not in requests[0].url.params
        assert report["status"] == "degraded"


class TestHealthApp:
    def test_healthy(self):
        with TestClient(create_health_app({"database": passing})) as client:
            response = client.get("/healthz")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_degraded_returns_503(self):
        with TestClient(create_health_app({"database": passing, "redis": failing})) as client:
            response = client.get("/healthz")

        assert response.status_code == 503
        assert response.json()["checks"]["redis"]["status"] == "error"

    def test_shutdown_hook_runs(self):
        closed = []

        async def on_shutdown():
            closed.append(True)

        with TestClient(create_health_app({}, on_shutdown=on_shutdown)) as client:
            assert client.get("/healthz").status_code == 200

        assert closed == [True]
