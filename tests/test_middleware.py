"""Tests for request ID middleware.

Learn: Every response carries X-Request-ID, and the access log line for
the request is bound to the same ID through structlog contextvars.
"""

import pytest
from httpx import ASGITransport, AsyncClient
from structlog.testing import capture_logs


@pytest.mark.asyncio
async def test_request_id_generated(client):
    """Each request gets a unique X-Request-ID header."""
    r1 = await client.get("/health")
    r2 = await client.get("/health")
    assert "X-Request-ID" in r1.headers
    assert "X-Request-ID" in r2.headers
    assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_propagated(client):
    """Incoming X-Request-ID is propagated through the response."""
    custom_id = "test-trace-12345"
    r = await client.get("/health", headers={"X-Request-ID": custom_id})
    assert r.headers["X-Request-ID"] == custom_id


@pytest.mark.asyncio
async def test_request_id_on_error_responses(client):
    r = await client.get("/api/auth/validate")
    assert r.status_code == 401
    assert "X-Request-ID" in r.headers


@pytest.mark.asyncio
async def test_access_log_line_per_request(client):
    with capture_logs() as logs:
        await client.get("/health")

    entries = [e for e in logs if e["event"] == "http.request"]
    assert len(entries) == 1
    assert entries[0]["method"] == "GET"
    assert entries[0]["path"] == "/health"
    assert entries[0]["status_code"] == 200
    assert entries[0]["duration_ms"] >= 0


@pytest.mark.asyncio
async def test_unhandled_error_keeps_request_id_and_access_log(app):
    """A handler crash still gets its request id echoed and one access line."""

    @app.get("/crash")
    async def crash():
        raise RuntimeError("kaboom")

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        with capture_logs() as logs:
            r = await ac.get("/crash", headers={"X-Request-ID": "rid-1"})

    assert r.status_code == 500
    assert r.headers["X-Request-ID"] == "rid-1"
    assert r.json()["code"] == "INTERNAL_ERROR"
    entries = [e for e in logs if e["event"] == "http.request"]
    assert len(entries) == 1
    assert entries[0]["status_code"] == 500
    assert entries[0]["path"] == "/crash"
