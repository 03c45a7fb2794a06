"""
Tests for application wiring: health endpoint, request tracing and error bodies.
"""
import pytest


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_correlation_headers_echoed(client):
    response = await client.get("/health", headers={"X-Correlation-ID": "sess-42"})

    assert response.headers["X-Correlation-ID"] == "sess-42"
    assert response.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_errors_are_problem_details(client):
    response = await client.get("/api/public/quotes/view", params={"token": "nope"})

    assert response.status_code == 401
    assert response.headers["content-type"].startswith("application/problem+json")
    body = response.json()
    assert body["type"].endswith("/qte-007")
    assert body["title"] == "Unauthorized"
    assert body["instance"] == "/api/public/quotes/view"
    assert body["trace_id"]
