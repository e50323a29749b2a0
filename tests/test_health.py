"""Tests for health endpoints."""

import pytest
from httpx import AsyncClient

from app.api.v1.endpoints import health


@pytest.mark.asyncio
async def test_ping(client: AsyncClient):
    response = await client.get("/api/v1/ping")
    assert response.status_code == 200
    assert response.json() == {"message": "pong"}


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_detailed_health_tolerates_optional_redis(client: AsyncClient, monkeypatch):
    """With local locks and log publishing, a missing redis does not degrade the service."""

    async def database_up() -> bool:
        return True

    async def redis_down() -> bool:
        return False

    monkeypatch.setattr(health, "check_database_connection", database_up)
    monkeypatch.setattr(health, "check_redis_connection", redis_down)

    response = await client.get("/api/v1/health/detailed")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["redis"] == "unhealthy"
    assert body["lock_backend"] == "local"
    assert body["unpublished_events"] == 0


@pytest.mark.asyncio
async def test_detailed_health_degrades_without_database(client: AsyncClient, monkeypatch):
    async def database_down() -> bool:
        return False

    async def redis_up() -> bool:
        return True

    monkeypatch.setattr(health, "check_database_connection", database_down)
    monkeypatch.setattr(health, "check_redis_connection", redis_up)

    response = await client.get("/api/v1/health/detailed")

    body = response.json()
    assert body["status"] == "degraded"
    assert body["unpublished_events"] is None
