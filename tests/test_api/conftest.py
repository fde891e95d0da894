"""Fixtures for the HTTP API tests."""

from __future__ import annotations

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from midnight_markets.infrastructure.redis_client import IdempotencyRegistry
from midnight_markets.main import create_app


@pytest_asyncio.fixture
async def client(engine, redis_client) -> AsyncClient:
    """HTTP client over an app wired to the in-memory engine and a mocked Redis."""
    app = create_app(engine=engine, idempotency=IdempotencyRegistry(redis_client))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def client_without_redis(engine) -> AsyncClient:
    app = create_app(engine=engine)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
