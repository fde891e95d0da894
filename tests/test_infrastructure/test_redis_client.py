"""Tests for the Redis idempotency registry against a mocked client."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from tenacity import wait_none

from midnight_markets.infrastructure.redis_client import IdempotencyRegistry, _ping_with_backoff


class TestIdempotencyRegistry:
    @pytest.mark.asyncio
    async def test_first_claim_wins(self, redis_client) -> None:
        registry = IdempotencyRegistry(redis_client, ttl_seconds=60)

        assert await registry.claim("abc") is True
        assert await registry.claim("abc") is False
        assert await registry.is_claimed("abc")

    @pytest.mark.asyncio
    async def test_claim_is_set_nx_with_ttl(self, redis_client) -> None:
        registry = IdempotencyRegistry(redis_client, ttl_seconds=60, prefix="mm:")

        await registry.claim("abc")

        redis_client.set.assert_awaited_once_with("mm:abc", "1", ex=60, nx=True)
        assert redis_client.keys_store == {"mm:abc": "1"}

    @pytest.mark.asyncio
    async def test_release_allows_retry(self, redis_client) -> None:
        registry = IdempotencyRegistry(redis_client)
        await registry.claim("abc")

        await registry.release("abc")

        assert not await registry.is_claimed("abc")
        assert await registry.claim("abc") is True

    @pytest.mark.asyncio
    async def test_ping_and_close(self, redis_client) -> None:
        registry = IdempotencyRegistry(redis_client)

        assert await registry.ping() is True
        await registry.close()

        redis_client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connection_errors_propagate(self, redis_client) -> None:
        redis_client.set = AsyncMock(side_effect=RedisConnectionError("down"))
        registry = IdempotencyRegistry(redis_client)

        with pytest.raises(RedisConnectionError):
            await registry.claim("abc")


class TestStartupPing:
    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, redis_client) -> None:
        redis_client.ping = AsyncMock(side_effect=[RedisConnectionError("booting"), True])

        await _ping_with_backoff.retry_with(wait=wait_none())(redis_client)

        assert redis_client.ping.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_three_attempts(self, redis_client) -> None:
        redis_client.ping = AsyncMock(side_effect=RedisConnectionError("down"))

        with pytest.raises(RedisConnectionError):
            await _ping_with_backoff.retry_with(wait=wait_none())(redis_client)

        assert redis_client.ping.await_count == 3
