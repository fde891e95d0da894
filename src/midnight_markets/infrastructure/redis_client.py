"""Redis-backed idempotency keys for the HTTP operation endpoints.

A client retrying a financial mutation with the same ``Idempotency-Key``
must not apply it twice. The key is claimed atomically (SET NX) before the
operation runs and released again if the operation fails, since a failed
operation applied nothing and may be retried.

Usage:
    from midnight_markets.infrastructure.redis_client import IdempotencyRegistry

    registry = await IdempotencyRegistry.connect("redis://localhost:6379/0", ttl_seconds=3600)
    if await registry.claim("abc"):
        ...
"""

from __future__ import annotations

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from midnight_markets.logging_config import get_logger

logger = get_logger(__name__)


@retry(
    retry=retry_if_exception_type((RedisConnectionError, RedisTimeoutError, OSError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    reraise=True,
)
async def _ping_with_backoff(client: aioredis.Redis) -> None:
    await client.ping()


class IdempotencyRegistry:
    """Tracks used idempotency keys with a TTL."""

    def __init__(
        self,
        client: aioredis.Redis,
        ttl_seconds: int = 86400,
        prefix: str = "idempotency:",
    ) -> None:
        self._client = client
        self._ttl_seconds = ttl_seconds
        self._prefix = prefix

    @classmethod
    async def connect(cls, url: str, ttl_seconds: int = 86400) -> IdempotencyRegistry:
        """Open a client and verify connectivity. Called during app startup."""
        client = aioredis.from_url(url, decode_responses=True)
        try:
            await _ping_with_backoff(client)
        except (RedisConnectionError, RedisTimeoutError, OSError):
            await client.aclose()
            raise
        logger.info("redis.connected", url=url)
        return cls(client, ttl_seconds=ttl_seconds)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def claim(self, key: str, value: str = "1") -> bool:
        """Atomically mark a key as used.

        Returns True if the key was new, False if it was already claimed.
        """
        return bool(await self._client.set(self._key(key), value, ex=self._ttl_seconds, nx=True))

    async def is_claimed(self, key: str) -> bool:
        return bool(await self._client.exists(self._key(key)))

    async def release(self, key: str) -> None:
        """Forget a key so the client may retry (used when the operation failed)."""
        await self._client.delete(self._key(key))

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("redis.disconnected")
