from __future__ import annotations

from typing import List, Optional, Sequence

import redis.asyncio as aioredis
from redis import Redis


class RedisCache:
    """Thin Redis wrapper for the read-through cache namespace."""

    DEFAULT_OPERATION_TIMEOUT = 5.0

    # Batch size hint for SCAN; keyspaces here are small per pattern.
    SCAN_COUNT = 500

    def __init__(
        self,
        redis_url: Optional[str] = None,
        *,
        socket_timeout: float = DEFAULT_OPERATION_TIMEOUT,
        client: Optional[aioredis.Redis] = None,
    ):
        self.redis_url = redis_url
        if client is not None:
            self.client = client
        else:
            self.client = aioredis.from_url(
                redis_url,
                decode_responses=True,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
            )

    def verify_connection(self) -> None:
        """Assert Redis connectivity before enabling dependent features."""
        # A short-lived sync client keeps the async client off a temporary loop.
        sync_client = Redis.from_url(self.redis_url, decode_responses=True)
        try:
            sync_client.ping()
        finally:
            sync_client.close()

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def set(self, key: str, value: str, *, ttl_seconds: int) -> None:
        await self.client.set(key, value, ex=max(1, int(ttl_seconds)))

    async def scan_keys(self, pattern: str) -> List[str]:
        return [key async for key in self.client.scan_iter(match=pattern, count=self.SCAN_COUNT)]

    async def delete(self, keys: Sequence[str]) -> int:
        if not keys:
            return 0
        return int(await self.client.delete(*keys))

    async def close(self) -> None:
        await self.client.aclose()


class SyncRedisCache:
    """Synchronous Redis wrapper for use in tests.

    Uses a synchronous Redis client internally to avoid event loop binding
    issues in pytest and the TestClient portal, but exposes async methods so
    callers await it exactly like RedisCache.
    """

    DEFAULT_OPERATION_TIMEOUT = 5.0

    def __init__(
        self,
        redis_url: Optional[str] = None,
        *,
        socket_timeout: float = DEFAULT_OPERATION_TIMEOUT,
        client: Optional[Redis] = None,
    ):
        self.redis_url = redis_url
        if client is not None:
            self.client = client
        else:
            self.client = Redis.from_url(
                redis_url,
                decode_responses=True,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
            )

    def verify_connection(self) -> None:
        self.client.ping()

    async def get(self, key: str) -> Optional[str]:
        return self.client.get(key)

    async def set(self, key: str, value: str, *, ttl_seconds: int) -> None:
        self.client.set(key, value, ex=max(1, int(ttl_seconds)))

    async def scan_keys(self, pattern: str) -> List[str]:
        return list(self.client.scan_iter(match=pattern, count=RedisCache.SCAN_COUNT))

    async def delete(self, keys: Sequence[str]) -> int:
        if not keys:
            return 0
        return int(self.client.delete(*keys))

    async def close(self) -> None:
        self.client.close()


__all__ = ["RedisCache", "SyncRedisCache"]
