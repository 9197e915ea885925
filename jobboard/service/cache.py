"""Cache-aside reads and post-commit invalidation over the Redis keyspace.

Key namespace (patterns used by invalidation must match keys built by reads):

- single entity:   ``{entity}_{id}``                                e.g. ``job_42``
- listing:         ``{entity}_pagination_{page}_{limit}[_{search}]`` e.g. ``jobs_pagination_1_20``
- scoped listing:  ``{scope}_{scope_id}_{entity}_pagination_...``   e.g. ``company_7_jobs_pagination_1_20``

The datastore is the only source of truth. Every cache failure degrades to
a miss on read and to bounded staleness (one TTL) on invalidation.
"""

from __future__ import annotations

import inspect
import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol, Sequence, Union

from redis.exceptions import RedisError

from jobboard.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 300

# Failures that mean "cache unavailable" rather than a bug in the caller.
CACHE_ERRORS = (RedisError, OSError)


class Cache(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, *, ttl_seconds: int) -> None: ...

    async def scan_keys(self, pattern: str) -> list[str]: ...

    async def delete(self, keys: Sequence[str]) -> int: ...


def entity_key(entity: str, entity_id: str) -> str:
    return f"{entity}_{entity_id}"


def listing_key(
    entity: str,
    page: int,
    limit: int,
    search: Optional[str] = None,
    *,
    scope: Optional[str] = None,
    scope_id: Optional[str] = None,
) -> str:
    key = f"{entity}_pagination_{page}_{limit}"
    if search:
        key = f"{key}_{search}"
    if scope:
        key = f"{scope}_{scope_id}_{key}"
    return key


def listing_pattern(
    entity: str, *, scope: Optional[str] = None, scope_id: Optional[str] = None
) -> str:
    if scope:
        return f"{scope}_{scope_id}_{entity}_*"
    return f"{entity}_*"


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def serialize(value: Any) -> str:
    return json.dumps(value, default=_json_default, separators=(",", ":"))


ComputeFn = Callable[[], Union[Any, Awaitable[Any]]]


class CacheAsideReader:
    def __init__(self, cache: Optional[Cache], *, ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS) -> None:
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    async def _get(self, key: str) -> Optional[str]:
        if self.cache is None:
            return None
        try:
            return await self.cache.get(key)
        except CACHE_ERRORS as exc:
            logger.warning("cache_read_failed", key=key, error=str(exc))
            return None

    async def _put(self, key: str, payload: str) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.set(key, payload, ttl_seconds=self.ttl_seconds)
        except CACHE_ERRORS as exc:
            logger.warning("cache_write_failed", key=key, error=str(exc))

    async def read(self, key: str, compute_fn: ComputeFn) -> Any:
        """Return the cached value for ``key`` or compute, store and return it.

        A miss returns the decoded form of what was just stored, so a hit and
        the miss before it hand back identical values. ``None`` results are
        not cached.
        """
        cached = await self._get(key)
        if cached is not None:
            try:
                return json.loads(cached)
            except ValueError:
                logger.warning("cache_payload_corrupt", key=key)

        value = compute_fn()
        if inspect.isawaitable(value):
            value = await value
        if value is None:
            return None
        payload = serialize(value)
        await self._put(key, payload)
        return json.loads(payload)

    async def store(self, key: str, value: Any) -> None:
        """Write a freshly committed entity under its key."""
        await self._put(key, serialize(value))


class InvalidationCoordinator:
    def __init__(self, cache: Optional[Cache]) -> None:
        self.cache = cache

    async def invalidate(
        self,
        patterns: Iterable[str] = (),
        exact_keys: Iterable[str] = (),
    ) -> int:
        """Delete every key matching ``patterns`` plus ``exact_keys``.

        Call only after the datastore write has committed. Returns the number
        of keys removed.
        """
        if self.cache is None:
            return 0
        patterns = list(patterns)
        keys = set(exact_keys)
        try:
            for pattern in patterns:
                keys.update(await self.cache.scan_keys(pattern))
            removed = await self.cache.delete(sorted(keys)) if keys else 0
        except CACHE_ERRORS as exc:
            logger.error(
                "cache_invalidation_failed",
                patterns=patterns,
                keys=sorted(keys),
                error=str(exc),
            )
            return 0
        logger.debug("cache_invalidated", patterns=patterns, removed=removed)
        return removed
