"""Cache-aside reads, key builders and post-commit invalidation."""

from datetime import datetime, timezone

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from jobboard.service.cache import (
    CacheAsideReader,
    InvalidationCoordinator,
    entity_key,
    listing_key,
    listing_pattern,
    serialize,
)
from jobboard.storage.models import JobType


class BrokenCache:
    async def get(self, key):
        raise RedisConnectionError("redis down")

    async def set(self, key, value, *, ttl_seconds):
        raise RedisConnectionError("redis down")

    async def scan_keys(self, pattern):
        raise RedisConnectionError("redis down")

    async def delete(self, keys):
        raise RedisConnectionError("redis down")


class Counter:
    def __init__(self, value):
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.value


class TestKeys:
    def test_entity_key(self):
        assert entity_key("job", "42") == "job_42"
        assert entity_key("company", "7") == "company_7"

    def test_listing_keys(self):
        assert listing_key("jobs", 1, 20) == "jobs_pagination_1_20"
        assert listing_key("jobs", 2, 10, "python") == "jobs_pagination_2_10_python"
        assert (
            listing_key("jobs", 1, 20, scope="company", scope_id="7")
            == "company_7_jobs_pagination_1_20"
        )

    def test_patterns_cover_their_listing_keys_only(self):
        assert listing_pattern("jobs") == "jobs_*"
        assert listing_pattern("jobs", scope="company", scope_id="7") == "company_7_jobs_*"
        # ``job_{id}`` is not a listing and must survive a listing flush.
        assert not entity_key("job", "42").startswith("jobs_")


class TestCacheAsideReader:
    async def test_second_read_is_a_hit_with_identical_payload(self, cache, fake_redis):
        reader = CacheAsideReader(cache, ttl_seconds=300)
        compute = Counter({"id": "1", "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc)})

        first = await reader.read("job_1", compute)
        second = await reader.read("job_1", compute)

        assert compute.calls == 1
        assert first == second == {"id": "1", "created_at": "2024-01-01T00:00:00+00:00"}
        assert 0 < fake_redis.ttl("job_1") <= 300

    async def test_awaitable_compute(self, cache):
        reader = CacheAsideReader(cache)

        async def compute():
            return {"type": JobType.CONTRACT}

        assert await reader.read("job_2", compute) == {"type": "CONTRACT"}

    async def test_none_is_not_cached(self, cache, fake_redis):
        reader = CacheAsideReader(cache)
        compute = Counter(None)

        assert await reader.read("job_missing", compute) is None
        assert await reader.read("job_missing", compute) is None
        assert compute.calls == 2
        assert fake_redis.get("job_missing") is None

    async def test_no_cache_always_recomputes(self):
        reader = CacheAsideReader(None)
        compute = Counter({"id": "1"})
        await reader.read("job_1", compute)
        await reader.read("job_1", compute)
        assert compute.calls == 2

    async def test_unavailable_cache_degrades_to_miss(self):
        reader = CacheAsideReader(BrokenCache())
        compute = Counter([1, 2, 3])
        assert await reader.read("jobs_pagination_1_20", compute) == [1, 2, 3]
        assert compute.calls == 1

    async def test_corrupt_payload_is_recomputed(self, cache, fake_redis):
        fake_redis.set("job_1", "{not json")
        reader = CacheAsideReader(cache)
        assert await reader.read("job_1", Counter({"id": "1"})) == {"id": "1"}
        assert fake_redis.get("job_1") == serialize({"id": "1"})

    async def test_store_overwrites_entry(self, cache, fake_redis):
        reader = CacheAsideReader(cache)
        await reader.read("job_1", Counter({"title": "old"}))
        await reader.store("job_1", {"title": "new"})
        assert await reader.read("job_1", Counter({"title": "unused"})) == {"title": "new"}

    async def test_store_swallows_cache_errors(self):
        await CacheAsideReader(BrokenCache()).store("job_1", {"id": "1"})


class TestInvalidationCoordinator:
    async def test_patterns_and_exact_keys(self, cache, fake_redis):
        for key in (
            "jobs_pagination_1_20",
            "jobs_pagination_2_20_python",
            "company_7_jobs_pagination_1_20",
            "company_8_jobs_pagination_1_20",
            "job_42",
            "job_43",
            "companies_pagination_1_20",
        ):
            fake_redis.set(key, "x")

        removed = await InvalidationCoordinator(cache).invalidate(
            patterns=[listing_pattern("jobs"), listing_pattern("jobs", scope="company", scope_id="7")],
            exact_keys=[entity_key("job", "42")],
        )

        assert removed == 4
        assert sorted(fake_redis.keys("*")) == [
            "companies_pagination_1_20",
            "company_8_jobs_pagination_1_20",
            "job_43",
        ]

    async def test_nothing_to_delete(self, cache):
        assert await InvalidationCoordinator(cache).invalidate(patterns=["jobs_*"]) == 0

    async def test_failure_is_swallowed(self):
        assert await InvalidationCoordinator(BrokenCache()).invalidate(patterns=["jobs_*"]) == 0

    async def test_without_cache(self):
        assert await InvalidationCoordinator(None).invalidate(exact_keys=["job_1"]) == 0


def test_serialize_rejects_unknown_types():
    with pytest.raises(TypeError):
        serialize({"value": object()})
