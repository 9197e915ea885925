from __future__ import annotations

import asyncio
import threading
from typing import Optional, Union
from urllib.parse import urlparse, urlunparse

from jobboard.config import get_settings, reset_settings_cache
from jobboard.logging import get_logger
from jobboard.service.auth import AuthService
from jobboard.service.cache import CACHE_ERRORS, CacheAsideReader, InvalidationCoordinator
from jobboard.service.companies import CompanyService
from jobboard.service.email import EmailService
from jobboard.service.envelope import EnvelopeCodec
from jobboard.service.guard import AuthGuard
from jobboard.service.jobs import JobService
from jobboard.service.sessions import SessionReuseDetector
from jobboard.service.tokens import TokenManager
from jobboard.storage.memory import MemoryStore
from jobboard.storage.postgres import PostgresStore
from jobboard.storage.redis_cache import RedisCache, SyncRedisCache

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Replace the password component of ``url`` with ``***`` for logging."""
    if not url:
        return url
    try:
        parsed = urlparse(url)
    except ValueError:
        return "***url_parse_error***"
    if not parsed.password:
        return url
    netloc = parsed.hostname or ""
    if parsed.port:
        netloc = f"{netloc}:{parsed.port}"
    netloc = f"{parsed.username or ''}:***@{netloc}"
    return urlunparse(parsed._replace(netloc=netloc))


class Runtime:
    """Holds singleton service instances for the FastAPI app."""

    def __init__(self):
        self.settings = get_settings()
        logger.info(
            "runtime_init_started",
            use_memory_store=self.settings.use_memory_store,
            test_mode=self.settings.test_mode,
        )

        store_type = "memory" if self.settings.use_memory_store else "postgres"
        try:
            self.store: Union[MemoryStore, PostgresStore] = (
                MemoryStore()
                if self.settings.use_memory_store
                else PostgresStore(self.settings.database_url)
            )
            logger.info("runtime_store_initialized", store_type=store_type)
        except Exception as exc:
            logger.error(
                "runtime_store_init_failed",
                store_type=store_type,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise

        self.cache: Optional[Union[RedisCache, SyncRedisCache]] = None
        redis_error: Exception | None = None
        if self.settings.redis_url:
            try:
                # Sync client in test mode avoids binding to a per-test event loop.
                if self.settings.test_mode:
                    cache = SyncRedisCache(self.settings.redis_url)
                else:
                    cache = RedisCache(self.settings.redis_url)
                cache.verify_connection()
                self.cache = cache
            except CACHE_ERRORS + (ValueError,) as exc:
                redis_error = exc

        if not self.cache:
            if not self.settings.test_mode and not self.settings.allow_redis_fallback_dev:
                raise RuntimeError(
                    "Redis is required for the read-through cache; start Redis or set "
                    "TEST_MODE=true/ALLOW_REDIS_FALLBACK_DEV=true to run cacheless."
                ) from redis_error
            fallback_mode = "TEST_MODE" if self.settings.test_mode else "ALLOW_REDIS_FALLBACK_DEV"
            logger.warning(
                "redis_disabled_fallback",
                redis_url=_mask_url_password(self.settings.redis_url),
                error=str(redis_error) if redis_error else "redis_url_missing",
                message=f"Running without Redis under {fallback_mode}; every read hits the datastore.",
                mode=fallback_mode,
            )

        self.codec = EnvelopeCodec(self.settings.envelope_key)
        self.tokens = TokenManager(self.store, self.codec, self.settings)
        self.sessions = SessionReuseDetector(self.tokens)
        self.guard = AuthGuard(self.tokens, self.store)
        self.email = EmailService(
            smtp_host=self.settings.smtp_host,
            smtp_port=self.settings.smtp_port,
            smtp_user=self.settings.smtp_user,
            smtp_password=self.settings.smtp_password,
            smtp_use_tls=self.settings.smtp_use_tls,
            from_email=self.settings.email_from_address,
            from_name=self.settings.email_from_name,
            verify_email_url=self.settings.verify_email_url,
            reset_password_url=self.settings.reset_password_url,
        )
        self.auth = AuthService(self.store, self.tokens, self.email)
        self._wire_cache_consumers()

        logger.info(
            "runtime_initialized",
            store_type=store_type,
            redis_enabled=self.cache is not None,
            email_configured=self.email.is_configured,
            cache_ttl_seconds=self.settings.cache_ttl_seconds,
        )

    def _wire_cache_consumers(self) -> None:
        self.reader = CacheAsideReader(self.cache, ttl_seconds=self.settings.cache_ttl_seconds)
        self.invalidator = InvalidationCoordinator(self.cache)
        self.companies = CompanyService(self.store, self.reader, self.invalidator)
        self.jobs = JobService(self.store, self.reader, self.invalidator, self.companies)

    def attach_cache(self, cache: Optional[Union[RedisCache, SyncRedisCache]]) -> None:
        """Swap the cache backend (e.g. an in-process fake) and rewire its consumers."""
        self.cache = cache
        self._wire_cache_consumers()

    async def close(self) -> None:
        if self.cache is not None:
            try:
                await self.cache.close()
            except CACHE_ERRORS as exc:
                logger.warning("runtime_cache_close_failed", error=str(exc))
        if isinstance(self.store, PostgresStore):
            self.store.close()


runtime: Runtime | None = None

_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton in a thread-safe manner.

    Uses double-checked locking: the unlocked check is the fast path once the
    runtime exists, the locked one prevents two threads building it.
    """
    global runtime
    if runtime is not None:
        return runtime

    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def reset_runtime_for_tests() -> Runtime:
    """Reinitialize the runtime singleton for isolated test runs."""
    global runtime
    with _runtime_lock:
        if runtime is not None and runtime.cache is not None:
            if isinstance(runtime.cache, SyncRedisCache):
                runtime.cache.client.close()
            else:
                try:
                    loop = asyncio.get_running_loop()
                    loop.create_task(runtime.cache.close())
                except RuntimeError:
                    asyncio.run(runtime.cache.close())

        reset_settings_cache()
        settings = get_settings()
        if not settings.test_mode:
            raise RuntimeError("runtime reset is only allowed in TEST_MODE")
        runtime = Runtime()
        return runtime
