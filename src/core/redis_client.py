"""Optional Redis store for scheduler job status shared between processes."""

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

from redis.asyncio import Redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError

from src.core.config import Constants, settings


logger = logging.getLogger(__name__)

T = TypeVar("T")

KEY_PREFIX = "toma5:"


class RedisClient:
    """Async Redis wrapper that turns every call into a no-op when Redis is not configured.

    Keys are namespaced with ``KEY_PREFIX``. Redis errors are logged and the
    call returns its fallback value, so the job tracker can keep state in
    memory instead.
    """

    def __init__(self, url: str | None = None) -> None:
        url = url if url is not None else settings.redis_url
        self._client: Redis | None = None
        self._enabled = bool(url)
        self._last_successful_operation: datetime | None = None
        self._failure_count = 0
        self._total_operations = 0

        if not url:
            logger.info("Redis URL not configured. Tracking jobs in memory.")
            return

        try:
            pool = ConnectionPool.from_url(url, decode_responses=True, max_connections=Constants.REDIS_MAX_CONNECTIONS)
            self._client = Redis(connection_pool=pool)
            logger.info("Redis client initialized", extra={"redis_url": url})
        except (RedisError, ValueError) as e:
            logger.warning("Failed to initialize Redis client: %s. Tracking jobs in memory.", e)
            self._enabled = False

    @property
    def is_available(self) -> bool:
        return self._enabled and self._client is not None

    def get_health_status(self) -> dict[str, Any]:
        last = self._last_successful_operation
        return {
            "enabled": self._enabled,
            "connected": self.is_available,
            "last_successful_operation": last.isoformat() if last else None,
            "failure_count": self._failure_count,
            "total_operations": self._total_operations,
        }

    async def _call(self, operation: str, call: Callable[[Redis], Awaitable[T]], fallback: T) -> T:
        if not self.is_available or self._client is None:
            return fallback

        self._total_operations += 1
        try:
            result = await call(self._client)
        except RedisError as e:
            self._failure_count += 1
            logger.warning("Redis %s failed: %s", operation, e)
            return fallback

        self._last_successful_operation = datetime.now(UTC)
        return result

    async def get(self, key: str) -> str | None:
        return await self._call("GET", lambda r: r.get(KEY_PREFIX + key), None)

    async def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Store ``value`` under ``key`` for ``ttl_seconds``. Returns True on success."""

        async def setex(r: Redis) -> bool:
            await r.setex(KEY_PREFIX + key, ttl_seconds, value)
            return True

        return await self._call("SETEX", setex, False)

    async def delete(self, *keys: str) -> bool:
        if not keys:
            return False

        async def delete(r: Redis) -> bool:
            await r.delete(*(KEY_PREFIX + key for key in keys))
            return True

        return await self._call("DELETE", delete, False)

    async def increment(self, key: str) -> int | None:
        """Atomically increment a counter and return the new value (None on error)."""
        return await self._call("INCR", lambda r: r.incr(KEY_PREFIX + key), None)

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        return await self._call("EXPIRE", lambda r: r.expire(KEY_PREFIX + key, ttl_seconds), False)

    async def ping(self) -> bool:
        return bool(await self._call("PING", lambda r: r.ping(), False))

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            logger.info("Redis client closed")


# Global Redis client instance
redis_client = RedisClient()
