import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as redis

from conduit.config import settings

logger = logging.getLogger(__name__)

TAGS_KEY_PREFIX = "tags:top:"


class CacheManager:
    """
    Cache-aside manager and lock provider backed by Redis.

    All public methods are safe to call when Redis is unavailable: reads
    return None, writes are skipped, and ``exclusive`` grants the lock so
    that callers fall back to their in-process guard.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Called once at application startup."""
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed, cache disabled: %s", exc)
            await self._redis.aclose()
            self._redis = None

    async def disconnect(self) -> None:
        """Close the connection pool.  Called once at application shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Core cache operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> dict | list | None:
        """Return the cached value for *key*, or None on a miss / error."""
        if not self._redis:
            return None
        try:
            data = await self._redis.get(key)
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            return None
        return json.loads(data) if data is not None else None

    async def set(self, key: str, value: dict | list, ttl: int | None = None) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def delete_pattern(self, pattern: str) -> None:
        """Delete all keys matching *pattern* using SCAN."""
        if not self._redis:
            return
        try:
            keys: list[str] = []
            async for key in self._redis.scan_iter(match=pattern):
                keys.append(key)
            if keys:
                await self._redis.delete(*keys)
                logger.debug("Cache invalidated %d key(s) matching %r", len(keys), pattern)
        except Exception as exc:
            logger.debug("Cache DELETE_PATTERN error for pattern=%r: %s", pattern, exc)

    async def invalidate_tags(self) -> None:
        """Drop every cached popular-tags list (global and per author)."""
        await self.delete_pattern(f"{TAGS_KEY_PREFIX}*")

    # ------------------------------------------------------------------
    # Cross-process locking
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def exclusive(self, name: str, ttl: int) -> AsyncIterator[bool]:
        """
        Try to take the Redis lock *name* without blocking.

        Yields True when the lock is held (or Redis is unavailable) and
        False when another process already holds it.  The lock expires
        after *ttl* seconds if its holder dies.
        """
        if not self._redis:
            yield True
            return

        lock = self._redis.lock(f"lock:{name}", timeout=ttl)
        try:
            acquired = await lock.acquire(blocking=False)
        except Exception as exc:
            logger.warning("Redis lock %r unavailable, using local guard only: %s", name, exc)
            yield True
            return

        try:
            yield bool(acquired)
        finally:
            if acquired:
                try:
                    await lock.release()
                except Exception as exc:
                    logger.warning("Redis lock %r release failed: %s", name, exc)

    @property
    def available(self) -> bool:
        return self._redis is not None


# Module-level singleton shared across all request handlers.
cache = CacheManager()
