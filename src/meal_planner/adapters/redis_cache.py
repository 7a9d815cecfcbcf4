"""Redis-backed volatile cache."""

import json
import logging
from dataclasses import dataclass

import redis
from redis import asyncio as aioredis

from meal_planner.services.cache import InMemoryCache, VolatileCache

_logger = logging.getLogger(__name__)


@dataclass
class RedisCache(VolatileCache):
    """Volatile cache stored in Redis with native key expiry.

    Connection errors after startup are logged and treated as misses so a
    flaky Redis degrades to durable-store lookups instead of failing callers.
    """

    client: aioredis.Redis
    name: str = "redis"
    scan_batch_size: int = 500

    @classmethod
    def create(cls, url: str) -> "RedisCache":
        """Create a cache with a managed Redis connection pool."""
        client = aioredis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=2,
        )
        return cls(client=client)

    async def get(self, key: str) -> dict[str, object] | None:
        """Return a cached JSON value."""
        try:
            raw = await self.client.get(key)
        except redis.RedisError as exc:
            _logger.warning("Redis get failed for %s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            _logger.warning("Dropping undecodable Redis value for %s", key)
            await self.delete(key)
            return None

    async def set(self, key: str, value: dict[str, object], ttl_seconds: int) -> None:
        """Store a JSON value with an expiry."""
        try:
            await self.client.set(key, json.dumps(value), ex=ttl_seconds)
        except redis.RedisError as exc:
            _logger.warning("Redis set failed for %s: %s", key, exc)

    async def delete(self, key: str) -> None:
        """Remove a single key."""
        try:
            await self.client.delete(key)
        except redis.RedisError as exc:
            _logger.warning("Redis delete failed for %s: %s", key, exc)

    async def delete_prefix(self, prefix: str) -> int:
        """Remove keys by prefix using SCAN so the server is never blocked."""
        deleted = 0
        batch: list[str] = []
        try:
            async for key in self.client.scan_iter(
                match=f"{prefix}*", count=self.scan_batch_size
            ):
                batch.append(key)
                if len(batch) >= self.scan_batch_size:
                    deleted += await self.client.delete(*batch)
                    batch = []
            if batch:
                deleted += await self.client.delete(*batch)
        except redis.RedisError as exc:
            _logger.warning("Redis prefix delete failed for %s: %s", prefix, exc)
        return deleted

    async def close(self) -> None:
        """Close the connection pool."""
        await self.client.aclose()


def select_volatile_cache(redis_url: str | None, max_size: int) -> VolatileCache:
    """Pick Redis when reachable at startup, else an in-process cache."""
    if not redis_url:
        _logger.info("No Redis URL configured, using in-memory nutrition cache")
        return InMemoryCache(max_size=max_size)
    ping_client = redis.Redis.from_url(redis_url, socket_connect_timeout=5)
    try:
        ping_client.ping()
    except redis.RedisError as exc:
        _logger.warning(
            "Redis unreachable at startup (%s), using in-memory nutrition cache", exc
        )
        return InMemoryCache(max_size=max_size)
    finally:
        ping_client.close()
    _logger.info("Connected to Redis, using Redis nutrition cache")
    return RedisCache.create(redis_url)
