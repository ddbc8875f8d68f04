"""
Redis client factory and the report store.
"""

from __future__ import annotations

import hashlib
import json
from typing import Annotated, Any

import redis.asyncio as aioredis
import structlog
from fastapi import Depends

from site_analyzer.core.config import get_settings
from site_analyzer.engines.crawler.normalizer import URLNormalizer

logger = structlog.get_logger(__name__)
settings = get_settings()

_redis_pool: aioredis.ConnectionPool | None = None


def _get_pool() -> aioredis.ConnectionPool:
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = aioredis.ConnectionPool.from_url(
            str(settings.REDIS_DSN),
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            socket_connect_timeout=5.0,
            retry_on_timeout=True,
            health_check_interval=30,
            decode_responses=True,
        )
    return _redis_pool


async def get_redis_client() -> aioredis.Redis:
    """Get a Redis client from the connection pool."""
    return aioredis.Redis(connection_pool=_get_pool())


async def get_redis() -> aioredis.Redis:
    """FastAPI dependency for Redis client."""
    return await get_redis_client()


RedisClient = Annotated[aioredis.Redis, Depends(get_redis)]


def open_redis_client() -> aioredis.Redis:
    """
    A client with its own connection pool, for callers that run each job in a
    fresh event loop (Celery tasks). Pooled connections are bound to the loop
    that opened them, so the shared pool is only safe inside the API process.
    Close it with `await client.aclose()`; that also closes its pool.
    """
    return aioredis.Redis.from_url(
        str(settings.REDIS_DSN),
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=5.0,
        retry_on_timeout=True,
        decode_responses=True,
    )


class CacheManager:
    """Namespaced get/set with TTL."""

    def __init__(self, redis: aioredis.Redis, namespace: str = "site-analyzer"):
        self.redis = redis
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> str | None:
        return await self.redis.get(self._key(key))

    async def set(self, key: str, value: str, ttl: int = 3600) -> None:
        await self.redis.setex(self._key(key), ttl, value)

    async def delete(self, key: str) -> None:
        await self.redis.delete(self._key(key))


class ReportStore:
    """
    Finished analysis results keyed by (url, category).
    Written once per analysis; the crawl itself never reads it.
    """

    def __init__(self, cache: CacheManager, ttl: int | None = None):
        self.cache = cache
        self.ttl = ttl or settings.REPORT_TTL_SECONDS

    @staticmethod
    def report_key(url: str, category: str) -> str:
        # Same key for https://site.com/ and https://site.com
        digest = hashlib.sha256(URLNormalizer.normalize(url.strip()).encode()).hexdigest()[:32]
        return f"report:{category}:{digest}"

    async def save(self, url: str, category: str, payload: dict[str, Any]) -> str:
        key = self.report_key(url, category)
        await self.cache.set(key, json.dumps(payload), ttl=self.ttl)
        logger.info("Report saved", url=url, category=category, key=key)
        return key

    async def load(self, url: str, category: str) -> dict[str, Any] | None:
        raw = await self.cache.get(self.report_key(url, category))
        return json.loads(raw) if raw else None
