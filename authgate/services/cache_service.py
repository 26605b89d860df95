"""Redis-backed key-value cache"""

import json
from typing import Any, Dict, Optional
import redis.asyncio as redis_async
from redis.exceptions import RedisError
import structlog
from authgate.config import settings

logger = structlog.get_logger()


def identity_key(legacy_id: str) -> str:
    """Cache key for an identity record"""
    return f"identity:{legacy_id}"


class CacheService:
    """
    JSON value cache on top of Redis.

    Writes are best effort: a Redis failure is logged and the caller carries
    on as if the key had been missed.
    """

    def __init__(self, client: redis_async.Redis, default_ttl: int = settings.CACHE_TTL_SECONDS):
        self.client = client
        self.default_ttl = default_ttl

    @classmethod
    def from_url(cls, url: str = settings.REDIS_URL) -> "CacheService":
        return cls(redis_async.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            raw = await self.client.get(key)
        except RedisError as e:
            logger.warning("Cache read failed", key=key, error=str(e))
            return None
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Dict[str, Any], ttl: Optional[int] = None) -> None:
        try:
            await self.client.set(key, json.dumps(value), ex=ttl or self.default_ttl)
        except RedisError as e:
            logger.warning("Cache write failed", key=key, error=str(e))

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    async def clear(self) -> None:
        await self.client.flushdb()

    async def close(self) -> None:
        await self.client.aclose()
