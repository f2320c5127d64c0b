"""
Redis helper utilities.

Central place to construct the shared Redis client used by the
subscription / usage gateway, plus a couple of small helpers for hash
records so callers do not duplicate decoding logic.
"""

from __future__ import annotations

from typing import Dict, Optional

from redis.asyncio import Redis

from .settings import settings

_redis_client: Optional[Redis] = None


def get_redis_client() -> Optional[Redis]:
    """
    Return a lazily-created global Redis client, or None when REDIS_URL
    is empty (managed mode disabled).

    This is intentionally sync so it can be reused both from the app
    lifespan and background tasks. The underlying driver is fully async
    and should be awaited by callers.
    """
    global _redis_client
    if not settings.redis_url:
        return None
    if _redis_client is None:
        _redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
    return _redis_client


async def close_redis_client() -> None:
    global _redis_client
    client, _redis_client = _redis_client, None
    if client is not None:
        await client.aclose()


async def redis_get_hash(redis: Redis, key: str) -> Optional[Dict[str, str]]:
    """
    Load a hash record. Returns None when the key does not exist.
    """
    raw = await redis.hgetall(key)
    if not raw:
        return None
    return {
        (k.decode("utf-8") if isinstance(k, bytes) else k): (
            v.decode("utf-8") if isinstance(v, bytes) else v
        )
        for k, v in raw.items()
    }


__all__ = ["close_redis_client", "get_redis_client", "redis_get_hash"]
