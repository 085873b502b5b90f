# quicknote/utils/redis_client.py
"""
Redis read-cache with graceful fallback.

If Redis is not running every helper quietly does nothing and callers fall
through to the database. Only derived, recomputable data (the yearly
activity heatmap) is ever stored here.
"""

import json
import logging
from typing import Optional, Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from quicknote.core.config import settings

logger = logging.getLogger("redis_client")

_redis: Optional[aioredis.Redis] = None
_redis_available: bool = True   # Flips to False after the first failed connection


async def get_redis() -> Optional[aioredis.Redis]:
    """
    Returns a Redis client, or None if Redis is unavailable.
    After one connection failure no further attempts are made for the
    lifetime of the process.
    """
    global _redis, _redis_available

    if not _redis_available:
        return None

    try:
        if _redis is None:
            _redis = aioredis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=2,
            )
        await _redis.ping()
        return _redis
    except (RedisError, OSError) as e:
        _redis_available = False
        _redis = None
        logger.warning(f"[Redis] Not available ({e}). Activity caching disabled.")
        return None


async def cache_set(key: str, value: Any, ttl: int = 600) -> None:
    """Store value as JSON with a TTL in seconds. No-op if Redis is down."""
    r = await get_redis()
    if r is None:
        return
    try:
        await r.setex(key, ttl, json.dumps(value, default=str))
    except RedisError as e:
        logger.warning(f"[Redis] set {key} failed: {e}")


async def cache_get(key: str) -> Optional[Any]:
    """Return the decoded value, or None on a miss or if Redis is down."""
    r = await get_redis()
    if r is None:
        return None
    try:
        raw = await r.get(key)
    except RedisError as e:
        logger.warning(f"[Redis] get {key} failed: {e}")
        return None
    return json.loads(raw) if raw else None


async def cache_delete(*keys: str) -> None:
    """Delete keys. No-op if Redis is down."""
    r = await get_redis()
    if r is None or not keys:
        return
    try:
        await r.delete(*keys)
    except RedisError as e:
        logger.warning(f"[Redis] delete {keys} failed: {e}")
