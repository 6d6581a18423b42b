"""
Redis cache layer.

Small JSON cache in front of slow third-party lookups, plus the client used by
the rate limiter. Every helper degrades gracefully when Redis is unavailable.
"""
import json
import logging
import time
from typing import Optional, Any
import redis
from redis.exceptions import ConnectionError, TimeoutError, RedisError
from core.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None
_last_failure_at: float = 0.0
RECONNECT_BACKOFF_S = 30


def get_redis_client() -> Optional[redis.Redis]:
    """Shared Redis client, or None if Redis is unavailable or not configured."""
    global _redis_client, _last_failure_at

    if _redis_client is not None:
        return _redis_client
    if not settings.REDIS_URL:
        return None
    if _last_failure_at and time.monotonic() - _last_failure_at < RECONNECT_BACKOFF_S:
        return None

    try:
        client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
            retry_on_timeout=True,
            health_check_interval=30
        )
        client.ping()
        logger.info("Redis connection established")
        _redis_client = client
        return _redis_client
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Redis unavailable: {e}. Caching disabled.")
        _last_failure_at = time.monotonic()
        return None


def cache_key(prefix: str, *parts) -> str:
    return ":".join([prefix, *[str(p) for p in parts if p is not None]])


def get_cache(key: str) -> Optional[Any]:
    """Get value from cache. Returns None if not found or Redis unavailable."""
    client = get_redis_client()
    if not client:
        return None

    try:
        value = client.get(key)
        if value:
            return json.loads(value)
        return None
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Cache get error for key {key}: {e}")
        return None


def set_cache(key: str, value: Any, ttl: int = None) -> bool:
    client = get_redis_client()
    if not client:
        return False

    try:
        client.setex(key, ttl or settings.CACHE_TTL_DEFAULT, json.dumps(value, default=str))
        return True
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Cache set error for key {key}: {e}")
        return False
