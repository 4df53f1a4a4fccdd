"""
Cache service for Redis-backed caching with cache-aside pattern.

The cache is a disposable accelerator in front of the reporting queries:
every failure (connection refused, timeout, bad payload) is logged as a
degraded-mode warning and treated as a miss, so callers always fall back to
computing from the database.

Usage:
    cache = get_cache_service()

    value, found = cache.get("daily_summary:org:2024-06-01")
    cache.set("daily_summary:org:2024-06-01", value, ttl=3600)

    value = cache.get_or_set(key, factory=lambda: compute(db), ttl=3600)
"""
import json
import logging
from typing import Any, Callable, Optional, Tuple

import redis

from app.core.config import settings
from app.core.errors import log_degraded
from app.core.metrics import record_cache_result

logger = logging.getLogger(__name__)

DEFAULT_TTL = 3600  # 1 hour


class CacheService:
    """
    JSON cache over a Redis client.

    Args:
        redis_client: redis.Redis instance, or None for a cache that always
            misses (Redis disabled)
    """

    def __init__(self, redis_client: Optional[redis.Redis]):
        self._redis = redis_client

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    def get(self, key: str) -> Tuple[Any, bool]:
        """
        Get a value from the cache.

        Returns:
            (value, True) on a hit, (None, False) on a miss or any failure
        """
        if self._redis is None:
            return None, False

        try:
            raw = self._redis.get(key)
        except Exception as e:
            record_cache_result("error")
            log_degraded(logger, f"Cache get failed for key {key}: {e}", cache_key=key)
            return None, False

        if raw is None:
            record_cache_result("miss")
            return None, False

        try:
            value = json.loads(raw)
        except ValueError as e:
            record_cache_result("error")
            logger.warning(f"Discarding undecodable cache entry {key}: {e}")
            return None, False

        record_cache_result("hit")
        logger.debug(f"Cache hit for key: {key}")
        return value, True

    def set(self, key: str, value: Any, ttl: int = DEFAULT_TTL) -> bool:
        """
        Set a JSON-serializable value with TTL.

        Returns:
            True if stored, False otherwise
        """
        if self._redis is None:
            return False

        try:
            self._redis.setex(key, ttl, json.dumps(value, default=str))
            logger.debug(f"Cache set for key: {key} with TTL: {ttl}s")
            return True
        except Exception as e:
            log_degraded(logger, f"Cache set failed for key {key}: {e}", cache_key=key)
            return False

    def delete(self, *keys: str) -> bool:
        """Remove keys. Returns False if the cache could not be reached."""
        if self._redis is None or not keys:
            return False

        try:
            self._redis.delete(*keys)
            return True
        except Exception as e:
            log_degraded(logger, f"Cache delete failed for keys {keys}: {e}")
            return False

    def get_or_set(
        self,
        key: str,
        factory: Callable[[], Any],
        ttl: int = DEFAULT_TTL,
    ) -> Any:
        """
        Get value from cache or compute and store it.

        Exceptions raised by the factory propagate; cache errors never do.
        """
        cached, found = self.get(key)
        if found:
            return cached

        value = factory()
        self.set(key, value, ttl=ttl)
        return value


_cache_service: Optional[CacheService] = None


def get_cache_service() -> CacheService:
    """
    Get the application-wide cache.

    The Redis client connects lazily, so an unreachable server only shows up
    as failed (and logged) cache operations.
    """
    global _cache_service
    if _cache_service is None:
        client = None
        if settings.REDIS_ENABLED:
            client = redis.Redis.from_url(
                settings.REDIS_URL,
                socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
                decode_responses=True,
            )
        _cache_service = CacheService(client)
    return _cache_service


def reset_cache_service() -> None:
    """Drop the singleton (tests)."""
    global _cache_service
    _cache_service = None
