"""Cache backend factory."""
from __future__ import annotations

import logging
from functools import lru_cache

from redis.exceptions import RedisError

from glowcare.core.config import settings
from glowcare.services.cache.base import KeyValueCache
from glowcare.services.cache.memory import InMemoryKeyValueCache
from glowcare.services.cache.redis_cache import RedisKeyValueCache

logger = logging.getLogger(__name__)


@lru_cache
def get_cache() -> KeyValueCache:
    backend = settings.cache_backend.lower()
    if backend == "redis":
        if not settings.redis_url:
            logger.warning("cache_backend=redis but REDIS_URL is missing; using in-memory cache")
            return InMemoryKeyValueCache(max_entries=settings.cache_memory_max_entries)
        cache = RedisKeyValueCache(redis_url=settings.redis_url, socket_timeout_s=settings.cache_socket_timeout_s)
        try:
            cache.ping()
        except RedisError as exc:
            logger.warning("Redis unavailable at startup (%s); using in-memory cache", exc)
            cache.close()
            return InMemoryKeyValueCache(max_entries=settings.cache_memory_max_entries)
        logger.info("cache backend=redis")
        return cache
    return InMemoryKeyValueCache(max_entries=settings.cache_memory_max_entries)


def reset_cache() -> None:
    """Drop the cached backend so the next call re-reads settings."""
    get_cache.cache_clear()
