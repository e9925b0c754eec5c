"""Redis cache backend with bounded socket timeouts."""
from __future__ import annotations

import logging
from typing import Optional

import redis
from redis.exceptions import RedisError

from glowcare.services.cache.base import KeyValueCache

logger = logging.getLogger(__name__)


class RedisKeyValueCache(KeyValueCache):
    backend_kind = "redis"

    def __init__(self, *, redis_url: str, socket_timeout_s: float = 0.5, client: redis.Redis | None = None) -> None:
        self._redis = client or redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=socket_timeout_s,
            socket_timeout=socket_timeout_s,
        )

    def ping(self) -> None:
        self._redis.ping()

    def get(self, key: str) -> Optional[str]:
        try:
            return self._redis.get(key)
        except RedisError as exc:
            logger.warning("cache_get_failed key=%s err=%s", key, exc)
            return None

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            if ttl_seconds > 0:
                self._redis.set(key, value, ex=ttl_seconds)
            else:
                self._redis.set(key, value)
        except RedisError as exc:
            logger.warning("cache_set_failed key=%s err=%s", key, exc)

    def delete(self, *keys: str) -> None:
        if not keys:
            return
        try:
            self._redis.delete(*keys)
        except RedisError as exc:
            logger.warning("cache_delete_failed keys=%s err=%s", ",".join(keys), exc)

    def close(self) -> None:
        try:
            self._redis.close()
        except RedisError:
            logger.debug("Redis client close failed", exc_info=True)
