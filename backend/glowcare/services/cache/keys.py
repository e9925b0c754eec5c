"""Cache key scheme and version invalidation."""
from __future__ import annotations

import logging
from typing import Iterable, Optional
from uuid import UUID

from glowcare.core.config import settings
from glowcare.services.cache.base import KeyValueCache

logger = logging.getLogger(__name__)


def recommendations_key(user_id: UUID | str, profile_version: int) -> str:
    return f"{settings.cache_key_prefix}:recommendations:{user_id}:{profile_version}"


def plan_key(user_id: UUID | str, profile_version: int) -> str:
    return f"{settings.cache_key_prefix}:plan:{user_id}:{profile_version}"


def invalidate(cache: KeyValueCache, user_id: UUID | str, profile_version: Optional[int]) -> None:
    """Drop the resolution and plan entries cached for one profile version."""
    if profile_version is None:
        return
    cache.delete(recommendations_key(user_id, profile_version), plan_key(user_id, profile_version))
    logger.info("Invalidated cache entries user=%s version=%s", user_id, profile_version)


def invalidate_all(cache: KeyValueCache, user_id: UUID | str, versions: Iterable[int]) -> int:
    keys = []
    for version in versions:
        keys.extend((recommendations_key(user_id, version), plan_key(user_id, version)))
    cache.delete(*keys)
    return len(keys) // 2
