"""Fast key-value cache used in front of the durable store."""
from glowcare.services.cache.base import KeyValueCache
from glowcare.services.cache.factory import get_cache, reset_cache
from glowcare.services.cache.keys import invalidate, invalidate_all, plan_key, recommendations_key

__all__ = [
    "KeyValueCache",
    "get_cache",
    "invalidate",
    "invalidate_all",
    "plan_key",
    "recommendations_key",
    "reset_cache",
]
