"""Cache backend interface."""
from __future__ import annotations

from typing import Optional


class KeyValueCache:
    """
    Minimal get/set/delete contract with per-key TTL.

    Implementations never raise for infrastructure problems: a failed or
    timed-out read is a miss and a failed write is dropped.
    """

    backend_kind = "abstract"

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        raise NotImplementedError

    def delete(self, *keys: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        return None
