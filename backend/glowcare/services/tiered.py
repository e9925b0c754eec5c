"""Cache -> durable store -> compute cascade shared by resolutions and plans."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from time import perf_counter
from typing import Callable, Generic, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from glowcare.observability.metrics import log_lookup
from glowcare.services.cache.base import KeyValueCache

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

SOURCE_CACHE = "cache"
SOURCE_STORE = "store"
SOURCE_COMPUTED = "computed"
SOURCE_MISSING = "missing"


@dataclass
class TieredResult(Generic[ModelT]):
    value: Optional[ModelT]
    source: str

    @property
    def found(self) -> bool:
        return self.value is not None


def tiered_lookup(
    db: Session,
    cache: KeyValueCache,
    *,
    kind: str,
    key: str,
    model: Type[ModelT],
    ttl_seconds: int,
    load: Callable[[], Optional[ModelT]],
    compute: Optional[Callable[[], Optional[ModelT]]] = None,
    persist: Optional[Callable[[ModelT], ModelT]] = None,
) -> TieredResult[ModelT]:
    """
    Memoize ``model`` values under ``key``.

    1. The fast cache is consulted first; a hit returns without touching the store.
    2. On a miss ``load`` reads the durable row; a well-formed row is cached and returned.
    3. Otherwise ``compute`` (when given) produces a value, ``persist`` stores it
       and the cache is populated.
    Store and cache failures degrade to the next tier; malformed payloads are
    misses. Persistence and cache writes are best-effort once a value exists.
    """
    start = perf_counter()

    cached = _read_cache(cache, key, model)
    if cached is not None:
        _report(kind, SOURCE_CACHE, start)
        return TieredResult(cached, SOURCE_CACHE)

    stored = _read_store(db, kind, key, load)
    if stored is not None:
        _write_cache(cache, key, stored, ttl_seconds)
        _report(kind, SOURCE_STORE, start)
        return TieredResult(stored, SOURCE_STORE)

    if compute is None:
        _report(kind, SOURCE_MISSING, start)
        return TieredResult(None, SOURCE_MISSING)

    computed = compute()
    if computed is None:
        _report(kind, SOURCE_MISSING, start)
        return TieredResult(None, SOURCE_MISSING)

    if persist is not None:
        computed = _persist(db, kind, key, computed, persist)
    _write_cache(cache, key, computed, ttl_seconds)
    _report(kind, SOURCE_COMPUTED, start)
    return TieredResult(computed, SOURCE_COMPUTED)


def _read_cache(cache: KeyValueCache, key: str, model: Type[ModelT]) -> Optional[ModelT]:
    raw = cache.get(key)
    if not raw:
        return None
    try:
        return model.model_validate_json(raw)
    except ValidationError as exc:
        logger.warning("Discarding malformed cache entry %s: %s", key, exc.errors()[:1])
        cache.delete(key)
        return None


def _read_store(db: Session, kind: str, key: str, load: Callable[[], Optional[ModelT]]) -> Optional[ModelT]:
    try:
        return load()
    except ValidationError as exc:
        logger.warning("Stored %s for %s is malformed, recomputing: %s", kind, key, exc.errors()[:1])
        return None
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Store read for %s %s failed, treating as miss: %s", kind, key, exc)
        return None


def _persist(
    db: Session,
    kind: str,
    key: str,
    value: ModelT,
    persist: Callable[[ModelT], ModelT],
) -> ModelT:
    try:
        return persist(value)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Persisting %s %s failed; serving the computed value: %s", kind, key, exc)
        return value


def _write_cache(cache: KeyValueCache, key: str, value: BaseModel, ttl_seconds: int) -> None:
    cache.set(key, value.model_dump_json(), ttl_seconds)


def _report(kind: str, source: str, start: float) -> None:
    log_lookup(kind, source, (perf_counter() - start) * 1000)
