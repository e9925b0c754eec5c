"""Opik trace helpers for request handlers and the resolution/plan pipeline."""
from __future__ import annotations

import functools
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, Optional, TypeVar

from glowcare.core.context import get_request_id
from glowcare.observability.client import get_opik_client

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from opik.api_objects.trace.trace_client import Trace
else:  # pragma: no cover - typing helper
    Trace = object  # type: ignore[assignment]

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def build_metadata(
    metadata: Optional[Dict[str, Any]],
    *,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Drop empty values and stamp the user and request ids."""
    payload = {key: value for key, value in (metadata or {}).items() if value is not None}
    if user_id:
        payload.setdefault("user_id", str(user_id))
    request_id = request_id or get_request_id()
    if request_id:
        payload.setdefault("request_id", request_id)
    return payload


@contextmanager
def trace(
    name: str,
    metadata: Optional[Dict[str, Any]] = None,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Iterator[Optional["Trace"]]:
    """
    Open an Opik trace for the duration of the block.

    Yields None when Opik is disabled. Exceptions raised inside the block are
    attached to the trace and re-raised unchanged.
    """
    client = get_opik_client()
    span = _start(client, name, build_metadata(metadata, user_id=user_id, request_id=request_id)) if client else None
    try:
        yield span
    except Exception as exc:
        _annotate_error(span, name, exc)
        raise
    finally:
        _finish(span, name)


def traced(name: str) -> Callable[[F], F]:
    """Run the decorated function inside ``trace(name)``."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with trace(name, metadata={"function": func.__qualname__}):
                return func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


def _start(client: Any, name: str, metadata: Dict[str, Any]) -> Optional["Trace"]:
    try:
        return client.trace(name=name, metadata=metadata or None)
    except Exception as exc:  # pragma: no cover - tracing backend failure
        logger.debug("Unable to start Opik trace %s: %s", name, exc)
        return None


def _annotate_error(span: Optional["Trace"], name: str, exc: Exception) -> None:
    if span is None:
        return
    try:
        span.update(error_info={"exception_type": type(exc).__name__, "message": str(exc)})
    except Exception:  # pragma: no cover
        logger.debug("Failed to attach error info to Opik trace %s", name, exc_info=True)


def _finish(span: Optional["Trace"], name: str) -> None:
    if span is None:
        return
    try:
        span.end()
    except Exception:  # pragma: no cover
        logger.debug("Failed to close Opik trace %s cleanly", name, exc_info=True)
