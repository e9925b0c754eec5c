"""Lightweight metrics helpers."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from glowcare.observability import tracing

logger = logging.getLogger(__name__)


def log_metric(name: str, value: float | int, metadata: Optional[Dict[str, Any]] = None) -> None:
    """Record a metric as a short-lived Opik trace; silently skipped when Opik is off."""
    payload: Dict[str, Any] = {"value": value}
    if metadata:
        payload.update({k: v for k, v in metadata.items() if v is not None})

    with tracing.trace(f"metric:{name}", metadata=payload):
        pass


def log_lookup(kind: str, source: str, latency_ms: float, **metadata: Any) -> None:
    """Report which tier (cache/store/computed/missing) served a lookup."""
    log_metric(f"{kind}.lookup.{source}", 1, metadata=metadata)
    log_metric(f"{kind}.lookup.latency_ms", latency_ms, metadata={"source": source, **metadata})
    logger.debug("%s lookup served from %s in %.1fms", kind, source, latency_ms)
