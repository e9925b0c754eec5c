"""Manual cache invalidation."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from glowcare.api.schemas.recommendations import CacheInvalidateRequest, CacheInvalidateResponse
from glowcare.db.deps import get_db
from glowcare.db.models.skin_profile import SkinProfile
from glowcare.observability.metrics import log_metric
from glowcare.observability.tracing import trace
from glowcare.services.cache import get_cache, invalidate, invalidate_all

router = APIRouter()


@router.post("/cache/invalidate", response_model=CacheInvalidateResponse, tags=["cache"])
def invalidate_cache(
    payload: CacheInvalidateRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> CacheInvalidateResponse:
    """Drop cached resolution and plan entries; stored rows are kept."""
    request_id = getattr(request.state, "request_id", None)
    cache = get_cache()
    with trace(
        "cache.invalidate",
        metadata={"profile_version": payload.profile_version},
        user_id=str(payload.user_id),
        request_id=request_id,
    ):
        if payload.profile_version is not None:
            invalidate(cache, payload.user_id, payload.profile_version)
            count = 1
        else:
            versions = [
                version
                for (version,) in db.query(SkinProfile.version).filter(SkinProfile.user_id == payload.user_id).all()
            ]
            count = invalidate_all(cache, payload.user_id, versions)

    log_metric("cache.invalidate.versions", count, metadata={"user_id": str(payload.user_id)})
    return CacheInvalidateResponse(
        user_id=payload.user_id,
        profile_version=payload.profile_version,
        versions_invalidated=count,
        request_id=request_id or "",
    )
