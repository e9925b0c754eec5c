"""Recommendation endpoints."""
from __future__ import annotations

from time import perf_counter
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from glowcare.api.schemas.recommendations import ProfileSummary, RecommendationsResponse
from glowcare.db.deps import get_db
from glowcare.observability.metrics import log_metric
from glowcare.observability.tracing import trace
from glowcare.services.profile_service import profile_summary
from glowcare.services.recommendation_service import resolve_recommendations

router = APIRouter()


@router.get("/recommendations", response_model=RecommendationsResponse, tags=["recommendations"])
def get_recommendations(
    request: Request,
    user_id: UUID = Query(..., description="User ID"),
    profile_id: Optional[UUID] = Query(None, description="Profile the caller just wrote"),
    db: Session = Depends(get_db),
) -> RecommendationsResponse:
    """Routine for the user's current profile version, grouped by step."""
    request_id = getattr(request.state, "request_id", None)
    metadata = {"route": "/recommendations", "explicit_profile": profile_id is not None}
    start = perf_counter()
    with trace("recommendations.get", metadata=metadata, user_id=str(user_id), request_id=request_id):
        view = resolve_recommendations(db, user_id, profile_id)

    if view is None:
        log_metric("recommendations.get.no_profile", 1, metadata={"user_id": str(user_id)})
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No skin profile yet; complete the questionnaire to get recommendations",
        )

    latency_ms = (perf_counter() - start) * 1000
    log_metric("recommendations.get.latency_ms", latency_ms, metadata={"user_id": str(user_id), "source": view.source})
    return RecommendationsResponse(
        user_id=user_id,
        profile_summary=ProfileSummary(**profile_summary(view.profile)),
        rule_name=view.rule_name,
        fallback=bool(view.resolution and view.resolution.fallback),
        steps=view.steps,
        source=view.source,
        request_id=request_id or "",
    )
