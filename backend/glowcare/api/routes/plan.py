"""Care plan endpoints."""
from __future__ import annotations

from time import perf_counter
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from glowcare.api.schemas.plan import PlanGenerateRequest, PlanResponse
from glowcare.db.deps import get_db
from glowcare.observability.metrics import log_metric
from glowcare.observability.tracing import trace
from glowcare.services.plan_service import PlanResult, generate_plan, get_plan

router = APIRouter()


@router.get("/plan", response_model=PlanResponse, tags=["plan"])
def read_plan(
    request: Request,
    user_id: UUID = Query(..., description="User ID"),
    profile_id: Optional[UUID] = Query(None, description="Profile the caller just wrote"),
    db: Session = Depends(get_db),
) -> PlanResponse:
    """
    Current plan for the user.

    Empty states are answered with 200 and an explicit ``state`` so the client
    can tell "complete the questionnaire" (``no_profile``) from "generate the
    plan" (``not_found``).
    """
    request_id = getattr(request.state, "request_id", None)
    start = perf_counter()
    with trace("plan.read", metadata={"route": "/plan"}, user_id=str(user_id), request_id=request_id):
        result = get_plan(db, user_id, profile_id)

    latency_ms = (perf_counter() - start) * 1000
    log_metric("plan.read.state", 1, metadata={"user_id": str(user_id), "state": result.state})
    log_metric("plan.read.latency_ms", latency_ms, metadata={"user_id": str(user_id)})
    return _response(user_id, result, request_id)


@router.post("/plan/generate", response_model=PlanResponse, tags=["plan"])
def create_plan(
    payload: PlanGenerateRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> PlanResponse:
    request_id = getattr(request.state, "request_id", None)
    start = perf_counter()
    with trace("plan.create", metadata={"route": "/plan/generate"}, user_id=str(payload.user_id), request_id=request_id):
        result = generate_plan(db, payload.user_id, payload.profile_id)

    latency_ms = (perf_counter() - start) * 1000
    log_metric("plan.create.latency_ms", latency_ms, metadata={"user_id": str(payload.user_id), "state": result.state})
    return _response(payload.user_id, result, request_id)


def _response(user_id: UUID, result: PlanResult, request_id: str | None) -> PlanResponse:
    return PlanResponse(
        user_id=user_id,
        state=result.state,
        plan=result.plan,
        expired=result.expired,
        days_since_creation=result.days_since_creation,
        profile_version=result.profile_version,
        source=result.source,
        request_id=request_id or "",
    )
