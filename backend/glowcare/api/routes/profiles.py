"""Questionnaire submission and current profile lookup."""
from __future__ import annotations

from time import perf_counter
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from glowcare.api.schemas.profile import (
    ProfileResponse,
    ProfileSubmitRequest,
    ProfileSubmitResponse,
)
from glowcare.db.deps import get_db
from glowcare.observability.metrics import log_metric
from glowcare.observability.tracing import trace
from glowcare.services.profile_service import PROFILE_FIELDS, create_profile_version, resolve_profile

router = APIRouter()


@router.post(
    "/profiles",
    response_model=ProfileSubmitResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["profiles"],
)
def submit_profile(
    payload: ProfileSubmitRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> ProfileSubmitResponse:
    """Store a full questionnaire submission as a new profile version."""
    return _store_version(payload, request, db, partial=False)


@router.patch("/profiles", response_model=ProfileSubmitResponse, tags=["profiles"])
def resubmit_profile(
    payload: ProfileSubmitRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> ProfileSubmitResponse:
    """Layer a partial re-submission on top of the latest version."""
    return _store_version(payload, request, db, partial=True)


@router.get("/profiles/current", response_model=ProfileResponse, tags=["profiles"])
def current_profile(
    request: Request,
    user_id: UUID = Query(..., description="User ID"),
    profile_id: Optional[UUID] = Query(None, description="Profile the caller just wrote"),
    db: Session = Depends(get_db),
) -> ProfileResponse:
    request_id = getattr(request.state, "request_id", None)
    with trace("profile.current", metadata={"route": "/profiles/current"}, user_id=str(user_id), request_id=request_id):
        resolution = resolve_profile(db, user_id, profile_id, retry=False)

    if not resolution.found:
        log_metric("profile.current.missing", 1, metadata={"user_id": str(user_id)})
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No skin profile yet; complete the questionnaire first",
        )

    profile = resolution.profile
    fields = {name: getattr(profile, name) for name in PROFILE_FIELDS}
    fields["risk_flags"] = fields["risk_flags"] or []
    fields["main_goals"] = fields["main_goals"] or []
    fields["medical_markers"] = fields["medical_markers"] or {}
    return ProfileResponse(
        profile_id=profile.id,
        user_id=profile.user_id,
        version=profile.version,
        created_at=profile.created_at,
        resolved_via=resolution.via,
        request_id=request_id or "",
        **fields,
    )


def _store_version(
    payload: ProfileSubmitRequest,
    request: Request,
    db: Session,
    *,
    partial: bool,
) -> ProfileSubmitResponse:
    request_id = getattr(request.state, "request_id", None)
    answers = payload.answers.model_dump(exclude_unset=partial)
    start = perf_counter()
    with trace(
        "profile.submit",
        metadata={"partial": partial, "answer_count": len(answers)},
        user_id=str(payload.user_id),
        request_id=request_id,
    ):
        try:
            result = create_profile_version(db, payload.user_id, answers, partial=partial)
        except IntegrityError:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Profile was updated concurrently; please retry",
            )

    latency_ms = (perf_counter() - start) * 1000
    log_metric("profile.submit.success", 1, metadata={"user_id": str(payload.user_id), "partial": partial})
    log_metric("profile.submit.latency_ms", latency_ms, metadata={"user_id": str(payload.user_id)})
    return ProfileSubmitResponse(
        profile_id=result.profile.id,
        user_id=payload.user_id,
        version=result.profile.version,
        previous_version=result.previous_version,
        request_id=request_id or "",
    )
