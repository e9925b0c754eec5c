"""Rule debugging endpoint."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from glowcare.api.schemas.rules import ConditionCheck, RuleTestResponse
from glowcare.db.deps import get_db
from glowcare.db.models.recommendation_rule import RecommendationRule
from glowcare.observability.tracing import trace
from glowcare.services.profile_service import resolve_profile
from glowcare.services.rule_matcher import explain_match, match_for_profile

router = APIRouter()


@router.get("/rules/{rule_id}/test", response_model=RuleTestResponse, tags=["rules"])
def explain_rule(
    rule_id: int,
    request: Request,
    user_id: UUID = Query(..., description="User whose current profile is evaluated"),
    db: Session = Depends(get_db),
) -> RuleTestResponse:
    """Explain how one rule evaluates against the user's current profile."""
    request_id = getattr(request.state, "request_id", None)
    with trace("rules.test", metadata={"rule_id": rule_id}, user_id=str(user_id), request_id=request_id):
        rule = db.get(RecommendationRule, rule_id)
        if rule is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rule not found")
        profile = resolve_profile(db, user_id, retry=False).profile
        if profile is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User has no skin profile")
        explanation = explain_match(profile, rule)
        selected = match_for_profile(db, profile)

    return RuleTestResponse(
        rule_id=rule.id,
        rule_name=rule.name,
        user_id=user_id,
        profile_version=profile.version,
        matched=explanation["matched"],
        error=explanation["error"],
        conditions=[ConditionCheck(**item) for item in explanation["conditions"]],
        selected_rule_id=selected.id if selected else None,
        request_id=request_id or "",
    )
