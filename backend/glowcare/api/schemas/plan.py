"""Schemas for care plans."""
from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

PlanPhase = Literal["adaptation", "active", "support"]
PlanStateName = Literal["no_profile", "not_found", "ready", "ready_without_profile"]


class PlanStep(BaseModel):
    step: str
    product_id: Optional[int] = None
    alternatives: List[int] = Field(default_factory=list)


class PlanDay(BaseModel):
    day_index: int = Field(..., ge=1)
    phase: PlanPhase
    is_weekly_focus_day: bool = False
    morning: List[PlanStep]
    evening: List[PlanStep]
    weekly: List[PlanStep] = Field(default_factory=list)


class PlanDocument(BaseModel):
    """Day-indexed schedule derived from one resolution."""

    user_id: UUID
    profile_id: UUID
    profile_version: int = Field(..., ge=1)
    horizon_days: int = Field(..., ge=1)
    main_goals: List[str] = Field(default_factory=list)
    days: List[PlanDay] = Field(..., min_length=1)
    created_at: datetime


class PlanResponse(BaseModel):
    user_id: UUID
    state: PlanStateName
    plan: Optional[PlanDocument] = None
    expired: Optional[bool] = None
    days_since_creation: Optional[int] = None
    profile_version: Optional[int] = None
    source: Optional[str] = None
    request_id: str = ""


class PlanGenerateRequest(BaseModel):
    user_id: UUID
    profile_id: Optional[UUID] = None
