"""Schemas for questionnaire submission and profile lookup."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

SkinType = Literal["dry", "oily", "combo", "normal", "sensitive"]


class ProfileAnswers(BaseModel):
    skin_type: Optional[SkinType] = None
    sensitivity_level: Optional[Literal["low", "medium", "high", "very_high"]] = None
    acne_level: Optional[int] = Field(default=None, ge=0, le=5)
    dehydration_level: Optional[int] = Field(default=None, ge=0, le=5)
    rosacea_risk: Optional[Literal["low", "medium", "high", "critical"]] = None
    pigmentation_risk: Optional[Literal["low", "medium", "high"]] = None
    age_group: Optional[str] = Field(default=None, max_length=32)
    has_pregnancy: Optional[bool] = None
    risk_flags: Optional[List[str]] = None
    main_goals: Optional[List[str]] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    medical_markers: Optional[Dict[str, Any]] = None

    @field_validator("skin_type", mode="before")
    @classmethod
    def normalize_skin_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            cleaned = value.strip().lower()
            return "combo" if cleaned in {"combination", "combined"} else cleaned
        return value

    @field_validator("risk_flags", "main_goals")
    @classmethod
    def strip_blank_items(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        return [item.strip() for item in value if item and item.strip()]


class ProfileSubmitRequest(BaseModel):
    user_id: UUID
    answers: ProfileAnswers


class ProfileSubmitResponse(BaseModel):
    profile_id: UUID
    user_id: UUID
    version: int
    previous_version: Optional[int] = None
    request_id: str = ""


class ProfileResponse(BaseModel):
    profile_id: UUID
    user_id: UUID
    version: int
    skin_type: Optional[str] = None
    sensitivity_level: Optional[str] = None
    acne_level: Optional[int] = None
    dehydration_level: Optional[int] = None
    rosacea_risk: Optional[str] = None
    pigmentation_risk: Optional[str] = None
    age_group: Optional[str] = None
    has_pregnancy: Optional[bool] = None
    risk_flags: List[str] = Field(default_factory=list)
    main_goals: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    medical_markers: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    resolved_via: Optional[str] = None
    request_id: str = ""
