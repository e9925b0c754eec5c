"""Schemas for recommendation resolution."""
from __future__ import annotations

from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class ResolvedRecommendation(BaseModel):
    """Materialized rule resolution for one (user, profile version)."""

    user_id: UUID
    profile_id: UUID
    profile_version: int = Field(..., ge=1)
    rule_id: Optional[int] = None
    rule_name: Optional[str] = None
    fallback: bool = False
    steps: Dict[str, List[int]]
    products: List[int]

    @model_validator(mode="after")
    def check_products_cover_steps(self) -> "ResolvedRecommendation":
        if not self.products:
            raise ValueError("resolution has no products")
        step_ids = {product_id for ids in self.steps.values() for product_id in ids}
        if not step_ids.issubset(self.products):
            raise ValueError("step products missing from product list")
        return self


class ProductCard(BaseModel):
    id: int
    name: str
    brand: str
    line: Optional[str] = None
    category: str
    step: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None


class ProfileSummary(BaseModel):
    profile_id: UUID
    version: int
    skin_type: Optional[str] = None
    sensitivity_level: Optional[str] = None
    acne_level: Optional[int] = None
    notes: Optional[str] = None


class RecommendationsResponse(BaseModel):
    user_id: UUID
    profile_summary: ProfileSummary
    rule_name: Optional[str] = None
    fallback: bool = False
    steps: Dict[str, List[ProductCard]]
    source: str
    request_id: str = ""


class CacheInvalidateRequest(BaseModel):
    user_id: UUID
    profile_version: Optional[int] = Field(default=None, ge=1)


class CacheInvalidateResponse(BaseModel):
    user_id: UUID
    profile_version: Optional[int] = None
    versions_invalidated: int
    request_id: str = ""
