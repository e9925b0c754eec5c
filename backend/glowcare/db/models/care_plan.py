"""CarePlan ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from glowcare.db.base import Base
from glowcare.db.types import JSONBCompat


class CarePlan(Base):
    __tablename__ = "care_plans"
    __table_args__ = (
        UniqueConstraint("user_id", "profile_version", name="uq_care_plans_user_version"),
        Index("ix_care_plans_user_created", "user_id", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    profile_id = Column(UUID(as_uuid=True), ForeignKey("skin_profiles.id", ondelete="RESTRICT"), nullable=False)
    profile_version = Column(Integer, nullable=False)
    plan_data = Column(JSONBCompat, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
