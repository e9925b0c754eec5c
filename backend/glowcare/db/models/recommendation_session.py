"""RecommendationSession ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
    text as sa_text,
)
from sqlalchemy.dialects.postgresql import UUID

from glowcare.db.base import Base
from glowcare.db.types import JSONBCompat


class RecommendationSession(Base):
    """The materialized rule resolution for one profile version."""

    __tablename__ = "recommendation_sessions"
    __table_args__ = (
        UniqueConstraint("user_id", "profile_version", name="uq_recommendation_sessions_user_version"),
        Index("ix_recommendation_sessions_profile_id", "profile_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    profile_id = Column(UUID(as_uuid=True), ForeignKey("skin_profiles.id", ondelete="RESTRICT"), nullable=False)
    profile_version = Column(Integer, nullable=False)
    rule_id = Column(Integer, ForeignKey("recommendation_rules.id", ondelete="SET NULL"), nullable=True)
    rule_name = Column(Text, nullable=True)
    products = Column(JSONBCompat, nullable=False, default=list)
    steps = Column(JSONBCompat, nullable=False, default=dict)
    fallback = Column(Boolean, nullable=False, server_default=sa_text("false"))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
