"""RecommendationRule ORM model (written by the admin tooling, read-only here)."""
from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, Text, func, text as sa_text

from glowcare.db.base import Base
from glowcare.db.types import JSONBCompat


class RecommendationRule(Base):
    __tablename__ = "recommendation_rules"
    __table_args__ = (Index("ix_recommendation_rules_active_priority", "is_active", "priority"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    priority = Column(Integer, nullable=False, server_default=sa_text("0"))
    is_active = Column(Boolean, nullable=False, server_default=sa_text("true"))
    conditions_json = Column(JSONBCompat, nullable=False, default=dict)
    steps_json = Column(JSONBCompat, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
