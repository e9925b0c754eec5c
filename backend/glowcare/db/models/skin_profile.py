"""SkinProfile ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from glowcare.db.base import Base
from glowcare.db.types import JSONBCompat


class SkinProfile(Base):
    """One immutable version of a user's questionnaire answers."""

    __tablename__ = "skin_profiles"
    __table_args__ = (
        UniqueConstraint("user_id", "version", name="uq_skin_profiles_user_version"),
        Index("ix_skin_profiles_user_id", "user_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    version = Column(Integer, nullable=False)
    skin_type = Column(String(length=32), nullable=True)
    sensitivity_level = Column(String(length=32), nullable=True)
    acne_level = Column(Integer, nullable=True)
    dehydration_level = Column(Integer, nullable=True)
    rosacea_risk = Column(String(length=32), nullable=True)
    pigmentation_risk = Column(String(length=32), nullable=True)
    age_group = Column(String(length=32), nullable=True)
    has_pregnancy = Column(Boolean, nullable=True)
    risk_flags = Column(JSONBCompat, nullable=False, default=list)
    main_goals = Column(JSONBCompat, nullable=False, default=list)
    notes = Column(Text, nullable=True)
    medical_markers = Column(JSONBCompat, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
