"""Brand and Product ORM models."""
from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, func, text as sa_text
from sqlalchemy.orm import relationship

from glowcare.db.base import Base
from glowcare.db.types import JSONBCompat


class Brand(Base):
    __tablename__ = "brands"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, server_default=sa_text("true"))

    products = relationship("Product", back_populates="brand")


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        Index("ix_products_step", "step"),
        Index("ix_products_category", "category"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    brand_id = Column(Integer, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    name = Column(Text, nullable=False)
    line = Column(Text, nullable=True)
    category = Column(String(length=64), nullable=False)
    step = Column(String(length=64), nullable=True)
    skin_types = Column(JSONBCompat, nullable=False, default=list)
    concerns = Column(JSONBCompat, nullable=False, default=list)
    active_ingredients = Column(JSONBCompat, nullable=False, default=list)
    is_fragrance_free = Column(Boolean, nullable=False, server_default=sa_text("false"))
    is_non_comedogenic = Column(Boolean, nullable=False, server_default=sa_text("false"))
    is_hero = Column(Boolean, nullable=False, server_default=sa_text("false"))
    priority = Column(Integer, nullable=False, server_default=sa_text("0"))
    published = Column(Boolean, nullable=False, server_default=sa_text("true"))
    description = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    brand = relationship("Brand", back_populates="products")
