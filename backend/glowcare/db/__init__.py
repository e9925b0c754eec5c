"""Declarative base plus every mapped model, so ``Base.metadata`` is complete on import."""

from glowcare.db.base import Base
from glowcare.db import models  # noqa: F401

__all__ = ["Base", "models"]
