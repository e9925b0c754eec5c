"""Schemas for the rule test endpoint."""
from __future__ import annotations

from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel


class ConditionCheck(BaseModel):
    field: str
    kind: str
    expected: Any = None
    actual: Any = None
    passed: bool
    error: Optional[str] = None


class RuleTestResponse(BaseModel):
    rule_id: int
    rule_name: str
    user_id: UUID
    profile_version: int
    matched: bool
    error: Optional[str] = None
    conditions: List[ConditionCheck]
    selected_rule_id: Optional[int] = None
    request_id: str = ""
