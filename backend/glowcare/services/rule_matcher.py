"""Priority-ordered rule matching against a skin profile."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from glowcare.db.models.recommendation_rule import RecommendationRule
from glowcare.services.rule_conditions import (
    Condition,
    RuleConditionError,
    describe,
    evaluate,
    lookup_field,
    missing_value,
    parse_conditions,
)

logger = logging.getLogger(__name__)


@dataclass
class CompiledRule:
    id: int
    name: str
    priority: int
    conditions: List[Condition]
    steps: Dict[str, Any] = field(default_factory=dict)


def load_active_rules(db: Session) -> List[RecommendationRule]:
    """Active rules, highest priority first; equal priorities keep declaration order."""
    return (
        db.query(RecommendationRule)
        .filter(RecommendationRule.is_active.is_(True))
        .order_by(RecommendationRule.priority.desc(), RecommendationRule.id.asc())
        .all()
    )


def compile_rules(rules: Iterable[RecommendationRule]) -> List[CompiledRule]:
    """Parse every rule's conditions, dropping (and logging) the ones that are malformed."""
    compiled: List[CompiledRule] = []
    for rule in rules:
        if not getattr(rule, "is_active", True):
            continue
        try:
            conditions = parse_conditions(rule.conditions_json)
        except RuleConditionError as exc:
            logger.warning("Skipping rule %s (%s): malformed conditions: %s", rule.id, rule.name, exc)
            continue
        steps = rule.steps_json if isinstance(rule.steps_json, dict) else {}
        compiled.append(
            CompiledRule(
                id=rule.id,
                name=rule.name,
                priority=rule.priority or 0,
                conditions=conditions,
                steps=steps,
            )
        )
    # Stable sort: ties stay in the order the rules were declared.
    compiled.sort(key=lambda item: item.priority, reverse=True)
    return compiled


def match(profile: Any, rules: Sequence[RecommendationRule]) -> Optional[CompiledRule]:
    """Return the highest-priority rule whose conditions all hold, or None."""
    for rule in compile_rules(rules):
        try:
            if evaluate(rule.conditions, profile):
                logger.info("Profile matched rule %s (%s, priority=%s)", rule.id, rule.name, rule.priority)
                return rule
        except TypeError as exc:  # incomparable stored values
            logger.warning("Skipping rule %s (%s): evaluation failed: %s", rule.id, rule.name, exc)
    return None


def match_for_profile(db: Session, profile: Any) -> Optional[CompiledRule]:
    return match(profile, load_active_rules(db))


def explain_match(profile: Any, rule: RecommendationRule) -> Dict[str, Any]:
    """Per-condition breakdown used by the rule test endpoint."""
    try:
        conditions = parse_conditions(rule.conditions_json)
    except RuleConditionError as exc:
        return {"rule_id": rule.id, "rule_name": rule.name, "matched": False, "error": str(exc), "conditions": []}

    missing = missing_value()
    details = []
    for condition in conditions:
        actual = lookup_field(profile, condition.field)
        entry = describe(condition)
        entry["actual"] = None if actual is missing else actual
        try:
            entry["passed"] = condition.holds(actual)
            entry["error"] = None
        except TypeError as exc:
            entry["passed"] = False
            entry["error"] = f"cannot compare {condition.field}: {exc}"
        details.append(entry)
    return {
        "rule_id": rule.id,
        "rule_name": rule.name,
        "matched": all(item["passed"] for item in details),
        "error": next((item["error"] for item in details if item["error"]), None),
        "conditions": details,
    }
