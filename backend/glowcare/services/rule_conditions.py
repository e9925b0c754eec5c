"""Typed rule conditions and the small interpreter that evaluates them."""
from __future__ import annotations

import re
from dataclasses import dataclass
from numbers import Real
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union


class RuleConditionError(ValueError):
    """Raised when a stored condition cannot be interpreted."""


_MISSING = object()
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any

    def holds(self, actual: Any) -> bool:
        return actual is not _MISSING and strictly_equal(actual, self.value)


@dataclass(frozen=True)
class OneOf:
    field: str
    options: Tuple[Any, ...]

    def holds(self, actual: Any) -> bool:
        if actual is _MISSING or actual is None:
            return False
        if isinstance(actual, (list, tuple, set, frozenset)):
            return any(self._contains(_scalar(item)) for item in actual)
        return self._contains(_scalar(actual))

    def _contains(self, value: Any) -> bool:
        return any(strictly_equal(value, option) for option in self.options)


@dataclass(frozen=True)
class Range:
    field: str
    gte: Optional[float] = None
    lte: Optional[float] = None

    def holds(self, actual: Any) -> bool:
        if isinstance(actual, bool) or not isinstance(actual, Real):
            return False
        if self.gte is not None and actual < self.gte:
            return False
        if self.lte is not None and actual > self.lte:
            return False
        return True


Condition = Union[Equals, OneOf, Range]


def parse_conditions(raw: Any) -> List[Condition]:
    """
    Turn a stored ``conditions_json`` map into typed conditions.

    ``{"skinType": ["oily", "combo"]}`` -> OneOf, ``{"acneLevel": {"gte": 3}}``
    -> Range, ``{"hasPregnancy": false}`` -> Equals. An empty map is a
    catch-all. Anything else raises RuleConditionError.
    """
    if raw is None:
        return []
    if not isinstance(raw, Mapping):
        raise RuleConditionError(f"conditions must be an object, got {type(raw).__name__}")

    parsed: List[Condition] = []
    for field, spec in raw.items():
        if not isinstance(field, str) or not field.strip():
            raise RuleConditionError("condition field names must be non-empty strings")
        parsed.append(_parse_one(field.strip(), spec))
    return parsed


def _parse_one(field: str, spec: Any) -> Condition:
    if isinstance(spec, (list, tuple)):
        if not spec:
            raise RuleConditionError(f"{field}: empty option list never matches")
        try:
            return OneOf(field=field, options=_unique(_scalar(item) for item in spec))
        except TypeError as exc:
            raise RuleConditionError(f"{field}: options must be scalar values") from exc
    if isinstance(spec, Mapping):
        unknown = set(spec) - {"gte", "lte"}
        if unknown or not spec:
            raise RuleConditionError(f"{field}: range accepts only gte/lte, got {sorted(map(str, spec))}")
        gte = _bound(field, spec.get("gte"))
        lte = _bound(field, spec.get("lte"))
        if gte is not None and lte is not None and gte > lte:
            raise RuleConditionError(f"{field}: gte {gte} is greater than lte {lte}")
        return Range(field=field, gte=gte, lte=lte)
    if spec is None or isinstance(spec, (str, bool, int, float)):
        return Equals(field=field, value=spec)
    raise RuleConditionError(f"{field}: unsupported condition type {type(spec).__name__}")


def _bound(field: str, value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, Real):
        raise RuleConditionError(f"{field}: range bounds must be numbers")
    return float(value)


def strictly_equal(actual: Any, expected: Any) -> bool:
    """Equality without Python's bool/int coercion: ``False`` never equals ``0``."""
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    return actual == expected


def _scalar(value: Any) -> Any:
    if isinstance(value, (Mapping, list)):
        raise TypeError("not a scalar value")
    return value


def _unique(values: Any) -> Tuple[Any, ...]:
    kept: List[Any] = []
    for value in values:
        if not any(strictly_equal(value, seen) for seen in kept):
            kept.append(value)
    return tuple(kept)


def lookup_field(profile: Any, field: str) -> Any:
    """
    Read one profile attribute by name.

    Accepts camelCase names written by the admin tooling (``skinType``), the
    snake_case ORM attribute, and ``medical_markers.<key>`` for the structured
    marker map. Returns a sentinel when the attribute does not exist.
    """
    if "." in field:
        head, _, tail = field.partition(".")
        container = lookup_field(profile, head)
        if isinstance(container, Mapping):
            return container.get(tail, _MISSING)
        return _MISSING

    for name in (field, _CAMEL_BOUNDARY.sub("_", field).lower()):
        if isinstance(profile, Mapping):
            if name in profile:
                return profile[name]
        elif hasattr(profile, name):
            return getattr(profile, name)
    return _MISSING


def evaluate(conditions: List[Condition], profile: Any) -> bool:
    return all(condition.holds(lookup_field(profile, condition.field)) for condition in conditions)


def describe(condition: Condition) -> Dict[str, Any]:
    if isinstance(condition, OneOf):
        return {"field": condition.field, "kind": "one_of", "expected": sorted(condition.options, key=str)}
    if isinstance(condition, Range):
        return {"field": condition.field, "kind": "range", "expected": {"gte": condition.gte, "lte": condition.lte}}
    return {"field": condition.field, "kind": "equals", "expected": condition.value}


def missing_value() -> Any:
    return _MISSING
