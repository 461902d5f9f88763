"""
Rule Conditions
===============

Conditions are a small tagged tree:

- FieldCondition: a leaf comparing one context field with a value
- AllOf / AnyOf: conjunction / disjunction of child conditions
- Not: negation of one child

Stored form (JSON on the rule row):

    {"all": [{"field": "ticket.priority", "operator": "equals", "value": "high"},
             {"not": {"field": "ticket.tags", "operator": "contains", "value": "vip"}}]}

A bare list of leaves is accepted and treated as "all". None, [] and {}
are the empty condition, which always matches.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Tuple, Union

from supportwatch.core.exceptions import ConditionException


class ConditionOperator(str):
    """Leaf comparison operators."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN = "in"
    NOT_IN = "not_in"
    EXISTS = "exists"


VALID_OPERATORS = [
    ConditionOperator.EQUALS, ConditionOperator.NOT_EQUALS, ConditionOperator.CONTAINS,
    ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN,
    ConditionOperator.IN, ConditionOperator.NOT_IN, ConditionOperator.EXISTS
]

_MISSING = object()
_COMBINATOR_KEYS = ("all", "any", "not")


@dataclass(frozen=True)
class FieldCondition:
    field: str
    operator: str
    value: Any = None


@dataclass(frozen=True)
class AllOf:
    children: Tuple["Condition", ...] = ()


@dataclass(frozen=True)
class AnyOf:
    children: Tuple["Condition", ...] = ()


@dataclass(frozen=True)
class Not:
    child: "Condition"


Condition = Union[FieldCondition, AllOf, AnyOf, Not]

EMPTY_CONDITION = AllOf(())


def parse_condition(raw: Any) -> Condition:
    """
    Parse and validate a stored condition.

    Raises:
        ConditionException: If the structure or an operator is invalid
    """
    if raw is None:
        return EMPTY_CONDITION

    if isinstance(raw, list):
        return AllOf(tuple(parse_condition(item) for item in raw))

    if not isinstance(raw, Mapping):
        raise ConditionException(
            f"Condition must be an object or a list, got {type(raw).__name__}"
        )

    if not raw:
        return EMPTY_CONDITION

    combinators = [key for key in _COMBINATOR_KEYS if key in raw]
    if len(combinators) > 1 or (combinators and "field" in raw):
        raise ConditionException(
            "Condition node must use exactly one of all, any, not or field",
            {"keys": sorted(raw)}
        )

    if combinators and combinators[0] in ("all", "any"):
        key = combinators[0]
        children = raw[key]
        if not isinstance(children, list):
            raise ConditionException(f"'{key}' must contain a list of conditions")
        parsed = tuple(parse_condition(child) for child in children)
        return AllOf(parsed) if key == "all" else AnyOf(parsed)

    if "not" in raw:
        if raw["not"] in (None, [], {}):
            raise ConditionException("'not' requires a condition")
        return Not(parse_condition(raw["not"]))

    return _parse_leaf(raw)


def _parse_leaf(raw: Mapping) -> FieldCondition:
    field_name = raw.get("field")
    if not isinstance(field_name, str) or not field_name.strip():
        raise ConditionException("Condition leaf requires a non-empty 'field'", {"condition": dict(raw)})

    operator = raw.get("operator", ConditionOperator.EQUALS)
    if operator not in VALID_OPERATORS:
        raise ConditionException(
            f"Unknown condition operator '{operator}'",
            {"field": field_name, "valid_operators": VALID_OPERATORS}
        )

    value = raw.get("value")
    if operator in (ConditionOperator.IN, ConditionOperator.NOT_IN):
        if not isinstance(value, (list, tuple)):
            raise ConditionException(
                f"Operator '{operator}' requires a list value",
                {"field": field_name}
            )
        value = tuple(value)

    return FieldCondition(field=field_name, operator=operator, value=value)


def condition_to_dict(condition: Condition) -> Any:
    """Inverse of parse_condition, producing the canonical stored form."""
    if isinstance(condition, FieldCondition):
        value = list(condition.value) if isinstance(condition.value, tuple) else condition.value
        return {"field": condition.field, "operator": condition.operator, "value": value}
    if isinstance(condition, AllOf):
        return {"all": [condition_to_dict(child) for child in condition.children]}
    if isinstance(condition, AnyOf):
        return {"any": [condition_to_dict(child) for child in condition.children]}
    return {"not": condition_to_dict(condition.child)}


def get_nested_value(data: Any, path: str, default: Any = None) -> Any:
    """
    Resolve a dotted path against nested dicts and objects.

    A flat key containing dots ("ticket.title" stored at the top level)
    wins over walking the path.
    """
    if isinstance(data, Mapping) and path in data:
        return data[path]

    current = data
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return default
            current = current[part]
        elif current is not None and hasattr(current, part):
            current = getattr(current, part)
        else:
            return default
    return current


def evaluate_condition(condition: Condition, context: Dict[str, Any]) -> bool:
    """
    Evaluate a parsed condition against an event context.

    Raises:
        ConditionException: If a leaf cannot be compared (e.g. ordering a string)
    """
    if isinstance(condition, AllOf):
        return all(evaluate_condition(child, context) for child in condition.children)
    if isinstance(condition, AnyOf):
        return any(evaluate_condition(child, context) for child in condition.children)
    if isinstance(condition, Not):
        return not evaluate_condition(condition.child, context)
    return _evaluate_leaf(condition, context)


def _evaluate_leaf(condition: FieldCondition, context: Dict[str, Any]) -> bool:
    actual = get_nested_value(context, condition.field, _MISSING)
    operator = condition.operator
    expected = condition.value

    if operator == ConditionOperator.EXISTS:
        present = actual is not _MISSING and actual is not None
        return present if expected is None else present == bool(expected)

    if actual is _MISSING:
        return operator in (ConditionOperator.NOT_EQUALS, ConditionOperator.NOT_IN)

    if operator == ConditionOperator.EQUALS:
        return actual == expected
    if operator == ConditionOperator.NOT_EQUALS:
        return actual != expected
    if operator == ConditionOperator.IN:
        return actual in expected
    if operator == ConditionOperator.NOT_IN:
        return actual not in expected
    if operator == ConditionOperator.CONTAINS:
        return _contains(actual, expected)

    left, right = _as_number(actual, condition.field), _as_number(expected, condition.field)
    if operator == ConditionOperator.GREATER_THAN:
        return left > right
    return left < right


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, str):
        return str(expected).lower() in actual.lower()
    if isinstance(actual, (list, tuple, set)):
        return expected in actual
    if isinstance(actual, Mapping):
        return expected in actual
    return False


def _as_number(value: Any, field_name: str) -> float:
    if isinstance(value, bool):
        raise ConditionException(f"Field '{field_name}' is not numeric", {"value": value})
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            pass
    raise ConditionException(
        f"Field '{field_name}' cannot be compared numerically",
        {"field": field_name, "value": repr(value)}
    )


def validate_conditions(raw: Any) -> Dict[str, Any]:
    """Parse for validation and return the canonical stored form."""
    condition = parse_condition(raw)
    if condition == EMPTY_CONDITION:
        return {}
    return condition_to_dict(condition)
