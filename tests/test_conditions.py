"""Tests for rule condition parsing and evaluation."""

import pytest

from supportwatch.core.exceptions import ConditionException
from supportwatch.notifications.domain import (
    EMPTY_CONDITION,
    evaluate_condition,
    get_nested_value,
    parse_condition,
    validate_conditions,
)


CONTEXT = {
    "ticket": {
        "id": "T-1",
        "title": "Cannot log in to the portal",
        "priority": "high",
        "tags": ["login", "vip"],
        "reopen_count": 2,
    },
    "ticket.title": "Cannot log in to the portal",
    "severity": "critical",
}


class TestParseCondition:
    @pytest.mark.parametrize("raw", [None, [], {}])
    def test_empty_forms_parse_to_empty_condition(self, raw):
        assert parse_condition(raw) == EMPTY_CONDITION

    def test_bare_list_is_conjunction(self):
        condition = parse_condition([
            {"field": "ticket.priority", "operator": "equals", "value": "high"},
            {"field": "severity", "operator": "equals", "value": "critical"},
        ])
        assert evaluate_condition(condition, CONTEXT) is True

    def test_operator_defaults_to_equals(self):
        condition = parse_condition({"field": "ticket.priority", "value": "high"})
        assert condition.operator == "equals"

    def test_unknown_operator_rejected(self):
        with pytest.raises(ConditionException, match="Unknown condition operator"):
            parse_condition({"field": "ticket.priority", "operator": "like", "value": "h%"})

    def test_leaf_without_field_rejected(self):
        with pytest.raises(ConditionException):
            parse_condition({"operator": "equals", "value": "high"})

    def test_in_requires_list(self):
        with pytest.raises(ConditionException, match="requires a list"):
            parse_condition({"field": "ticket.priority", "operator": "in", "value": "high"})

    def test_not_requires_child(self):
        with pytest.raises(ConditionException):
            parse_condition({"not": {}})

    def test_non_mapping_rejected(self):
        with pytest.raises(ConditionException):
            parse_condition("ticket.priority == high")

    @pytest.mark.parametrize("raw", [
        {"all": [{"field": "a", "value": 1}], "any": [{"field": "b", "value": 2}]},
        {"any": [{"field": "a", "value": 1}], "not": {"field": "b", "value": 2}},
        {"all": [{"field": "a", "value": 1}], "field": "ticket.priority", "value": "high"},
        {"not": {"field": "a", "value": 1}, "field": "ticket.priority"},
    ])
    def test_ambiguous_node_rejected(self, raw):
        with pytest.raises(ConditionException):
            parse_condition(raw)

    def test_validate_returns_canonical_form(self):
        stored = validate_conditions([{"field": "ticket.priority", "value": "high"}])
        assert stored == {
            "all": [{"field": "ticket.priority", "operator": "equals", "value": "high"}]
        }
        assert validate_conditions(None) == {}


class TestEvaluateCondition:
    def test_empty_condition_always_matches(self):
        assert evaluate_condition(EMPTY_CONDITION, {}) is True
        assert evaluate_condition(EMPTY_CONDITION, CONTEXT) is True

    def test_any_and_not(self):
        condition = parse_condition({
            "any": [
                {"field": "ticket.priority", "operator": "equals", "value": "low"},
                {"not": {"field": "severity", "operator": "equals", "value": "warning"}},
            ]
        })
        assert evaluate_condition(condition, CONTEXT) is True

    def test_contains_is_case_insensitive_for_strings(self):
        condition = parse_condition({"field": "ticket.title", "operator": "contains", "value": "LOG IN"})
        assert evaluate_condition(condition, CONTEXT) is True

    def test_contains_on_list_checks_membership(self):
        condition = parse_condition({"field": "ticket.tags", "operator": "contains", "value": "vip"})
        assert evaluate_condition(condition, CONTEXT) is True

    def test_numeric_comparisons(self):
        greater = parse_condition({"field": "ticket.reopen_count", "operator": "greater_than", "value": 1})
        less = parse_condition({"field": "ticket.reopen_count", "operator": "less_than", "value": "2"})
        assert evaluate_condition(greater, CONTEXT) is True
        assert evaluate_condition(less, CONTEXT) is False

    def test_numeric_comparison_on_text_raises(self):
        condition = parse_condition({"field": "ticket.title", "operator": "greater_than", "value": 3})
        with pytest.raises(ConditionException):
            evaluate_condition(condition, CONTEXT)

    def test_in_and_not_in(self):
        inside = parse_condition({"field": "ticket.priority", "operator": "in", "value": ["high", "urgent"]})
        outside = parse_condition({"field": "ticket.priority", "operator": "not_in", "value": ["low"]})
        assert evaluate_condition(inside, CONTEXT) is True
        assert evaluate_condition(outside, CONTEXT) is True

    def test_missing_field(self):
        equals = parse_condition({"field": "ticket.category", "operator": "equals", "value": "billing"})
        not_equals = parse_condition({"field": "ticket.category", "operator": "not_equals", "value": "billing"})
        exists = parse_condition({"field": "ticket.category", "operator": "exists"})
        assert evaluate_condition(equals, CONTEXT) is False
        assert evaluate_condition(not_equals, CONTEXT) is True
        assert evaluate_condition(exists, CONTEXT) is False


def test_get_nested_value_prefers_flat_dotted_key():
    data = {"ticket.title": "flat", "ticket": {"title": "nested"}}
    assert get_nested_value(data, "ticket.title") == "flat"
    assert get_nested_value({"ticket": {"title": "nested"}}, "ticket.title") == "nested"
    assert get_nested_value({}, "ticket.title", "fallback") == "fallback"
