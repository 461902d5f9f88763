"""Tests for rule matching, bindings and priority derivation."""

from datetime import timedelta

from supportwatch.notifications.application import (
    RuleMatcher, build_bindings, derive_priority, sanitize_context
)
from supportwatch.notifications.domain import NotificationAction, NotificationRule

from tests.conftest import T0


def make_rule(rule_id, trigger="ticket_created", conditions=None, channel="realtime", minutes=0, **kwargs):
    return NotificationRule(
        id=rule_id,
        name=f"rule {rule_id}",
        trigger=trigger,
        conditions=conditions if conditions is not None else {},
        actions=[NotificationAction(channel=channel, recipients=("admins",), subject="{{ticket.title}}")],
        created_at=T0 + timedelta(minutes=minutes),
        **kwargs,
    )


CONTEXT = {"ticket": {"id": "T-1", "title": "Cannot log in", "priority": "high"}}


class TestRuleMatcher:
    def setup_method(self):
        self.matcher = RuleMatcher(uow_factory=None, base_url="https://support.example.com/")

    def test_rule_without_conditions_matches_any_context(self):
        result = self.matcher.match([make_rule("r1")], "ticket_created", {})
        assert result.matched_rule_ids == ["r1"]
        assert len(result.actions) == 1

    def test_matching_rule_yields_its_actions(self):
        rule = make_rule("r1", conditions={"field": "ticket.priority", "operator": "equals", "value": "high"})
        result = self.matcher.match([rule], "ticket_created", CONTEXT)

        assert result.rules_evaluated == 1
        matched = result.actions[0]
        assert matched.rule_id == "r1"
        assert matched.action.channel == "realtime"
        assert matched.bindings["ticket.title"] == "Cannot log in"

    def test_non_matching_and_inactive_rules_are_skipped(self):
        rules = [
            make_rule("r1", conditions={"field": "ticket.priority", "value": "low"}),
            make_rule("r2", is_active=False),
            make_rule("r3", trigger="status_changed"),
        ]
        result = self.matcher.match(rules, "ticket_created", CONTEXT)
        assert result.matched_rule_ids == []
        assert result.rules_evaluated == 1

    def test_actions_keep_rule_order(self):
        rules = [make_rule("first", minutes=0), make_rule("second", minutes=5), make_rule("third", minutes=9)]
        result = self.matcher.match(rules, "ticket_created", CONTEXT)
        assert [a.rule_id for a in result.actions] == ["first", "second", "third"]

    def test_broken_rule_is_reported_and_others_still_run(self):
        rules = [
            make_rule("broken", conditions={"field": "ticket.title", "operator": "greater_than", "value": 1}),
            make_rule("ok"),
        ]
        result = self.matcher.match(rules, "ticket_created", CONTEXT)

        assert result.matched_rule_ids == ["ok"]
        assert len(result.errors) == 1
        assert result.errors[0].rule_id == "broken"

    def test_condition_can_use_alias_binding(self):
        rule = make_rule(
            "r1",
            trigger="sla_violation",
            conditions={"field": "violationType", "value": "response_time"},
        )
        context = {"violation": {"violation_type": "response_time", "severity": "warning"}, "ticketId": "T-1"}
        result = self.matcher.match([rule], "sla_violation", context)
        assert result.matched_rule_ids == ["r1"]


def test_build_bindings_adds_aliases_and_urls():
    bindings = build_bindings(
        "sla_violation",
        {
            "ticket": {"id": "T-9", "title": "Slow"},
            "violation": {"violation_type": "resolution_time", "severity": "critical",
                          "threshold_minutes": 60, "elapsed_minutes": 95.0},
        },
        base_url="https://support.example.com/",
    )
    assert bindings["ticketId"] == "T-9"
    assert bindings["ticketUrl"] == "https://support.example.com/tickets/T-9"
    assert bindings["violationType"] == "resolution_time"
    assert bindings["threshold"] == 60
    assert bindings["elapsed"] == 95.0
    assert bindings["ticket.title"] == "Slow"


def test_sanitize_context_drops_secrets_at_any_depth():
    cleaned = sanitize_context({
        "user": {"name": "alice", "password": "hunter2", "api_key": "k"},
        "items": [{"auth_token": "x", "id": 1}],
    })
    assert cleaned == {"user": {"name": "alice"}, "items": [{"id": 1}]}


def test_derive_priority():
    assert derive_priority("sla_violation", {"severity": "critical"}) == "urgent"
    assert derive_priority("sla_violation", {"violation": {"severity": "warning"}}) == "high"
    assert derive_priority("ticket_created", {"ticket": {"priority": "urgent"}}) == "high"
    assert derive_priority("ticket_created", {"ticket": {"priority": "low"}}) == "medium"
    assert derive_priority("escalation", {}) == "high"
    assert derive_priority("response_added", {}) == "medium"
