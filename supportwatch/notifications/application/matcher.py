"""
Rule Matcher
============

Selects the actions of every active rule whose trigger equals the event
trigger and whose conditions hold for the event context.

Rules are returned in creation order. A rule whose conditions cannot be
parsed or evaluated is skipped and reported as a rule evaluation error;
the remaining rules are still evaluated.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence

from supportwatch.config import NotificationTrigger, Priority, Severity
from supportwatch.core.exceptions import RuleEvaluationException
from supportwatch.notifications.domain import (
    MatchedAction, NotificationRule, evaluate_condition, parse_condition
)
from supportwatch.shared.application.unit_of_work import UnitOfWorkFactory
from supportwatch.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

_SENSITIVE_KEYS = ("password", "secret", "token", "api_key")

# Entities whose fields are exposed to templates as "<entity>.<field>"
_NAMESPACED_ENTITIES = ("ticket", "violation", "escalation", "user", "response")


@dataclass
class MatchResult:
    """Outcome of evaluating one trigger against the rule set."""
    actions: List[MatchedAction] = field(default_factory=list)
    matched_rule_ids: List[str] = field(default_factory=list)
    errors: List[RuleEvaluationException] = field(default_factory=list)
    rules_evaluated: int = 0


def sanitize_context(value: Any) -> Any:
    """Drop secret-looking keys (passwords, tokens) at any depth."""
    if isinstance(value, Mapping):
        return {
            key: sanitize_context(item)
            for key, item in value.items()
            if not any(marker in str(key).lower() for marker in _SENSITIVE_KEYS)
        }
    if isinstance(value, list):
        return [sanitize_context(item) for item in value]
    return value


def build_bindings(trigger: str, context: Mapping[str, Any], base_url: str = "") -> Dict[str, Any]:
    """
    Template bindings for an event.

    The sanitized context is kept as-is (dotted paths walk nested dicts)
    and triggering entity fields are also flattened under namespaced keys
    such as "ticket.title". Violation and escalation fields get the short
    camelCase aliases used by rule templates.
    """
    bindings: Dict[str, Any] = dict(sanitize_context(dict(context)))

    for entity in _NAMESPACED_ENTITIES:
        data = bindings.get(entity)
        if isinstance(data, Mapping):
            for key, item in data.items():
                bindings.setdefault(f"{entity}.{key}", item)

    ticket = bindings.get("ticket") if isinstance(bindings.get("ticket"), Mapping) else {}
    violation = bindings.get("violation") if isinstance(bindings.get("violation"), Mapping) else {}
    escalation = bindings.get("escalation") if isinstance(bindings.get("escalation"), Mapping) else {}

    ticket_id = bindings.get("ticketId") or ticket.get("id")
    if ticket_id is not None:
        bindings.setdefault("ticketId", ticket_id)

    if violation:
        bindings.setdefault("violationType", violation.get("violation_type"))
        bindings.setdefault("severity", violation.get("severity"))
        bindings.setdefault("threshold", violation.get("threshold_minutes"))
        bindings.setdefault("elapsed", violation.get("elapsed_minutes"))

    if escalation:
        bindings.setdefault("level", escalation.get("level"))
        bindings.setdefault("reason", escalation.get("reason"))

    bindings.setdefault("trigger", trigger)
    bindings.setdefault("baseUrl", base_url)
    if ticket_id is not None:
        bindings.setdefault("ticketUrl", f"{base_url.rstrip('/')}/tickets/{ticket_id}")

    return bindings


def derive_priority(trigger: str, context: Mapping[str, Any]) -> str:
    """Priority used when an action does not set one."""
    if trigger == NotificationTrigger.SLA_VIOLATION:
        severity = context.get("severity")
        violation = context.get("violation")
        if severity is None and isinstance(violation, Mapping):
            severity = violation.get("severity")
        return Priority.URGENT if severity == Severity.CRITICAL else Priority.HIGH

    if trigger == NotificationTrigger.TICKET_CREATED:
        ticket = context.get("ticket")
        ticket_priority = ticket.get("priority") if isinstance(ticket, Mapping) else None
        if ticket_priority in (Priority.HIGH, Priority.URGENT):
            return Priority.HIGH

    if trigger == NotificationTrigger.ESCALATION:
        return Priority.HIGH

    return Priority.MEDIUM


class RuleMatcher:
    """Loads active rules for a trigger and selects the matching actions."""

    def __init__(self, uow_factory: UnitOfWorkFactory, base_url: str = ""):
        self._uow_factory = uow_factory
        self._base_url = base_url

    async def evaluate(self, trigger: str, context: Mapping[str, Any]) -> MatchResult:
        async with self._uow_factory() as uow:
            rules = await uow.rules.list_active(trigger)
        return self.match(rules, trigger, context)

    def match(
        self,
        rules: Sequence[NotificationRule],
        trigger: str,
        context: Mapping[str, Any]
    ) -> MatchResult:
        result = MatchResult()
        bindings = build_bindings(trigger, context, self._base_url)

        for rule in rules:
            if not rule.is_active or rule.trigger != trigger:
                continue

            result.rules_evaluated += 1
            try:
                condition = parse_condition(rule.conditions)
                matched = evaluate_condition(condition, bindings)
            except Exception as e:
                error = RuleEvaluationException(rule.id, str(e))
                result.errors.append(error)
                logger.warning(
                    "Rule evaluation error",
                    extra={"rule_id": rule.id, "rule_name": rule.name, "trigger": trigger, "error": str(e)}
                )
                continue

            if not matched:
                continue

            result.matched_rule_ids.append(rule.id)
            for action in rule.actions:
                result.actions.append(MatchedAction(
                    rule_id=rule.id,
                    rule_name=rule.name,
                    action=action,
                    bindings=bindings,
                ))

        logger.debug(
            "Rules evaluated",
            extra={
                "trigger": trigger,
                "rules_evaluated": result.rules_evaluated,
                "matched": len(result.matched_rule_ids),
                "errors": len(result.errors),
            }
        )
        return result
