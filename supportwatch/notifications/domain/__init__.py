"""
Notification Domain Layer
=========================

Pure Python entities and the rule/template primitives. No infrastructure
dependencies.
"""

from supportwatch.notifications.domain.conditions import (
    AllOf, AnyOf, Condition, ConditionOperator, EMPTY_CONDITION, FieldCondition, Not,
    VALID_OPERATORS, evaluate_condition, get_nested_value, parse_condition,
    validate_conditions
)
from supportwatch.notifications.domain.entities import (
    DispatchOutcome, MatchedAction, NotificationAction, NotificationLog, NotificationRule,
    RenderedNotification, UserNotificationSettings
)
from supportwatch.notifications.domain.templates import RenderResult, TemplateRenderer, format_value

__all__ = [
    "AllOf", "AnyOf", "Condition", "ConditionOperator", "EMPTY_CONDITION", "FieldCondition", "Not",
    "VALID_OPERATORS", "evaluate_condition", "get_nested_value", "parse_condition",
    "validate_conditions",
    "DispatchOutcome", "MatchedAction", "NotificationAction", "NotificationLog", "NotificationRule",
    "RenderedNotification", "UserNotificationSettings",
    "RenderResult", "TemplateRenderer", "format_value",
]
