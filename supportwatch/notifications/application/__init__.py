"""
Notification Application Layer
==============================

Rule matching, recipient resolution, rule execution and administration
services.
"""

from supportwatch.notifications.application.engine import ExecutionReport, NotificationEngine
from supportwatch.notifications.application.interfaces import (
    DirectoryUser,
    IDelayedScheduler,
    INotificationDispatcher,
    INotificationLogRepository,
    INotificationRuleRepository,
    IUserDirectory,
    IUserSettingsRepository,
)
from supportwatch.notifications.application.matcher import (
    MatchResult,
    RuleMatcher,
    build_bindings,
    derive_priority,
    sanitize_context,
)
from supportwatch.notifications.application.services import (
    NotificationRuleService,
    RecipientResolver,
    UserSettingsService,
)

__all__ = [
    "DirectoryUser",
    "ExecutionReport",
    "IDelayedScheduler",
    "INotificationDispatcher",
    "INotificationLogRepository",
    "INotificationRuleRepository",
    "IUserDirectory",
    "IUserSettingsRepository",
    "MatchResult",
    "NotificationEngine",
    "NotificationRuleService",
    "RecipientResolver",
    "RuleMatcher",
    "UserSettingsService",
    "build_bindings",
    "derive_priority",
    "sanitize_context",
]
