"""
Notification Infrastructure Layer
=================================

Persistence, channel clients, dispatch, delayed scheduling and the
recipient directory.
"""

from supportwatch.notifications.infrastructure.channels import (
    EmailChannel,
    HttpChannel,
    NotificationChannelClient,
    OutboundMessage,
    RealtimeChannel,
    SlackChannel,
    TeamsChannel,
    WebhookChannel,
)
from supportwatch.notifications.infrastructure.directory import (
    DirectoryConfig,
    DirectoryUserConfig,
    YAMLUserDirectory,
)
from supportwatch.notifications.infrastructure.dispatcher import ChannelDispatcher
from supportwatch.notifications.infrastructure.models import (
    NotificationLogModel,
    NotificationRuleModel,
    UserNotificationSettingsModel,
)
from supportwatch.notifications.infrastructure.realtime import ConnectionManager
from supportwatch.notifications.infrastructure.repositories import (
    SQLAlchemyNotificationLogRepository,
    SQLAlchemyNotificationRuleRepository,
    SQLAlchemyUserSettingsRepository,
)
from supportwatch.notifications.infrastructure.scheduler import (
    DelayedActionScheduler,
    PendingAction,
)

__all__ = [
    "ChannelDispatcher",
    "ConnectionManager",
    "DelayedActionScheduler",
    "DirectoryConfig",
    "DirectoryUserConfig",
    "EmailChannel",
    "HttpChannel",
    "NotificationChannelClient",
    "NotificationLogModel",
    "NotificationRuleModel",
    "OutboundMessage",
    "PendingAction",
    "RealtimeChannel",
    "SQLAlchemyNotificationLogRepository",
    "SQLAlchemyNotificationRuleRepository",
    "SQLAlchemyUserSettingsRepository",
    "SlackChannel",
    "TeamsChannel",
    "UserNotificationSettingsModel",
    "WebhookChannel",
    "YAMLUserDirectory",
]
