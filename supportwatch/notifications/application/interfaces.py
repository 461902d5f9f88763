"""
Notification Repository Interfaces
==================================

Abstractions the notification services depend on (Dependency Inversion).
SQLAlchemy implementations live in the infrastructure layer.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from supportwatch.notifications.domain import (
    DispatchOutcome, NotificationLog, NotificationRule, RenderedNotification,
    UserNotificationSettings
)


class INotificationRuleRepository(ABC):
    """Interface for notification rule data access."""

    @abstractmethod
    async def list_active(self, trigger: str) -> List[NotificationRule]:
        """Active rules for a trigger, oldest first."""

    @abstractmethod
    async def get(self, rule_id: str) -> Optional[NotificationRule]:
        """Get rule by id."""

    @abstractmethod
    async def list(
        self,
        trigger: Optional[str] = None,
        is_active: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0
    ) -> Tuple[List[NotificationRule], int]:
        """List rules with filters; returns (page, total)."""

    @abstractmethod
    async def add(self, rule: NotificationRule) -> NotificationRule:
        """Persist new rule."""

    @abstractmethod
    async def update(self, rule: NotificationRule) -> NotificationRule:
        """Replace stored rule."""

    @abstractmethod
    async def delete(self, rule_id: str) -> bool:
        """Delete rule; False when it did not exist."""

    @abstractmethod
    async def count_active(self) -> int:
        """Number of active rules."""


class INotificationLogRepository(ABC):
    """Interface for notification log data access."""

    @abstractmethod
    async def add(self, log: NotificationLog) -> NotificationLog:
        """Persist a pending log entry."""

    @abstractmethod
    async def update(self, log: NotificationLog) -> NotificationLog:
        """Persist status changes of an existing entry."""

    @abstractmethod
    async def get(self, log_id: str) -> Optional[NotificationLog]:
        """Get log entry by id."""

    @abstractmethod
    async def list(
        self,
        ticket_id: Optional[str] = None,
        channel: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[NotificationLog], int]:
        """List log entries, newest first; returns (page, total)."""

    @abstractmethod
    async def count_by_channel_and_status(
        self,
        since: Optional[datetime] = None
    ) -> List[Tuple[str, str, int]]:
        """(channel, status, count) rows for delivery statistics."""


class IUserSettingsRepository(ABC):
    """Interface for user notification settings."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[UserNotificationSettings]:
        """Get settings for one user."""

    @abstractmethod
    async def get_many(self, user_ids: Iterable[str]) -> Dict[str, UserNotificationSettings]:
        """Get settings for several users keyed by user id."""

    @abstractmethod
    async def upsert(self, settings: UserNotificationSettings) -> UserNotificationSettings:
        """Create or replace settings."""


@dataclass(frozen=True)
class DirectoryUser:
    """A user as known to the external user directory."""
    id: str
    name: str
    email: Optional[str] = None
    slack_id: Optional[str] = None


class IUserDirectory(ABC):
    """Lookup of users and groups owned outside the engine."""

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[DirectoryUser]:
        """Get user by id."""

    @abstractmethod
    def get_group_members(self, group: str) -> Optional[List[str]]:
        """User ids in a group, or None when the group is unknown."""


class INotificationDispatcher(ABC):
    """Sends rendered notifications and records their logs."""

    @abstractmethod
    async def dispatch(self, notification: RenderedNotification) -> DispatchOutcome:
        """Send one notification; never raises."""

    @abstractmethod
    async def dispatch_many(
        self,
        notifications: List[RenderedNotification]
    ) -> List[DispatchOutcome]:
        """Send notifications in parallel; outcomes keep input order."""


class IDelayedScheduler(ABC):
    """Registry of notifications waiting for their fire time."""

    @abstractmethod
    def schedule(self, notification: RenderedNotification, fire_at: datetime) -> str:
        """Register a notification and return its handle."""

    @abstractmethod
    def cancel(self, handle: str) -> bool:
        """Cancel before firing; False when unknown or already fired."""

    @property
    @abstractmethod
    def pending_count(self) -> int:
        """Number of notifications still waiting."""
