"""
Unit of Work
============

One transaction spanning the repositories of every bounded context.

Services receive a factory returning an async context manager; leaving the
block commits, an exception rolls back.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, AsyncContextManager, Callable

if TYPE_CHECKING:
    from supportwatch.alerts.application.interfaces import IAlertRepository
    from supportwatch.notifications.application.interfaces import (
        INotificationLogRepository,
        INotificationRuleRepository,
        IUserSettingsRepository,
    )
    from supportwatch.sla.application.interfaces import (
        IEscalationRepository,
        ITrackedTicketRepository,
        IViolationRepository,
    )


class UnitOfWork(ABC):
    """Repository bundle bound to a single session."""

    rules: "INotificationRuleRepository"
    logs: "INotificationLogRepository"
    user_settings: "IUserSettingsRepository"
    tickets: "ITrackedTicketRepository"
    violations: "IViolationRepository"
    escalations: "IEscalationRepository"
    alerts: "IAlertRepository"

    @abstractmethod
    async def commit(self) -> None:
        """Flush and commit pending changes."""


UnitOfWorkFactory = Callable[[], AsyncContextManager[UnitOfWork]]
