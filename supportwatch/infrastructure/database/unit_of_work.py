"""
SQLAlchemy Unit of Work
=======================

Binds every repository to one AsyncSession. Leaving the context commits,
an exception rolls back.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from supportwatch.alerts.infrastructure.repositories import SQLAlchemyAlertRepository
from supportwatch.infrastructure.database import get_session_context
from supportwatch.notifications.infrastructure.repositories import (
    SQLAlchemyNotificationLogRepository,
    SQLAlchemyNotificationRuleRepository,
    SQLAlchemyUserSettingsRepository,
)
from supportwatch.shared.application.unit_of_work import UnitOfWork
from supportwatch.sla.infrastructure.repositories import (
    SQLAlchemyEscalationRepository,
    SQLAlchemyTrackedTicketRepository,
    SQLAlchemyViolationRepository,
)


class SQLAlchemyUnitOfWork(UnitOfWork):
    """Repository bundle over a single session."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.rules = SQLAlchemyNotificationRuleRepository(session)
        self.logs = SQLAlchemyNotificationLogRepository(session)
        self.user_settings = SQLAlchemyUserSettingsRepository(session)
        self.tickets = SQLAlchemyTrackedTicketRepository(session)
        self.violations = SQLAlchemyViolationRepository(session)
        self.escalations = SQLAlchemyEscalationRepository(session)
        self.alerts = SQLAlchemyAlertRepository(session)

    async def commit(self) -> None:
        await self.session.commit()


@asynccontextmanager
async def sqlalchemy_unit_of_work() -> AsyncGenerator[SQLAlchemyUnitOfWork, None]:
    """UnitOfWorkFactory backed by get_session_context()."""
    async with get_session_context() as session:
        yield SQLAlchemyUnitOfWork(session)
