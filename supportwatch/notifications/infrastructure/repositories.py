"""
Notification Infrastructure Repositories
========================================

Concrete implementations of the notification repository interfaces
using SQLAlchemy.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from supportwatch.core.exceptions import RepositoryException
from supportwatch.infrastructure.database import paginate
from supportwatch.notifications.application.interfaces import (
    INotificationLogRepository, INotificationRuleRepository, IUserSettingsRepository
)
from supportwatch.notifications.domain import (
    NotificationAction, NotificationLog, NotificationRule, UserNotificationSettings
)
from supportwatch.notifications.infrastructure.models import (
    NotificationLogModel, NotificationRuleModel, UserNotificationSettingsModel
)
from supportwatch.shared.time import ensure_utc


class SQLAlchemyNotificationRuleRepository(INotificationRuleRepository):
    """SQLAlchemy implementation of the rule repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, rule_id: str) -> Optional[NotificationRuleModel]:
        stmt = select(NotificationRuleModel).where(NotificationRuleModel.id == rule_id)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def list_active(self, trigger: str) -> List[NotificationRule]:
        stmt = (
            select(NotificationRuleModel)
            .where(
                NotificationRuleModel.trigger == trigger,
                NotificationRuleModel.is_active.is_(True),
            )
            .order_by(NotificationRuleModel.created_at.asc(), NotificationRuleModel.seq.asc())
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(model) for model in result.scalars().all()]

    async def get(self, rule_id: str) -> Optional[NotificationRule]:
        model = await self._get_model(rule_id)
        return self._to_entity(model) if model else None

    async def list(
        self,
        trigger: Optional[str] = None,
        is_active: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0
    ) -> Tuple[List[NotificationRule], int]:
        stmt = select(NotificationRuleModel)
        if trigger:
            stmt = stmt.where(NotificationRuleModel.trigger == trigger)
        if is_active is not None:
            stmt = stmt.where(NotificationRuleModel.is_active.is_(is_active))
        stmt = stmt.order_by(NotificationRuleModel.created_at.asc(), NotificationRuleModel.seq.asc())

        models, total = await paginate(self._session, stmt, limit, offset)
        return [self._to_entity(model) for model in models], total

    async def add(self, rule: NotificationRule) -> NotificationRule:
        model = NotificationRuleModel(id=rule.id)
        self._apply(model, rule)
        self._session.add(model)
        await self._session.flush()
        return rule

    async def update(self, rule: NotificationRule) -> NotificationRule:
        model = await self._get_model(rule.id)
        if model is None:
            raise RepositoryException(f"Notification rule {rule.id} not found")
        self._apply(model, rule)
        await self._session.flush()
        return rule

    async def delete(self, rule_id: str) -> bool:
        result = await self._session.execute(
            delete(NotificationRuleModel).where(NotificationRuleModel.id == rule_id)
        )
        return result.rowcount > 0

    async def count_active(self) -> int:
        stmt = select(func.count()).select_from(NotificationRuleModel).where(
            NotificationRuleModel.is_active.is_(True)
        )
        return int(await self._session.scalar(stmt) or 0)

    @staticmethod
    def _apply(model: NotificationRuleModel, rule: NotificationRule) -> None:
        model.name = rule.name
        model.trigger = rule.trigger
        model.conditions = rule.conditions if rule.conditions is not None else {}
        model.actions = [action.to_dict() for action in rule.actions]
        model.is_active = rule.is_active
        model.created_by = rule.created_by
        model.created_at = rule.created_at
        model.updated_at = rule.updated_at

    @staticmethod
    def _to_entity(model: NotificationRuleModel) -> NotificationRule:
        return NotificationRule(
            id=model.id,
            name=model.name,
            trigger=model.trigger,
            conditions=model.conditions,
            actions=[NotificationAction.from_dict(item) for item in (model.actions or [])],
            is_active=model.is_active,
            created_by=model.created_by,
            created_at=ensure_utc(model.created_at),
            updated_at=ensure_utc(model.updated_at),
        )


class SQLAlchemyNotificationLogRepository(INotificationLogRepository):
    """SQLAlchemy implementation of the notification log repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, log: NotificationLog) -> NotificationLog:
        model = NotificationLogModel(id=log.id)
        self._apply(model, log)
        self._session.add(model)
        await self._session.flush()
        return log

    async def update(self, log: NotificationLog) -> NotificationLog:
        model = await self._session.get(NotificationLogModel, log.id)
        if model is None:
            raise RepositoryException(f"Notification log {log.id} not found")
        self._apply(model, log)
        await self._session.flush()
        return log

    async def get(self, log_id: str) -> Optional[NotificationLog]:
        model = await self._session.get(NotificationLogModel, log_id)
        return self._to_entity(model) if model else None

    async def list(
        self,
        ticket_id: Optional[str] = None,
        channel: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[NotificationLog], int]:
        stmt = select(NotificationLogModel)
        if ticket_id:
            stmt = stmt.where(NotificationLogModel.ticket_id == ticket_id)
        if channel:
            stmt = stmt.where(NotificationLogModel.channel == channel)
        if status:
            stmt = stmt.where(NotificationLogModel.status == status)
        stmt = stmt.order_by(NotificationLogModel.created_at.desc(), NotificationLogModel.id)

        models, total = await paginate(self._session, stmt, limit, offset)
        return [self._to_entity(model) for model in models], total

    async def count_by_channel_and_status(
        self,
        since: Optional[datetime] = None
    ) -> List[Tuple[str, str, int]]:
        stmt = select(
            NotificationLogModel.channel,
            NotificationLogModel.status,
            func.count(),
        ).group_by(NotificationLogModel.channel, NotificationLogModel.status)
        if since is not None:
            stmt = stmt.where(NotificationLogModel.created_at >= since)

        result = await self._session.execute(stmt)
        return [(channel, status, int(count)) for channel, status, count in result.all()]

    @staticmethod
    def _apply(model: NotificationLogModel, log: NotificationLog) -> None:
        model.channel = log.channel
        model.recipients = list(log.recipients)
        model.subject = log.subject[:500]
        model.body = log.body
        model.priority = log.priority
        model.status = log.status
        model.error = log.error
        model.ticket_id = log.ticket_id
        model.rule_id = log.rule_id
        model.triggered_by = log.triggered_by
        model.metadata_json = dict(log.metadata)
        model.created_at = log.created_at
        model.sent_at = log.sent_at

    @staticmethod
    def _to_entity(model: NotificationLogModel) -> NotificationLog:
        return NotificationLog(
            id=model.id,
            channel=model.channel,
            recipients=list(model.recipients or []),
            subject=model.subject,
            body=model.body,
            priority=model.priority,
            status=model.status,
            error=model.error,
            ticket_id=model.ticket_id,
            rule_id=model.rule_id,
            triggered_by=model.triggered_by,
            metadata=dict(model.metadata_json or {}),
            created_at=ensure_utc(model.created_at),
            sent_at=ensure_utc(model.sent_at),
        )


class SQLAlchemyUserSettingsRepository(IUserSettingsRepository):
    """SQLAlchemy implementation of the user settings repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, user_id: str) -> Optional[UserNotificationSettings]:
        model = await self._session.get(UserNotificationSettingsModel, user_id)
        return self._to_entity(model) if model else None

    async def get_many(self, user_ids: Iterable[str]) -> Dict[str, UserNotificationSettings]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        stmt = select(UserNotificationSettingsModel).where(UserNotificationSettingsModel.user_id.in_(ids))
        result = await self._session.execute(stmt)
        return {model.user_id: self._to_entity(model) for model in result.scalars().all()}

    async def upsert(self, settings: UserNotificationSettings) -> UserNotificationSettings:
        model = await self._session.get(UserNotificationSettingsModel, settings.user_id)
        if model is None:
            model = UserNotificationSettingsModel(user_id=settings.user_id, created_at=settings.created_at)
            self._session.add(model)

        model.channels = dict(settings.channels)
        model.destinations = dict(settings.destinations)
        model.preferences = dict(settings.preferences)
        model.is_enabled = settings.is_enabled
        model.updated_at = settings.updated_at
        await self._session.flush()
        return settings

    @staticmethod
    def _to_entity(model: UserNotificationSettingsModel) -> UserNotificationSettings:
        return UserNotificationSettings(
            user_id=model.user_id,
            channels=dict(model.channels or {}),
            destinations=dict(model.destinations or {}),
            preferences=dict(model.preferences or {}),
            is_enabled=model.is_enabled,
            created_at=ensure_utc(model.created_at),
            updated_at=ensure_utc(model.updated_at),
        )
