"""
Alert Infrastructure Repositories
=================================

SQLAlchemy implementation of the alert repository.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from supportwatch.alerts.application.interfaces import IAlertRepository
from supportwatch.alerts.domain import Alert
from supportwatch.alerts.infrastructure.models import AlertModel
from supportwatch.core.exceptions import RepositoryException
from supportwatch.infrastructure.database import paginate
from supportwatch.shared.time import ensure_utc


class SQLAlchemyAlertRepository(IAlertRepository):
    """Handles persistence of Alert entities."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, alert: Alert) -> Alert:
        model = AlertModel(
            id=alert.id,
            kind=alert.kind,
            severity=alert.severity,
            title=alert.title,
            message=alert.message,
            ticket_id=alert.ticket_id,
            source_id=alert.source_id,
            metadata_json=dict(alert.metadata),
            created_at=alert.created_at,
            resolved_at=alert.resolved_at,
        )
        self._session.add(model)
        await self._session.flush()
        return alert

    async def update(self, alert: Alert) -> Alert:
        model = await self._session.get(AlertModel, alert.id)
        if model is None:
            raise RepositoryException(f"Alert {alert.id} not found")
        model.severity = alert.severity
        model.message = alert.message
        model.resolved_at = alert.resolved_at
        await self._session.flush()
        return alert

    async def get(self, alert_id: str) -> Optional[Alert]:
        model = await self._session.get(AlertModel, alert_id)
        return self._to_entity(model) if model else None

    async def list_open(
        self,
        source_id: Optional[str] = None,
        ticket_id: Optional[str] = None
    ) -> List[Alert]:
        stmt = select(AlertModel).where(AlertModel.resolved_at.is_(None))
        if source_id:
            stmt = stmt.where(AlertModel.source_id == source_id)
        if ticket_id:
            stmt = stmt.where(AlertModel.ticket_id == ticket_id)
        result = await self._session.execute(stmt.order_by(AlertModel.created_at.asc()))
        return [self._to_entity(model) for model in result.scalars().all()]

    async def list(
        self,
        kind: Optional[str] = None,
        severity: Optional[str] = None,
        is_resolved: Optional[bool] = None,
        ticket_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Alert], int]:
        stmt = select(AlertModel)
        if kind:
            stmt = stmt.where(AlertModel.kind == kind)
        if severity:
            stmt = stmt.where(AlertModel.severity == severity)
        if ticket_id:
            stmt = stmt.where(AlertModel.ticket_id == ticket_id)
        if is_resolved is True:
            stmt = stmt.where(AlertModel.resolved_at.is_not(None))
        elif is_resolved is False:
            stmt = stmt.where(AlertModel.resolved_at.is_(None))

        stmt = stmt.order_by(AlertModel.created_at.desc(), AlertModel.id)
        models, total = await paginate(self._session, stmt, limit, offset)
        return [self._to_entity(model) for model in models], total

    async def list_since(self, since: datetime) -> List[Alert]:
        stmt = (
            select(AlertModel)
            .where(AlertModel.created_at >= since)
            .order_by(AlertModel.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(model) for model in result.scalars().all()]

    @staticmethod
    def _to_entity(model: AlertModel) -> Alert:
        return Alert(
            id=model.id,
            kind=model.kind,
            severity=model.severity,
            title=model.title,
            message=model.message,
            ticket_id=model.ticket_id,
            source_id=model.source_id,
            metadata=dict(model.metadata_json or {}),
            created_at=ensure_utc(model.created_at),
            resolved_at=ensure_utc(model.resolved_at),
        )
