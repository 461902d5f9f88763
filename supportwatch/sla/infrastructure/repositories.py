"""
SLA Infrastructure Repositories
=================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database. Timestamps are normalized to UTC on the way
out because SQLite returns naive datetimes.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from supportwatch.config import CLOSED_STATUSES, EscalationStatus
from supportwatch.core.exceptions import RepositoryException
from supportwatch.infrastructure.database import paginate
from supportwatch.shared.time import ensure_utc
from supportwatch.sla.application.interfaces import (
    IEscalationRepository, ITrackedTicketRepository, IViolationRepository
)
from supportwatch.sla.domain import (
    Escalation, EscalationTransition, SlaViolation, TicketSnapshot
)
from supportwatch.sla.infrastructure.models import (
    EscalationModel, TrackedTicketModel, ViolationModel
)


class SQLAlchemyTrackedTicketRepository(ITrackedTicketRepository):
    """SQLAlchemy implementation of the ticket snapshot repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, ticket_id: str) -> Optional[TicketSnapshot]:
        model = await self._session.get(TrackedTicketModel, ticket_id)
        return self._to_entity(model) if model else None

    async def upsert(self, ticket: TicketSnapshot) -> TicketSnapshot:
        """Insert or replace the snapshot in one statement, safe against a concurrent insert."""
        values = {
            "id": ticket.id,
            "title": ticket.title,
            "priority": ticket.priority,
            "status": ticket.status,
            "application_id": ticket.application_id,
            "assigned_to": ticket.assigned_to,
            "created_at": ticket.created_at,
            "updated_at": ticket.updated_at,
            "status_changed_at": ticket.status_changed_at,
            "first_response_at": ticket.first_response_at,
            "resolved_at": ticket.resolved_at,
        }
        dialect = self._session.get_bind().dialect.name
        if dialect == "postgresql":
            insert = postgresql_insert
        elif dialect == "sqlite":
            insert = sqlite_insert
        else:
            return await self._upsert_orm(ticket, values)

        stmt = insert(TrackedTicketModel).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[TrackedTicketModel.id],
            set_={key: stmt.excluded[key] for key in values if key != "id"},
        )
        await self._session.execute(stmt)
        # Refresh any instance already loaded in this session
        await self._session.get(TrackedTicketModel, ticket.id, populate_existing=True)
        return ticket

    async def _upsert_orm(self, ticket: TicketSnapshot, values: dict) -> TicketSnapshot:
        model = await self._session.get(TrackedTicketModel, ticket.id)
        if model is None:
            model = TrackedTicketModel(id=ticket.id)
            self._session.add(model)
        for key, value in values.items():
            setattr(model, key, value)
        await self._session.flush()
        return ticket

    async def list_open(self) -> List[TicketSnapshot]:
        stmt = (
            select(TrackedTicketModel)
            .where(TrackedTicketModel.status.not_in(CLOSED_STATUSES))
            .order_by(TrackedTicketModel.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(model) for model in result.scalars().all()]

    @staticmethod
    def _to_entity(model: TrackedTicketModel) -> TicketSnapshot:
        return TicketSnapshot(
            id=model.id,
            title=model.title,
            priority=model.priority,
            status=model.status,
            application_id=model.application_id,
            assigned_to=model.assigned_to,
            created_at=ensure_utc(model.created_at),
            updated_at=ensure_utc(model.updated_at),
            status_changed_at=ensure_utc(model.status_changed_at),
            first_response_at=ensure_utc(model.first_response_at),
            resolved_at=ensure_utc(model.resolved_at),
        )


class SQLAlchemyViolationRepository(IViolationRepository):
    """SQLAlchemy implementation of the SLA violation repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, violation: SlaViolation) -> SlaViolation:
        model = ViolationModel(id=violation.id)
        self._apply(model, violation)
        self._session.add(model)
        await self._session.flush()
        return violation

    async def update(self, violation: SlaViolation) -> SlaViolation:
        model = await self._session.get(ViolationModel, violation.id)
        if model is None:
            raise RepositoryException(f"Violation {violation.id} not found")
        self._apply(model, violation)
        await self._session.flush()
        return violation

    async def get(self, violation_id: str) -> Optional[SlaViolation]:
        model = await self._session.get(ViolationModel, violation_id)
        return self._to_entity(model) if model else None

    async def get_open(self, ticket_id: str, violation_type: str) -> Optional[SlaViolation]:
        stmt = (
            select(ViolationModel)
            .where(
                ViolationModel.ticket_id == ticket_id,
                ViolationModel.violation_type == violation_type,
                ViolationModel.resolved_at.is_(None),
            )
            .order_by(ViolationModel.detected_at.desc())
            .limit(1)
        )
        model = (await self._session.execute(stmt)).scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_open_for_ticket(self, ticket_id: str) -> List[SlaViolation]:
        stmt = select(ViolationModel).where(
            ViolationModel.ticket_id == ticket_id,
            ViolationModel.resolved_at.is_(None),
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(model) for model in result.scalars().all()]

    async def list(
        self,
        ticket_id: Optional[str] = None,
        violation_type: Optional[str] = None,
        severity: Optional[str] = None,
        is_open: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[SlaViolation], int]:
        stmt = select(ViolationModel)
        if ticket_id:
            stmt = stmt.where(ViolationModel.ticket_id == ticket_id)
        if violation_type:
            stmt = stmt.where(ViolationModel.violation_type == violation_type)
        if severity:
            stmt = stmt.where(ViolationModel.severity == severity)
        if is_open is True:
            stmt = stmt.where(ViolationModel.resolved_at.is_(None))
        elif is_open is False:
            stmt = stmt.where(ViolationModel.resolved_at.is_not(None))

        stmt = stmt.order_by(ViolationModel.detected_at.desc(), ViolationModel.id)
        models, total = await paginate(self._session, stmt, limit, offset)
        return [self._to_entity(model) for model in models], total

    async def list_since(self, since: datetime) -> List[SlaViolation]:
        stmt = (
            select(ViolationModel)
            .where(ViolationModel.detected_at >= since)
            .order_by(ViolationModel.detected_at.asc())
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(model) for model in result.scalars().all()]

    @staticmethod
    def _apply(model: ViolationModel, violation: SlaViolation) -> None:
        model.ticket_id = violation.ticket_id
        model.violation_type = violation.violation_type
        model.threshold_minutes = violation.threshold_minutes
        model.elapsed_minutes = violation.elapsed_minutes
        model.severity = violation.severity
        model.priority = violation.priority
        model.application_id = violation.application_id
        model.detected_at = violation.detected_at
        model.resolved_at = violation.resolved_at
        model.acknowledged_at = violation.acknowledged_at
        model.acknowledged_by = violation.acknowledged_by
        model.comment = violation.comment

    @staticmethod
    def _to_entity(model: ViolationModel) -> SlaViolation:
        return SlaViolation(
            id=model.id,
            ticket_id=model.ticket_id,
            violation_type=model.violation_type,
            threshold_minutes=model.threshold_minutes,
            elapsed_minutes=model.elapsed_minutes,
            severity=model.severity,
            priority=model.priority,
            application_id=model.application_id,
            detected_at=ensure_utc(model.detected_at),
            resolved_at=ensure_utc(model.resolved_at),
            acknowledged_at=ensure_utc(model.acknowledged_at),
            acknowledged_by=model.acknowledged_by,
            comment=model.comment,
        )


class SQLAlchemyEscalationRepository(IEscalationRepository):
    """SQLAlchemy implementation of the escalation repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, escalation: Escalation) -> Escalation:
        model = EscalationModel(id=escalation.id)
        self._apply(model, escalation)
        self._session.add(model)
        await self._session.flush()
        return escalation

    async def update(self, escalation: Escalation) -> Escalation:
        model = await self._session.get(EscalationModel, escalation.id)
        if model is None:
            raise RepositoryException(f"Escalation {escalation.id} not found")
        self._apply(model, escalation)
        await self._session.flush()
        return escalation

    async def get(self, escalation_id: str) -> Optional[Escalation]:
        model = await self._session.get(EscalationModel, escalation_id)
        return self._to_entity(model) if model else None

    async def get_active(self, ticket_id: str) -> Optional[Escalation]:
        stmt = (
            select(EscalationModel)
            .where(
                EscalationModel.ticket_id == ticket_id,
                EscalationModel.status == EscalationStatus.ACTIVE,
            )
            .order_by(EscalationModel.created_at.desc())
            .limit(1)
        )
        model = (await self._session.execute(stmt)).scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_active(self) -> List[Escalation]:
        stmt = (
            select(EscalationModel)
            .where(EscalationModel.status == EscalationStatus.ACTIVE)
            .order_by(EscalationModel.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(model) for model in result.scalars().all()]

    async def list_for_ticket(self, ticket_id: str) -> List[Escalation]:
        stmt = (
            select(EscalationModel)
            .where(EscalationModel.ticket_id == ticket_id)
            .order_by(EscalationModel.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(model) for model in result.scalars().all()]

    async def list(
        self,
        status: Optional[str] = None,
        ticket_id: Optional[str] = None,
        min_level: Optional[int] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Escalation], int]:
        stmt = select(EscalationModel)
        if status:
            stmt = stmt.where(EscalationModel.status == status)
        if ticket_id:
            stmt = stmt.where(EscalationModel.ticket_id == ticket_id)
        if min_level is not None:
            stmt = stmt.where(EscalationModel.level >= min_level)

        stmt = stmt.order_by(EscalationModel.created_at.desc(), EscalationModel.id)
        models, total = await paginate(self._session, stmt, limit, offset)
        return [self._to_entity(model) for model in models], total

    async def list_since(self, since: datetime) -> List[Escalation]:
        stmt = (
            select(EscalationModel)
            .where(EscalationModel.created_at >= since)
            .order_by(EscalationModel.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(model) for model in result.scalars().all()]

    @staticmethod
    def _apply(model: EscalationModel, escalation: Escalation) -> None:
        model.ticket_id = escalation.ticket_id
        model.level = escalation.level
        model.status = escalation.status
        model.reason = escalation.reason
        model.is_automatic = escalation.is_automatic
        model.created_at = escalation.created_at
        model.last_escalated_at = escalation.last_escalated_at
        model.resolved_at = escalation.resolved_at
        # New list so the JSON column is flagged dirty
        model.transitions = [transition.to_dict() for transition in escalation.transitions]

    @staticmethod
    def _to_entity(model: EscalationModel) -> Escalation:
        return Escalation(
            id=model.id,
            ticket_id=model.ticket_id,
            level=model.level,
            status=model.status,
            reason=model.reason,
            is_automatic=model.is_automatic,
            created_at=ensure_utc(model.created_at),
            last_escalated_at=ensure_utc(model.last_escalated_at),
            resolved_at=ensure_utc(model.resolved_at),
            transitions=[
                EscalationTransition.from_dict(item) for item in (model.transitions or [])
            ],
        )
