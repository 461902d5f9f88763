"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for SLA module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from supportwatch.config import EscalationStatus, Priority, TicketStatus
from supportwatch.infrastructure.database import Base


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TrackedTicketModel(Base):
    """
    Snapshot of a ticket owned by the ticketing system.

    Maps to the 'tracked_tickets' table.
    """
    __tablename__ = "tracked_tickets"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    priority: Mapped[str] = mapped_column(String(50), nullable=False, default=Priority.MEDIUM)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default=TicketStatus.OPEN, index=True)
    application_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    status_changed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # SLA tracking
    first_response_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class ViolationModel(Base):
    """
    Database model for SlaViolation entity.

    Maps to the 'sla_violations' table.
    """
    __tablename__ = "sla_violations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    ticket_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    violation_type: Mapped[str] = mapped_column(String(50), nullable=False)
    threshold_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    elapsed_minutes: Mapped[float] = mapped_column(Float, nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    priority: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    application_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, index=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Acknowledgement
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    acknowledged_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class EscalationModel(Base):
    """
    Database model for Escalation entity.

    Maps to the 'escalations' table. Transition history is stored as JSON.
    """
    __tablename__ = "escalations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    ticket_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=EscalationStatus.ACTIVE, index=True)
    reason: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    is_automatic: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, index=True)
    last_escalated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    transitions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
