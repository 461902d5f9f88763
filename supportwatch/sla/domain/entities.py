"""
SLA Domain Entities
====================

Pure Python domain entities for SLA monitoring and escalation.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from supportwatch.config import (
    CLOSED_STATUSES, EscalationStatus, Priority, Severity, TicketStatus
)
from supportwatch.core.exceptions import InvalidTransitionException
from supportwatch.shared.time import utcnow


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class TicketSnapshot:
    """
    Engine-side view of a support ticket.

    Pushed by the ticketing system through events or the ingest endpoint;
    the engine never owns the ticket itself.
    """

    id: str
    title: str
    priority: str = Priority.MEDIUM
    status: str = TicketStatus.OPEN
    application_id: Optional[str] = None
    assigned_to: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    status_changed_at: Optional[datetime] = None
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.status not in CLOSED_STATUSES

    @property
    def resolution_clock_start(self) -> datetime:
        """Resolution time runs from the last status change."""
        return self.status_changed_at or self.created_at

    def mark_first_response(self, timestamp: Optional[datetime] = None) -> bool:
        """Record the first response; later responses are ignored."""
        if self.first_response_at is not None:
            return False
        self.first_response_at = timestamp or utcnow()
        return True

    def change_status(self, status: str, timestamp: Optional[datetime] = None) -> bool:
        if status == self.status:
            return False
        at = timestamp or utcnow()
        self.status = status
        self.status_changed_at = at
        self.updated_at = at
        if status in CLOSED_STATUSES and self.resolved_at is None:
            self.resolved_at = at
        return True

    def to_context(self) -> Dict[str, Any]:
        """JSON-safe representation used in event contexts."""
        return {
            "id": self.id,
            "title": self.title,
            "priority": self.priority,
            "status": self.status,
            "application_id": self.application_id,
            "assigned_to": self.assigned_to,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "status_changed_at": _iso(self.status_changed_at),
            "first_response_at": _iso(self.first_response_at),
            "resolved_at": _iso(self.resolved_at),
        }


@dataclass
class SlaViolation:
    """
    A detected breach of one SLA clock for one ticket.

    Open until cleared, either because the ticket was resolved or because
    an operator acknowledged it. Only one open violation may exist per
    (ticket, violation type).
    """

    id: str
    ticket_id: str
    violation_type: str
    threshold_minutes: int
    elapsed_minutes: float
    severity: str
    priority: Optional[str] = None
    application_id: Optional[str] = None
    detected_at: datetime = field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    comment: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.resolved_at is None

    @property
    def overrun_minutes(self) -> float:
        return max(0.0, self.elapsed_minutes - self.threshold_minutes)

    @property
    def is_critical(self) -> bool:
        return self.severity == Severity.CRITICAL

    def clear(self, timestamp: Optional[datetime] = None) -> None:
        if not self.is_open:
            raise InvalidTransitionException("SlaViolation", "cleared", "cleared")
        self.resolved_at = timestamp or utcnow()

    def acknowledge(
        self,
        actor_id: Optional[str],
        comment: Optional[str] = None,
        timestamp: Optional[datetime] = None
    ) -> None:
        """Acknowledging clears the violation so a later breach can be raised."""
        if not self.is_open:
            raise InvalidTransitionException("SlaViolation", "cleared", "acknowledged")
        at = timestamp or utcnow()
        self.acknowledged_at = at
        self.acknowledged_by = actor_id
        self.comment = comment
        self.resolved_at = at

    def to_context(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "violation_type": self.violation_type,
            "threshold_minutes": self.threshold_minutes,
            "elapsed_minutes": round(self.elapsed_minutes, 1),
            "overrun_minutes": round(self.overrun_minutes, 1),
            "severity": self.severity,
            "priority": self.priority,
            "detected_at": _iso(self.detected_at),
        }


@dataclass
class EscalationTransition:
    """One step of an escalation's history."""
    from_level: int
    to_level: int
    status: str
    reason: str
    at: datetime
    triggered_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_level": self.from_level,
            "to_level": self.to_level,
            "status": self.status,
            "reason": self.reason,
            "at": _iso(self.at),
            "triggered_by": self.triggered_by,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EscalationTransition":
        at = data.get("at")
        return cls(
            from_level=int(data["from_level"]),
            to_level=int(data["to_level"]),
            status=data["status"],
            reason=data.get("reason", ""),
            at=datetime.fromisoformat(at) if isinstance(at, str) else at,
            triggered_by=data.get("triggered_by"),
        )


@dataclass
class Escalation:
    """
    Per-ticket escalation state machine.

    none (level 0) -> 1 -> 2 -> ... -> resolved

    The level never decreases; `resolved` is terminal.
    """

    id: str
    ticket_id: str
    level: int = 0
    status: str = EscalationStatus.ACTIVE
    reason: str = ""
    is_automatic: bool = True
    created_at: datetime = field(default_factory=utcnow)
    last_escalated_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    transitions: List[EscalationTransition] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status == EscalationStatus.ACTIVE

    def advance(
        self,
        reason: str,
        timestamp: Optional[datetime] = None,
        triggered_by: Optional[str] = None
    ) -> EscalationTransition:
        """Move to the next level."""
        if not self.is_active:
            raise InvalidTransitionException("Escalation", self.status, f"level {self.level + 1}")

        at = timestamp or utcnow()
        transition = EscalationTransition(
            from_level=self.level,
            to_level=self.level + 1,
            status=EscalationStatus.ACTIVE,
            reason=reason,
            at=at,
            triggered_by=triggered_by,
        )
        self.level += 1
        self.reason = reason
        self.last_escalated_at = at
        self.transitions.append(transition)
        return transition

    def resolve(
        self,
        reason: str = "ticket_resolved",
        timestamp: Optional[datetime] = None,
        triggered_by: Optional[str] = None
    ) -> EscalationTransition:
        if not self.is_active:
            raise InvalidTransitionException("Escalation", self.status, EscalationStatus.RESOLVED)

        at = timestamp or utcnow()
        transition = EscalationTransition(
            from_level=self.level,
            to_level=self.level,
            status=EscalationStatus.RESOLVED,
            reason=reason,
            at=at,
            triggered_by=triggered_by,
        )
        self.status = EscalationStatus.RESOLVED
        self.resolved_at = at
        self.transitions.append(transition)
        return transition

    def to_context(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "level": self.level,
            "status": self.status,
            "reason": self.reason,
            "is_automatic": self.is_automatic,
            "created_at": _iso(self.created_at),
            "last_escalated_at": _iso(self.last_escalated_at),
            "resolved_at": _iso(self.resolved_at),
        }
