"""
SLA Application DTOs
=====================

Data Transfer Objects for the SLA API layer and for ticket payloads
carried in event contexts.

These Pydantic models handle serialization/deserialization and validation.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from supportwatch.shared.time import ensure_utc
from supportwatch.sla.domain import Escalation, SlaViolation, TicketSnapshot


# ========== Type Aliases for Literals ==========
PriorityStr = Literal["urgent", "high", "medium", "low"]
TicketStatusStr = Literal["new", "open", "in_progress", "pending", "resolved", "closed"]
ViolationTypeStr = Literal["response_time", "resolution_time"]
SeverityStr = Literal["warning", "critical"]
EscalationStatusStr = Literal["active", "resolved"]


# ========== Request DTOs ==========

class TicketSnapshotDTO(BaseModel):
    """A ticket as pushed by the ticketing system."""
    id: str = Field(..., min_length=1, description="Ticket ID")
    title: str = Field(default="", description="Ticket title")
    priority: PriorityStr = Field(default="medium")
    status: TicketStatusStr = Field(default="open")
    application_id: Optional[str] = Field(None, description="Owning application, selects the SLA policy")
    assigned_to: Optional[str] = None
    created_at: datetime = Field(..., description="Ticket creation timestamp")
    updated_at: Optional[datetime] = None
    status_changed_at: Optional[datetime] = None
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    model_config = {"extra": "ignore"}

    @field_validator(
        "created_at", "updated_at", "status_changed_at", "first_response_at", "resolved_at"
    )
    @classmethod
    def validate_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Naive timestamps are taken as UTC."""
        return ensure_utc(v)

    @field_validator("first_response_at")
    @classmethod
    def validate_first_response(cls, v: Optional[datetime], info) -> Optional[datetime]:
        if v is not None and "created_at" in info.data and v < info.data["created_at"]:
            raise ValueError("first_response_at cannot be before created_at")
        return v

    def to_entity(self) -> TicketSnapshot:
        return TicketSnapshot(
            id=self.id,
            title=self.title,
            priority=self.priority,
            status=self.status,
            application_id=self.application_id,
            assigned_to=self.assigned_to,
            created_at=self.created_at,
            updated_at=self.updated_at or self.created_at,
            status_changed_at=self.status_changed_at,
            first_response_at=self.first_response_at,
            resolved_at=self.resolved_at,
        )


class TicketIngestRequest(BaseModel):
    """Request model for ticket snapshot ingestion."""
    tickets: List[TicketSnapshotDTO] = Field(..., min_length=1, description="Tickets to track")


class AcknowledgeRequest(BaseModel):
    actor_id: Optional[str] = Field(None, description="Operator acknowledging the violation")
    comment: Optional[str] = Field(None, max_length=2000)


class ManualEscalationRequest(BaseModel):
    reason: str = Field(default="manual", min_length=1, max_length=500)
    actor_id: Optional[str] = None


# ========== Response DTOs ==========

class IngestResponse(BaseModel):
    """Response model for ticket ingestion."""
    created: int = Field(..., description="Number of new tickets tracked")
    updated: int = Field(..., description="Number of existing tickets updated")
    failed: int = Field(default=0, description="Number of failed ingestions")
    errors: List[str] = Field(default_factory=list, description="Error messages")


class ViolationResponse(BaseModel):
    """Response model for an SLA violation."""
    id: str
    ticket_id: str
    violation_type: ViolationTypeStr
    threshold_minutes: int
    elapsed_minutes: float
    overrun_minutes: float
    severity: SeverityStr
    priority: Optional[str]
    application_id: Optional[str]
    detected_at: datetime
    resolved_at: Optional[datetime]
    acknowledged_at: Optional[datetime]
    acknowledged_by: Optional[str]
    comment: Optional[str]
    is_open: bool

    @classmethod
    def from_entity(cls, violation: SlaViolation) -> "ViolationResponse":
        return cls(
            id=violation.id,
            ticket_id=violation.ticket_id,
            violation_type=violation.violation_type,
            threshold_minutes=violation.threshold_minutes,
            elapsed_minutes=round(violation.elapsed_minutes, 1),
            overrun_minutes=round(violation.overrun_minutes, 1),
            severity=violation.severity,
            priority=violation.priority,
            application_id=violation.application_id,
            detected_at=violation.detected_at,
            resolved_at=violation.resolved_at,
            acknowledged_at=violation.acknowledged_at,
            acknowledged_by=violation.acknowledged_by,
            comment=violation.comment,
            is_open=violation.is_open,
        )


class ViolationListResponse(BaseModel):
    items: List[ViolationResponse]
    total: int
    limit: int
    offset: int


class ViolationStatsResponse(BaseModel):
    days: int
    total: int
    by_type: Dict[str, int]
    by_severity: Dict[str, int]
    resolved: int
    unresolved: int
    average_overrun_hours: float


class EscalationResponse(BaseModel):
    """Response model for an escalation with its history."""
    id: str
    ticket_id: str
    level: int
    status: EscalationStatusStr
    reason: str
    is_automatic: bool
    created_at: datetime
    last_escalated_at: Optional[datetime]
    resolved_at: Optional[datetime]
    transitions: List[Dict[str, Any]]

    @classmethod
    def from_entity(cls, escalation: Escalation) -> "EscalationResponse":
        return cls(
            id=escalation.id,
            ticket_id=escalation.ticket_id,
            level=escalation.level,
            status=escalation.status,
            reason=escalation.reason,
            is_automatic=escalation.is_automatic,
            created_at=escalation.created_at,
            last_escalated_at=escalation.last_escalated_at,
            resolved_at=escalation.resolved_at,
            transitions=[transition.to_dict() for transition in escalation.transitions],
        )


class EscalationListResponse(BaseModel):
    items: List[EscalationResponse]
    total: int
    limit: int
    offset: int


class EscalationOutcomeResponse(BaseModel):
    ticket_id: str
    escalation_id: Optional[str]
    from_level: int
    to_level: int
    status: Optional[str]
    changed: bool
    reason: str
    error: Optional[str] = None


class ScanReportResponse(BaseModel):
    """Response model for a manual SLA scan."""
    skipped: bool
    started_at: datetime
    finished_at: Optional[datetime]
    tickets_scanned: int
    violations_created: List[str]
    escalations: List[EscalationOutcomeResponse]
    errors: List[Dict[str, Any]]
