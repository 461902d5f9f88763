"""
Alert DTOs
==========

Response models for the dashboard API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from supportwatch.alerts.domain import Alert


class AlertResponse(BaseModel):
    id: str
    kind: str
    severity: str
    title: str
    message: str
    ticket_id: Optional[str]
    source_id: Optional[str]
    metadata: Dict[str, Any]
    created_at: datetime
    resolved_at: Optional[datetime]
    is_resolved: bool

    @classmethod
    def from_entity(cls, alert: Alert) -> "AlertResponse":
        return cls(
            id=alert.id,
            kind=alert.kind,
            severity=alert.severity,
            title=alert.title,
            message=alert.message,
            ticket_id=alert.ticket_id,
            source_id=alert.source_id,
            metadata=alert.metadata,
            created_at=alert.created_at,
            resolved_at=alert.resolved_at,
            is_resolved=alert.is_resolved,
        )


class AlertListResponse(BaseModel):
    items: List[AlertResponse]
    total: int
    limit: int
    offset: int


class DashboardOverviewResponse(BaseModel):
    """Headline counters for the operations dashboard."""
    active_violations: int
    open_violations_by_severity: Dict[str, int]
    violations_last_24h: int
    escalations_last_24h: int
    active_escalations: int
    automatic_escalation_rate_7d: float = Field(..., description="Percentage of automatic escalations")
    high_priority_open_tickets: int
    open_alerts: int
    generated_at: datetime


class TrendPoint(BaseModel):
    date: str
    response_time: int
    resolution_time: int
    total: int


class ViolationTrendsResponse(BaseModel):
    days: int
    series: List[TrendPoint]


class EscalationAnalysisResponse(BaseModel):
    days: int
    total: int
    by_level: Dict[str, int]
    by_reason: Dict[str, int]
    automatic: int
    manual: int
    resolved: int
    average_level: float
    hourly_distribution: Dict[int, int]


class NotificationEffectivenessResponse(BaseModel):
    days: int
    total: int
    by_status: Dict[str, int]
    by_channel: Dict[str, Dict[str, float]]
    success_rate: float
