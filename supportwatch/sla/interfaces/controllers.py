"""
SLA Controllers (API Routes)
============================

FastAPI routes for ticket snapshot ingest, violations, scans and
escalations.

Controllers are thin - they delegate to application services.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from supportwatch.engine import SupportEngine
from supportwatch.shared.api.dependencies import get_engine
from supportwatch.shared.infrastructure.logging import get_logger
from supportwatch.sla.application import (
    AcknowledgeRequest,
    EscalationListResponse,
    EscalationOutcomeResponse,
    EscalationResponse,
    IngestResponse,
    ManualEscalationRequest,
    ScanReportResponse,
    TicketIngestRequest,
    ViolationListResponse,
    ViolationResponse,
    ViolationStatsResponse,
)
from supportwatch.sla.application.dto import EscalationStatusStr, SeverityStr, ViolationTypeStr

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Monitoring"])


# ========== Example payloads for Swagger ==========

TICKET_INGEST_EXAMPLE = {
    "tickets": [
        {
            "id": "TICKET-001",
            "title": "Cannot log in",
            "priority": "high",
            "status": "open",
            "application_id": "billing",
            "assigned_to": "alice",
            "created_at": "2024-01-15T10:00:00Z"
        }
    ]
}

INGEST_RESPONSE_EXAMPLE = {
    "created": 1,
    "updated": 0,
    "failed": 0,
    "errors": []
}


# ========== Tickets ==========

@router.post(
    "/tickets",
    response_model=IngestResponse,
    summary="Ingest ticket snapshots",
    description="""
    Push ticket snapshots for SLA tracking. Existing tickets are replaced
    by the newer snapshot. Tickets also stay current through the
    `ticket_created`, `status_changed`, `response_added` and
    `ticket_resolved` events.
    """,
    responses={
        200: {"content": {"application/json": {"example": INGEST_RESPONSE_EXAMPLE}}}
    }
)
async def ingest_tickets(request: TicketIngestRequest, engine: SupportEngine = Depends(get_engine)):
    return IngestResponse(**await engine.tracking.ingest(request.tickets))


# ========== Violations ==========

@router.get("/violations", response_model=ViolationListResponse, summary="List SLA violations")
async def list_violations(
    ticket_id: Optional[str] = Query(None),
    violation_type: Optional[ViolationTypeStr] = Query(None),
    severity: Optional[SeverityStr] = Query(None),
    is_open: Optional[bool] = Query(None, description="Only open (true) or cleared (false) violations"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    engine: SupportEngine = Depends(get_engine)
):
    violations, total = await engine.violations.list_violations(
        ticket_id=ticket_id,
        violation_type=violation_type,
        severity=severity,
        is_open=is_open,
        limit=limit,
        offset=offset
    )
    return ViolationListResponse(
        items=[ViolationResponse.from_entity(v) for v in violations],
        total=total,
        limit=limit,
        offset=offset
    )


@router.get("/violations/stats", response_model=ViolationStatsResponse, summary="Violation statistics")
async def violation_stats(
    days: int = Query(30, ge=1, le=365),
    engine: SupportEngine = Depends(get_engine)
):
    return ViolationStatsResponse(**await engine.violations.stats(days))


@router.post(
    "/violations/{violation_id}/acknowledge",
    response_model=ViolationResponse,
    summary="Acknowledge a violation",
    description="Clears the violation and resolves its alert. Acknowledging twice returns 409."
)
async def acknowledge_violation(
    violation_id: str,
    request: AcknowledgeRequest,
    engine: SupportEngine = Depends(get_engine)
):
    violation = await engine.violations.acknowledge(violation_id, request.actor_id, request.comment)
    return ViolationResponse.from_entity(violation)


# ========== Monitoring ==========

@router.post(
    "/scan",
    response_model=ScanReportResponse,
    summary="Run an SLA scan now",
    description="Runs one monitoring cycle. Returns `skipped: true` when a scan is already running."
)
async def run_scan(engine: SupportEngine = Depends(get_engine)):
    report = await engine.run_scan()
    return ScanReportResponse(**report.to_dict())


@router.get("/config", summary="Current SLA policy")
async def get_sla_config(engine: SupportEngine = Depends(get_engine)) -> Dict[str, Any]:
    return engine.config_provider.config.model_dump()


# ========== Escalations ==========

@router.get("/escalations", response_model=EscalationListResponse, summary="List escalations")
async def list_escalations(
    status: Optional[EscalationStatusStr] = Query(None),
    ticket_id: Optional[str] = Query(None),
    min_level: Optional[int] = Query(None, ge=0),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    engine: SupportEngine = Depends(get_engine)
):
    escalations, total = await engine.escalations.list_escalations(
        status=status, ticket_id=ticket_id, min_level=min_level, limit=limit, offset=offset
    )
    return EscalationListResponse(
        items=[EscalationResponse.from_entity(e) for e in escalations],
        total=total,
        limit=limit,
        offset=offset
    )


@router.post(
    "/tickets/{ticket_id}/escalate",
    response_model=EscalationOutcomeResponse,
    summary="Escalate a ticket manually",
    description="Starts an escalation at level 1 or advances the active one. Closed tickets return 409."
)
async def escalate_ticket(
    ticket_id: str,
    request: ManualEscalationRequest,
    engine: SupportEngine = Depends(get_engine)
):
    outcome = await engine.escalations.escalate(ticket_id, reason=request.reason, actor_id=request.actor_id)
    return EscalationOutcomeResponse(**outcome.to_dict())


@router.get(
    "/tickets/{ticket_id}/escalations",
    response_model=List[EscalationResponse],
    summary="Escalation history for a ticket"
)
async def escalation_history(ticket_id: str, engine: SupportEngine = Depends(get_engine)):
    return [EscalationResponse.from_entity(e) for e in await engine.escalations.history(ticket_id)]
