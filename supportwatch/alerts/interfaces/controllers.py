"""
Alert Controllers (API Routes)
==============================

Dashboard read API: overview counters, alerts, trends and rollups.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from supportwatch.alerts.application import (
    AlertListResponse,
    AlertResponse,
    DashboardOverviewResponse,
    EscalationAnalysisResponse,
    NotificationEffectivenessResponse,
    ViolationTrendsResponse,
)
from supportwatch.engine import SupportEngine
from supportwatch.shared.api.dependencies import get_engine

router = APIRouter(prefix="/alerts", tags=["Alerts Dashboard"])


@router.get("/overview", response_model=DashboardOverviewResponse, summary="Dashboard overview")
async def overview(engine: SupportEngine = Depends(get_engine)):
    return DashboardOverviewResponse(**await engine.dashboard.overview())


@router.get("", response_model=AlertListResponse, summary="List alerts")
async def list_alerts(
    kind: Optional[str] = Query(None, description="sla_violation, escalation or system_error"),
    severity: Optional[str] = Query(None),
    is_resolved: Optional[bool] = Query(None),
    ticket_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    engine: SupportEngine = Depends(get_engine)
):
    alerts, total = await engine.dashboard.list_alerts(
        kind=kind, severity=severity, is_resolved=is_resolved, ticket_id=ticket_id, limit=limit, offset=offset
    )
    return AlertListResponse(
        items=[AlertResponse.from_entity(alert) for alert in alerts],
        total=total,
        limit=limit,
        offset=offset
    )


@router.post("/{alert_id}/resolve", response_model=AlertResponse, summary="Resolve an alert")
async def resolve_alert(alert_id: str, engine: SupportEngine = Depends(get_engine)):
    return AlertResponse.from_entity(await engine.dashboard.resolve_alert(alert_id))


@router.get("/trends", response_model=ViolationTrendsResponse, summary="Violation trends per day")
async def violation_trends(
    days: int = Query(7, ge=1, le=90),
    engine: SupportEngine = Depends(get_engine)
):
    return ViolationTrendsResponse(**await engine.dashboard.violation_trends(days))


@router.get(
    "/escalations",
    response_model=EscalationAnalysisResponse,
    summary="Escalation analysis"
)
async def escalation_analysis(
    days: int = Query(30, ge=1, le=365),
    engine: SupportEngine = Depends(get_engine)
):
    return EscalationAnalysisResponse(**await engine.dashboard.escalation_analysis(days))


@router.get(
    "/effectiveness",
    response_model=NotificationEffectivenessResponse,
    summary="Notification delivery effectiveness"
)
async def notification_effectiveness(
    days: int = Query(7, ge=1, le=90),
    engine: SupportEngine = Depends(get_engine)
):
    return NotificationEffectivenessResponse(**await engine.dashboard.notification_effectiveness(days))


@router.get("/realtime", response_model=List[AlertResponse], summary="Alerts from the last minutes")
async def realtime_alerts(
    minutes: int = Query(30, ge=1, le=1440),
    engine: SupportEngine = Depends(get_engine)
):
    return [AlertResponse.from_entity(alert) for alert in await engine.dashboard.realtime_alerts(minutes)]
