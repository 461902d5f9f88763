"""
Notification Controllers (API Routes)
=====================================

FastAPI routes for rules, events, manual execution, delayed notifications,
dispatch logs, user settings and the realtime WebSocket.

Controllers are thin - they delegate to the engine's services.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, WebSocket, WebSocketDisconnect, status

from supportwatch.engine import SupportEngine
from supportwatch.notifications.application.dto import (
    CancelResponse,
    ChannelStr,
    EmitRequest,
    EmitResponse,
    EngineStatsResponse,
    ExecuteRulesRequest,
    ExecutionReportResponse,
    NotificationLogListResponse,
    NotificationLogResponse,
    NotificationStatusStr,
    RuleCreateRequest,
    RuleListResponse,
    RuleResponse,
    RuleUpdateRequest,
    TriggerStr,
    UserSettingsRequest,
    UserSettingsResponse,
)
from supportwatch.shared.api.dependencies import get_engine, get_ws_engine
from supportwatch.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/notifications", tags=["Notifications"])


# ========== Example payloads for Swagger ==========

RULE_CREATE_EXAMPLE = {
    "name": "High priority tickets to admins",
    "trigger": "ticket_created",
    "conditions": {"field": "ticket.priority", "operator": "in", "value": ["high", "urgent"]},
    "actions": [
        {
            "channel": "realtime",
            "recipients": ["admins"],
            "subject": "New ticket",
            "body": "{{ticket.title}}"
        }
    ]
}


# ========== Rules ==========

@router.post(
    "/rules",
    response_model=RuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create notification rule",
    description="""
    Create a rule that runs its actions when `trigger` fires and the
    `conditions` tree holds for the event context.

    **Conditions** are either empty (always match), a leaf
    `{"field", "operator", "value"}` or a composite `{"all": [...]}`,
    `{"any": [...]}`, `{"not": {...}}`.

    **Templates** use `{{path}}` placeholders and `{{#if path}}...{{/if}}`
    blocks, e.g. `{{ticket.title}}`, `{{violationType}}`, `{{ticketUrl}}`.
    """,
    responses={201: {"content": {"application/json": {"example": RULE_CREATE_EXAMPLE}}}}
)
async def create_rule(request: RuleCreateRequest, engine: SupportEngine = Depends(get_engine)):
    rule = await engine.rules.create_rule(request)
    return RuleResponse.from_entity(rule)


@router.get("/rules", response_model=RuleListResponse, summary="List notification rules")
async def list_rules(
    trigger: Optional[TriggerStr] = Query(None),
    is_active: Optional[bool] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    engine: SupportEngine = Depends(get_engine)
):
    rules, total = await engine.rules.list_rules(trigger=trigger, is_active=is_active, limit=limit, offset=offset)
    return RuleListResponse(
        items=[RuleResponse.from_entity(rule) for rule in rules],
        total=total,
        limit=limit,
        offset=offset
    )


@router.get("/rules/{rule_id}", response_model=RuleResponse, summary="Get notification rule")
async def get_rule(rule_id: str, engine: SupportEngine = Depends(get_engine)):
    return RuleResponse.from_entity(await engine.rules.get_rule(rule_id))


@router.put("/rules/{rule_id}", response_model=RuleResponse, summary="Update notification rule")
async def update_rule(rule_id: str, request: RuleUpdateRequest, engine: SupportEngine = Depends(get_engine)):
    return RuleResponse.from_entity(await engine.rules.update_rule(rule_id, request))


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete notification rule")
async def delete_rule(rule_id: str, engine: SupportEngine = Depends(get_engine)):
    await engine.rules.delete_rule(rule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ========== Events & execution ==========

@router.post(
    "/events",
    response_model=EmitResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Emit a domain event",
    description="""
    Fire-and-forget submission used by the ticket system. The event is
    queued and processed by the engine's workers; the response only
    confirms it was accepted.
    """
)
async def emit_event(request: EmitRequest, engine: SupportEngine = Depends(get_engine)):
    event = engine.emit(request.trigger, request.context, triggered_by=request.triggered_by)
    return EmitResponse(event_id=event.event_id, trigger=event.trigger)


@router.post(
    "/execute",
    response_model=ExecutionReportResponse,
    summary="Execute rules manually",
    description="Run the rules for a trigger synchronously and return every dispatch outcome."
)
async def execute_rules(request: ExecuteRulesRequest, engine: SupportEngine = Depends(get_engine)):
    report = await engine.execute_rules_manually(request.trigger, request.context, actor_id=request.actor_id)
    return ExecutionReportResponse(**report.to_dict())


@router.delete(
    "/delayed/{handle}",
    response_model=CancelResponse,
    summary="Cancel a delayed notification",
    description="Returns `cancelled: false` when the handle is unknown or already fired."
)
async def cancel_delayed(handle: str, engine: SupportEngine = Depends(get_engine)):
    return CancelResponse(handle=handle, cancelled=engine.cancel_delayed_notification(handle))


@router.get("/stats", response_model=EngineStatsResponse, summary="Engine statistics")
async def engine_stats(engine: SupportEngine = Depends(get_engine)):
    return EngineStatsResponse(**await engine.get_engine_stats())


# ========== Logs ==========

@router.get("/logs", response_model=NotificationLogListResponse, summary="List notification logs")
async def list_logs(
    ticket_id: Optional[str] = Query(None),
    channel: Optional[ChannelStr] = Query(None),
    status_filter: Optional[NotificationStatusStr] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    engine: SupportEngine = Depends(get_engine)
):
    async with engine.uow_factory() as uow:
        logs, total = await uow.logs.list(
            ticket_id=ticket_id, channel=channel, status=status_filter, limit=limit, offset=offset
        )
    return NotificationLogListResponse(
        items=[NotificationLogResponse.from_entity(log) for log in logs],
        total=total,
        limit=limit,
        offset=offset
    )


# ========== User settings ==========

@router.get("/settings/{user_id}", response_model=UserSettingsResponse, summary="Get user notification settings")
async def get_user_settings(user_id: str, engine: SupportEngine = Depends(get_engine)):
    return UserSettingsResponse.from_entity(await engine.user_settings.get_settings(user_id))


@router.put("/settings/{user_id}", response_model=UserSettingsResponse, summary="Update user notification settings")
async def update_user_settings(
    user_id: str,
    request: UserSettingsRequest,
    engine: SupportEngine = Depends(get_engine)
):
    return UserSettingsResponse.from_entity(await engine.user_settings.update_settings(user_id, request))


# ========== Realtime ==========

@router.websocket("/ws/{user_id}")
async def realtime_notifications(websocket: WebSocket, user_id: str):
    """In-app notification stream for one user."""
    engine = get_ws_engine(websocket)
    manager = engine.connections
    await manager.connect(websocket, user_id)
    try:
        while True:
            # Client messages are only keep-alives
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(websocket, user_id)
