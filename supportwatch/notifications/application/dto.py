"""
Notification Application DTOs
=============================

Pydantic models for the notification API: rule CRUD, event emission,
manual execution, logs and user settings.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from supportwatch.core.exceptions import ConditionException
from supportwatch.notifications.domain import (
    NotificationLog, NotificationRule, UserNotificationSettings, validate_conditions
)


# ========== Type Aliases for Literals ==========
TriggerStr = Literal[
    "ticket_created", "status_changed", "response_added",
    "sla_violation", "escalation", "ticket_resolved"
]
ChannelStr = Literal["email", "slack", "teams", "webhook", "realtime"]
PriorityStr = Literal["urgent", "high", "medium", "low"]
NotificationStatusStr = Literal["pending", "sent", "failed"]


def _check_conditions(value: Any) -> Any:
    try:
        return validate_conditions(value)
    except ConditionException as e:
        raise ValueError(e.message)


# ========== Request DTOs ==========

class ActionDTO(BaseModel):
    """A rule action. Subject and body are templates."""
    channel: ChannelStr
    recipients: List[str] = Field(default_factory=list, description="User ids, groups, destinations or $audience")
    subject: str = Field(default="", max_length=500)
    body: str = Field(default="", description="Body template")
    priority: Optional[PriorityStr] = Field(None, description="Derived from the event when omitted")
    delay_minutes: int = Field(default=0, ge=0, le=10080, description="Dispatch delay in minutes")
    webhook_url: Optional[str] = Field(None, description="Target URL for webhook/teams/slack actions")


class RuleCreateRequest(BaseModel):
    """Request model for creating a notification rule."""
    name: str = Field(..., min_length=1, max_length=255)
    trigger: TriggerStr
    conditions: Any = Field(default_factory=dict, description="Condition tree (all/any/not/field)")
    actions: List[ActionDTO] = Field(..., min_length=1)
    is_active: bool = True
    created_by: Optional[str] = None

    @field_validator("conditions")
    @classmethod
    def validate_conditions_tree(cls, v: Any) -> Any:
        return _check_conditions(v)


class RuleUpdateRequest(BaseModel):
    """Partial update of a notification rule."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    trigger: Optional[TriggerStr] = None
    conditions: Optional[Any] = None
    actions: Optional[List[ActionDTO]] = Field(None, min_length=1)
    is_active: Optional[bool] = None

    @field_validator("conditions")
    @classmethod
    def validate_conditions_tree(cls, v: Any) -> Any:
        if v is None:
            return v
        return _check_conditions(v)


class EmitRequest(BaseModel):
    """Request model for publishing a domain event."""
    trigger: TriggerStr
    context: Dict[str, Any] = Field(default_factory=dict)
    triggered_by: Optional[str] = None


class ExecuteRulesRequest(BaseModel):
    """Request model for synchronous manual rule execution."""
    trigger: TriggerStr
    context: Dict[str, Any] = Field(default_factory=dict)
    actor_id: Optional[str] = None


class UserSettingsRequest(BaseModel):
    """Upsert payload for user notification settings."""
    channels: Dict[ChannelStr, bool] = Field(default_factory=dict)
    destinations: Dict[ChannelStr, str] = Field(default_factory=dict)
    preferences: Dict[str, Any] = Field(default_factory=dict)
    is_enabled: bool = True


# ========== Response DTOs ==========

class RuleResponse(BaseModel):
    """Response model for a notification rule."""
    id: str
    name: str
    trigger: str
    conditions: Any
    actions: List[ActionDTO]
    is_active: bool
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, rule: NotificationRule) -> "RuleResponse":
        return cls(
            id=rule.id,
            name=rule.name,
            trigger=rule.trigger,
            conditions=rule.conditions,
            actions=[ActionDTO(**action.to_dict()) for action in rule.actions],
            is_active=rule.is_active,
            created_by=rule.created_by,
            created_at=rule.created_at,
            updated_at=rule.updated_at,
        )


class RuleListResponse(BaseModel):
    items: List[RuleResponse]
    total: int
    limit: int
    offset: int


class EmitResponse(BaseModel):
    event_id: str
    trigger: str
    queued: bool = True


class DispatchOutcomeResponse(BaseModel):
    channel: str
    recipients: List[str]
    status: NotificationStatusStr
    log_id: Optional[str] = None
    error: Optional[str] = None
    latency_ms: float = 0.0
    ticket_id: Optional[str] = None
    rule_id: Optional[str] = None


class ExecutionReportResponse(BaseModel):
    """Response model for manual rule execution."""
    trigger: str
    rules_evaluated: int
    matched_rule_ids: List[str]
    outcomes: List[DispatchOutcomeResponse]
    scheduled_handles: List[str]
    errors: List[str]
    sent: int
    failed: int


class CancelResponse(BaseModel):
    handle: str
    cancelled: bool


class NotificationLogResponse(BaseModel):
    id: str
    channel: str
    recipients: List[str]
    subject: str
    body: str
    priority: str
    status: NotificationStatusStr
    error: Optional[str]
    ticket_id: Optional[str]
    rule_id: Optional[str]
    triggered_by: Optional[str]
    created_at: datetime
    sent_at: Optional[datetime]

    @classmethod
    def from_entity(cls, log: NotificationLog) -> "NotificationLogResponse":
        return cls(
            id=log.id,
            channel=log.channel,
            recipients=log.recipients,
            subject=log.subject,
            body=log.body,
            priority=log.priority,
            status=log.status,
            error=log.error,
            ticket_id=log.ticket_id,
            rule_id=log.rule_id,
            triggered_by=log.triggered_by,
            created_at=log.created_at,
            sent_at=log.sent_at,
        )


class NotificationLogListResponse(BaseModel):
    items: List[NotificationLogResponse]
    total: int
    limit: int
    offset: int


class UserSettingsResponse(BaseModel):
    user_id: str
    channels: Dict[str, bool]
    destinations: Dict[str, str]
    preferences: Dict[str, Any]
    is_enabled: bool
    updated_at: datetime

    @classmethod
    def from_entity(cls, settings: UserNotificationSettings) -> "UserSettingsResponse":
        return cls(
            user_id=settings.user_id,
            channels=settings.channels,
            destinations=settings.destinations,
            preferences=settings.preferences,
            is_enabled=settings.is_enabled,
            updated_at=settings.updated_at,
        )


class EngineStatsResponse(BaseModel):
    """Engine health counters."""
    active_rule_count: int
    pending_delayed_count: int
    last_scan_at: Optional[datetime]
    last_execution_at: Optional[datetime]
