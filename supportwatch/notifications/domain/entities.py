"""
Notification Domain Entities
============================

Pure Python entities for the notification engine: rules and their
actions, dispatch logs, and per-user delivery settings.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from supportwatch.config import (
    NotificationStatus, VALID_CHANNELS, VALID_PRIORITIES, VALID_TRIGGERS
)
from supportwatch.core.exceptions import InvalidTransitionException, ValidationException
from supportwatch.shared.time import utcnow


@dataclass(frozen=True)
class NotificationAction:
    """
    One action of a rule. Subject and body are unrendered templates.

    Recipients may be user ids, group names, literal destinations
    (emails, channel names, URLs) or "$audience".
    """
    channel: str
    recipients: Tuple[str, ...] = ()
    subject: str = ""
    body: str = ""
    priority: Optional[str] = None
    delay_minutes: int = 0
    webhook_url: Optional[str] = None

    def __post_init__(self):
        if self.channel not in VALID_CHANNELS:
            raise ValidationException(
                f"Unknown channel '{self.channel}'",
                {"valid_channels": VALID_CHANNELS}
            )
        if self.priority is not None and self.priority not in VALID_PRIORITIES:
            raise ValidationException(f"Unknown priority '{self.priority}'")
        if self.delay_minutes < 0:
            raise ValidationException("delay_minutes cannot be negative")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NotificationAction":
        return cls(
            channel=data.get("channel", ""),
            recipients=tuple(data.get("recipients") or ()),
            subject=data.get("subject") or "",
            body=data.get("body") or data.get("template") or "",
            priority=data.get("priority"),
            delay_minutes=int(data.get("delay_minutes", data.get("delay", 0)) or 0),
            webhook_url=data.get("webhook_url"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel": self.channel,
            "recipients": list(self.recipients),
            "subject": self.subject,
            "body": self.body,
            "priority": self.priority,
            "delay_minutes": self.delay_minutes,
            "webhook_url": self.webhook_url,
        }


@dataclass
class NotificationRule:
    """
    Declarative rule: on `trigger`, if `conditions` hold, run `actions`.

    Rules are read-only while being evaluated; edits go through the
    rule service and replace the stored row.
    """
    id: str
    name: str
    trigger: str
    conditions: Any = field(default_factory=dict)
    actions: List[NotificationAction] = field(default_factory=list)
    is_active: bool = True
    created_by: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if self.trigger not in VALID_TRIGGERS:
            raise ValidationException(
                f"Unknown trigger '{self.trigger}'",
                {"valid_triggers": VALID_TRIGGERS}
            )


@dataclass(frozen=True)
class MatchedAction:
    """An action selected by the matcher, still carrying templates."""
    rule_id: str
    rule_name: str
    action: NotificationAction
    bindings: Dict[str, Any]


@dataclass(frozen=True)
class RenderedNotification:
    """
    A fully resolved notification ready for a channel.

    Scheduled notifications are stored in this form, so they do not
    depend on the rule that produced them.
    """
    channel: str
    recipients: Tuple[str, ...]
    subject: str
    body: str
    priority: str
    rule_id: Optional[str] = None
    ticket_id: Optional[str] = None
    triggered_by: Optional[str] = None
    webhook_url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class NotificationLog:
    """Record of one dispatch attempt."""
    id: str
    channel: str
    recipients: List[str]
    subject: str
    body: str
    priority: str
    status: str = NotificationStatus.PENDING
    error: Optional[str] = None
    ticket_id: Optional[str] = None
    rule_id: Optional[str] = None
    triggered_by: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    sent_at: Optional[datetime] = None

    def mark_sent(self, timestamp: Optional[datetime] = None) -> None:
        self._ensure_pending(NotificationStatus.SENT)
        self.status = NotificationStatus.SENT
        self.sent_at = timestamp or utcnow()

    def mark_failed(self, error: str) -> None:
        self._ensure_pending(NotificationStatus.FAILED)
        self.status = NotificationStatus.FAILED
        self.error = error

    def _ensure_pending(self, target: str) -> None:
        if self.status != NotificationStatus.PENDING:
            raise InvalidTransitionException("NotificationLog", self.status, target)


@dataclass
class UserNotificationSettings:
    """
    Per-user delivery preferences.

    `channels` maps channel -> enabled; a channel missing from the map is
    enabled. `destinations` maps channel -> address (email, Slack member,
    webhook URL).
    """
    user_id: str
    channels: Dict[str, bool] = field(default_factory=dict)
    destinations: Dict[str, str] = field(default_factory=dict)
    preferences: Dict[str, Any] = field(default_factory=dict)
    is_enabled: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def allows(self, channel: str) -> bool:
        return self.is_enabled and self.channels.get(channel, True)

    def destination_for(self, channel: str) -> Optional[str]:
        return self.destinations.get(channel)


@dataclass(frozen=True)
class DispatchOutcome:
    """Result of one channel send, mirrored in the notification log."""
    channel: str
    recipients: Tuple[str, ...]
    status: str
    log_id: Optional[str] = None
    error: Optional[str] = None
    latency_ms: float = 0.0
    ticket_id: Optional[str] = None
    rule_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == NotificationStatus.SENT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel": self.channel,
            "recipients": list(self.recipients),
            "status": self.status,
            "log_id": self.log_id,
            "error": self.error,
            "latency_ms": round(self.latency_ms, 2),
            "ticket_id": self.ticket_id,
            "rule_id": self.rule_id,
        }
