"""
Alert Domain Entities
=====================

Alerts are the dashboard projection of violations, escalations and
system errors (failed dispatches).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from supportwatch.config import VALID_ALERT_KINDS, VALID_SEVERITIES
from supportwatch.core.exceptions import InvalidTransitionException, ValidationException
from supportwatch.shared.time import utcnow


@dataclass
class Alert:
    """An operational alert shown on the dashboard until resolved."""

    id: str
    kind: str
    severity: str
    title: str
    message: str = ""
    ticket_id: Optional[str] = None
    source_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None

    def __post_init__(self):
        if self.kind not in VALID_ALERT_KINDS:
            raise ValidationException(f"Unknown alert kind '{self.kind}'")
        if self.severity not in VALID_SEVERITIES:
            raise ValidationException(f"Unknown alert severity '{self.severity}'")

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None

    def resolve(self, timestamp: Optional[datetime] = None) -> None:
        if self.is_resolved:
            raise InvalidTransitionException("Alert", "resolved", "resolved")
        self.resolved_at = timestamp or utcnow()
