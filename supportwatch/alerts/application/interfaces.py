"""
Alert Repository Interface
==========================
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Tuple

from supportwatch.alerts.domain import Alert


class IAlertRepository(ABC):
    """Interface for alert data access."""

    @abstractmethod
    async def add(self, alert: Alert) -> Alert:
        """Persist new alert."""

    @abstractmethod
    async def update(self, alert: Alert) -> Alert:
        """Persist changes to an existing alert."""

    @abstractmethod
    async def get(self, alert_id: str) -> Optional[Alert]:
        """Get alert by id."""

    @abstractmethod
    async def list_open(
        self,
        source_id: Optional[str] = None,
        ticket_id: Optional[str] = None
    ) -> List[Alert]:
        """Unresolved alerts, optionally for one source or ticket."""

    @abstractmethod
    async def list(
        self,
        kind: Optional[str] = None,
        severity: Optional[str] = None,
        is_resolved: Optional[bool] = None,
        ticket_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Alert], int]:
        """List alerts, newest first; returns (page, total)."""

    @abstractmethod
    async def list_since(self, since: datetime) -> List[Alert]:
        """Alerts created at or after `since`, newest first."""
