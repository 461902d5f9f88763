"""
SLA Repository Interfaces
=========================

Abstractions for tracked tickets, violations and escalations, plus the
SLA policy provider. SQLAlchemy implementations live in the
infrastructure layer.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Tuple

from supportwatch.sla.domain import Escalation, SLAConfig, SlaViolation, TicketSnapshot


class ITrackedTicketRepository(ABC):
    """Interface for ticket snapshot data access."""

    @abstractmethod
    async def get(self, ticket_id: str) -> Optional[TicketSnapshot]:
        """Get snapshot by ticket id."""

    @abstractmethod
    async def upsert(self, ticket: TicketSnapshot) -> TicketSnapshot:
        """Create or replace snapshot."""

    @abstractmethod
    async def list_open(self) -> List[TicketSnapshot]:
        """All snapshots not in a closed status."""


class IViolationRepository(ABC):
    """Interface for SLA violation data access."""

    @abstractmethod
    async def add(self, violation: SlaViolation) -> SlaViolation:
        """Persist new violation."""

    @abstractmethod
    async def update(self, violation: SlaViolation) -> SlaViolation:
        """Persist changes to an existing violation."""

    @abstractmethod
    async def get(self, violation_id: str) -> Optional[SlaViolation]:
        """Get violation by id."""

    @abstractmethod
    async def get_open(self, ticket_id: str, violation_type: str) -> Optional[SlaViolation]:
        """The open violation of a type for a ticket, if any."""

    @abstractmethod
    async def list_open_for_ticket(self, ticket_id: str) -> List[SlaViolation]:
        """Open violations of one ticket."""

    @abstractmethod
    async def list(
        self,
        ticket_id: Optional[str] = None,
        violation_type: Optional[str] = None,
        severity: Optional[str] = None,
        is_open: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[SlaViolation], int]:
        """List violations, newest first; returns (page, total)."""

    @abstractmethod
    async def list_since(self, since: datetime) -> List[SlaViolation]:
        """Violations detected at or after `since`."""


class IEscalationRepository(ABC):
    """Interface for escalation data access."""

    @abstractmethod
    async def add(self, escalation: Escalation) -> Escalation:
        """Persist new escalation."""

    @abstractmethod
    async def update(self, escalation: Escalation) -> Escalation:
        """Persist level/status changes and history."""

    @abstractmethod
    async def get(self, escalation_id: str) -> Optional[Escalation]:
        """Get escalation by id."""

    @abstractmethod
    async def get_active(self, ticket_id: str) -> Optional[Escalation]:
        """The active escalation of a ticket, if any."""

    @abstractmethod
    async def list_active(self) -> List[Escalation]:
        """All active escalations."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: str) -> List[Escalation]:
        """Every escalation of a ticket, oldest first."""

    @abstractmethod
    async def list(
        self,
        status: Optional[str] = None,
        ticket_id: Optional[str] = None,
        min_level: Optional[int] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Escalation], int]:
        """List escalations, newest first; returns (page, total)."""

    @abstractmethod
    async def list_since(self, since: datetime) -> List[Escalation]:
        """Escalations created at or after `since`."""


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @property
    @abstractmethod
    def config(self) -> SLAConfig:
        """Current SLA configuration."""
