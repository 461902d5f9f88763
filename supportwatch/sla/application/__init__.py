"""
SLA Application Layer
======================

Application layer for SLA monitoring and escalation.

Contains:
- Services: SLA monitor, escalation state machine, ticket tracking, violations
- DTOs: Data transfer objects for API serialization
- Interfaces: repository abstractions

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from supportwatch.sla.application.dto import (
    AcknowledgeRequest,
    EscalationListResponse,
    EscalationOutcomeResponse,
    EscalationResponse,
    IngestResponse,
    ManualEscalationRequest,
    ScanReportResponse,
    TicketIngestRequest,
    TicketSnapshotDTO,
    ViolationListResponse,
    ViolationResponse,
    ViolationStatsResponse,
)
from supportwatch.sla.application.interfaces import (
    IEscalationRepository,
    ISLAConfigProvider,
    ITrackedTicketRepository,
    IViolationRepository,
)
from supportwatch.sla.application.services import (
    EscalationOutcome,
    EscalationService,
    SLAMonitor,
    ScanReport,
    TicketTrackingService,
    ViolationService,
)

__all__ = [
    # DTOs
    "AcknowledgeRequest",
    "EscalationListResponse",
    "EscalationOutcomeResponse",
    "EscalationResponse",
    "IngestResponse",
    "ManualEscalationRequest",
    "ScanReportResponse",
    "TicketIngestRequest",
    "TicketSnapshotDTO",
    "ViolationListResponse",
    "ViolationResponse",
    "ViolationStatsResponse",
    # Repository Interfaces
    "IEscalationRepository",
    "ISLAConfigProvider",
    "ITrackedTicketRepository",
    "IViolationRepository",
    # Services
    "EscalationOutcome",
    "EscalationService",
    "SLAMonitor",
    "ScanReport",
    "TicketTrackingService",
    "ViolationService",
]
