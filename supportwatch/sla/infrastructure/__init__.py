"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for SLA monitoring:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer
- External: policy file watcher and the monitoring scheduler
"""

from supportwatch.sla.infrastructure.models import (
    EscalationModel, TrackedTicketModel, ViolationModel
)
from supportwatch.sla.infrastructure.repositories import (
    SQLAlchemyEscalationRepository,
    SQLAlchemyTrackedTicketRepository,
    SQLAlchemyViolationRepository,
)
from supportwatch.sla.infrastructure.external import SLAConfigManager, SLAScheduler

__all__ = [
    "EscalationModel",
    "TrackedTicketModel",
    "ViolationModel",
    "SQLAlchemyEscalationRepository",
    "SQLAlchemyTrackedTicketRepository",
    "SQLAlchemyViolationRepository",
    "SLAConfigManager",
    "SLAScheduler",
]
