"""
SLA Domain Layer
================

Pure Python domain entities and value objects.
No infrastructure dependencies.
"""

from supportwatch.sla.domain.entities import (
    Escalation, EscalationTransition, SlaViolation, TicketSnapshot
)
from supportwatch.sla.domain.value_objects import (
    EscalationLevelConfig, SLACalculator, SLAConfig, SLAThresholds
)

__all__ = [
    "Escalation", "EscalationTransition", "SlaViolation", "TicketSnapshot",
    "EscalationLevelConfig", "SLACalculator", "SLAConfig", "SLAThresholds",
]
