"""
Shared Application Layer
========================

Cross-context application contracts:
- EngineEvent / EventBus: the single internal message type and its queue
- UnitOfWork: one transaction spanning every context's repositories
"""

from supportwatch.shared.application.events import EngineEvent, EventBus
from supportwatch.shared.application.unit_of_work import UnitOfWork, UnitOfWorkFactory

__all__ = ["EngineEvent", "EventBus", "UnitOfWork", "UnitOfWorkFactory"]
