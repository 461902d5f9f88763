"""
Alert Infrastructure Layer
==========================
"""

from supportwatch.alerts.infrastructure.models import AlertModel
from supportwatch.alerts.infrastructure.repositories import SQLAlchemyAlertRepository

__all__ = ["AlertModel", "SQLAlchemyAlertRepository"]
