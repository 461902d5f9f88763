"""
Alert Application Layer
=======================
"""

from supportwatch.alerts.application.dto import (
    AlertListResponse,
    AlertResponse,
    DashboardOverviewResponse,
    EscalationAnalysisResponse,
    NotificationEffectivenessResponse,
    ViolationTrendsResponse,
)
from supportwatch.alerts.application.interfaces import IAlertRepository
from supportwatch.alerts.application.services import AlertDashboardService, AlertService

__all__ = [
    "AlertDashboardService",
    "AlertListResponse",
    "AlertResponse",
    "AlertService",
    "DashboardOverviewResponse",
    "EscalationAnalysisResponse",
    "IAlertRepository",
    "NotificationEffectivenessResponse",
    "ViolationTrendsResponse",
]
