"""
Alert Interfaces Layer
======================

FastAPI controllers for the dashboard.
"""

from supportwatch.alerts.interfaces.controllers import router as alerts_router

__all__ = ["alerts_router"]
