"""
Notification Interfaces Layer
=============================

FastAPI controllers for the notification module.
"""

from supportwatch.notifications.interfaces.controllers import router as notifications_router

__all__ = ["notifications_router"]
