"""
Alert Domain Layer
==================
"""

from supportwatch.alerts.domain.entities import Alert

__all__ = ["Alert"]
