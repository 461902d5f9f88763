"""
Supportwatch
============

Notification, SLA monitoring and escalation engine for customer support.
"""

__version__ = "1.0.0"
