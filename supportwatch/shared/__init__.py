"""
Shared Kernel Module
====================

This module contains shared infrastructure and application elements used
across all bounded contexts (Notifications, SLA Monitoring, Alerts).

Architecture Pattern: Modular Monolith
- Each module (notifications, sla, alerts) is a bounded context
- Shared kernel contains the event bus, unit-of-work contract, logging
  and time helpers
- Domain models live within each module

DO NOT add notification, SLA or alert business rules to the shared kernel.
"""

__version__ = "1.0.0"
