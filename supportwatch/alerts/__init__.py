"""
Alerts Module
=============

Bounded Context for the operational dashboard.

Responsibilities:
- Project violations, escalations and failed dispatches into alerts
- Serve dashboard rollups: overview, violation trends, escalation
  analysis, notification effectiveness and recent alerts
"""
