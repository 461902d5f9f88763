"""
SLA Monitoring Module
=====================

Bounded Context for Service Level Agreement monitoring and escalation.

Responsibilities:
- Track ticket snapshots pushed by the ticket system
- Detect response and resolution SLA breaches on a periodic scan
- Drive the per-ticket escalation state machine
- Hot-reload the SLA policy file via watchdog
"""
