"""
Notifications Module
====================

Bounded Context for rule-driven notifications.

Responsibilities:
- Store notification rules and evaluate them against domain events
- Render subject/body templates from event bindings
- Resolve recipients through the user directory and user settings
- Dispatch over email, Slack, Teams, webhooks and in-app realtime
- Hold delayed notifications until they fire or are cancelled
"""
