"""
Infrastructure Layer
=====================

Low-level technical concerns shared by every bounded context:
- Structured logging and correlation IDs
- Circuit breaker for outbound HTTP integrations
"""
