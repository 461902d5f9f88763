"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

Components raise these internally; the engine converts them into outcome
values at trigger and dispatch boundaries so that no single failure escapes
into the caller that emitted the event.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class ConditionException(ValidationException):
    """Raised when a rule condition tree is malformed or cannot be evaluated."""


class RuleEvaluationException(DomainException):
    """Raised when a single rule cannot be evaluated against a context."""

    def __init__(self, rule_id: str, message: str, details: Optional[dict] = None):
        self.rule_id = rule_id
        super().__init__(
            f"Rule {rule_id} evaluation failed: {message}",
            details or {"rule_id": rule_id}
        )


class DispatchException(ExternalServiceException):
    """Raised by a channel when a send is rejected or unreachable."""

    def __init__(self, channel: str, message: str, details: Optional[dict] = None):
        self.channel = channel
        super().__init__(f"channel:{channel}", message, details)


class ChannelTimeoutException(DispatchException):
    """Raised when a channel send exceeds the configured timeout."""

    def __init__(self, channel: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            channel,
            f"send timed out after {timeout_seconds:.1f}s",
            {"timeout_seconds": timeout_seconds}
        )


class InvalidTransitionException(DomainException):
    """Raised when a state machine transition is not legal."""

    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(
            f"{entity} cannot transition from {current} to {target}",
            {"entity": entity, "current": current, "target": target}
        )
