"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="supportwatch", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/supportwatch",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Monitoring ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA policy YAML file"
    )
    sla_evaluation_interval: int = Field(
        default=60,
        description="Seconds between SLA scans (0 disables the scheduler)",
        ge=0
    )

    # ========== Notification Engine ==========
    directory_config_path: Path = Field(
        default=Path("directory.yaml"),
        description="Path to recipient directory YAML file"
    )
    event_workers: int = Field(
        default=2,
        description="Number of event bus worker tasks",
        ge=1,
        le=32
    )
    dispatch_timeout_seconds: float = Field(
        default=10.0,
        description="Upper bound for a single channel send",
        gt=0,
        le=120
    )
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Base URL exposed to templates as {{baseUrl}}"
    )

    # ========== Slack Integration ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Default Slack webhook URL"
    )
    slack_channel: str = Field(
        default="#support-alerts",
        description="Default Slack channel"
    )

    # ========== Microsoft Teams Integration ==========
    teams_webhook_url: Optional[str] = Field(
        default=None,
        description="Default Teams incoming webhook URL"
    )

    # ========== SMTP ==========
    smtp_host: str = Field(default="", description="SMTP host (empty disables email)")
    smtp_port: int = Field(default=587, ge=1, le=65535)
    smtp_username: Optional[str] = Field(default=None)
    smtp_password: Optional[str] = Field(default=None)
    smtp_from_email: str = Field(default="noreply@example.com")
    smtp_from_name: str = Field(default="Support Desk")
    smtp_use_tls: bool = Field(default=True)

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class Priority(str):
    """Ticket and notification priority levels."""
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TicketStatus(str):
    """Ticket lifecycle statuses."""
    NEW = "new"
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    PENDING = "pending"
    RESOLVED = "resolved"
    CLOSED = "closed"


class NotificationTrigger(str):
    """Domain events that notification rules react to."""
    TICKET_CREATED = "ticket_created"
    STATUS_CHANGED = "status_changed"
    RESPONSE_ADDED = "response_added"
    SLA_VIOLATION = "sla_violation"
    ESCALATION = "escalation"
    TICKET_RESOLVED = "ticket_resolved"


class NotificationChannel(str):
    """Delivery channels."""
    EMAIL = "email"
    SLACK = "slack"
    TEAMS = "teams"
    WEBHOOK = "webhook"
    REALTIME = "realtime"


class NotificationStatus(str):
    """Dispatch attempt statuses."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class ViolationType(str):
    """SLA clocks that can be breached."""
    RESPONSE_TIME = "response_time"
    RESOLUTION_TIME = "resolution_time"


class Severity(str):
    """Violation and alert severities."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class EscalationStatus(str):
    """Escalation lifecycle."""
    ACTIVE = "active"
    RESOLVED = "resolved"


class AlertKind(str):
    """Sources of dashboard alerts."""
    SLA_VIOLATION = "sla_violation"
    ESCALATION = "escalation"
    SYSTEM_ERROR = "system_error"


# ========== Lists for validation ==========

VALID_PRIORITIES = [Priority.URGENT, Priority.HIGH, Priority.MEDIUM, Priority.LOW]
VALID_STATUSES = [
    TicketStatus.NEW, TicketStatus.OPEN, TicketStatus.IN_PROGRESS,
    TicketStatus.PENDING, TicketStatus.RESOLVED, TicketStatus.CLOSED
]
OPEN_STATUSES = [
    TicketStatus.NEW, TicketStatus.OPEN,
    TicketStatus.IN_PROGRESS, TicketStatus.PENDING
]
CLOSED_STATUSES = [TicketStatus.RESOLVED, TicketStatus.CLOSED]
VALID_TRIGGERS = [
    NotificationTrigger.TICKET_CREATED, NotificationTrigger.STATUS_CHANGED,
    NotificationTrigger.RESPONSE_ADDED, NotificationTrigger.SLA_VIOLATION,
    NotificationTrigger.ESCALATION, NotificationTrigger.TICKET_RESOLVED
]
VALID_CHANNELS = [
    NotificationChannel.EMAIL, NotificationChannel.SLACK, NotificationChannel.TEAMS,
    NotificationChannel.WEBHOOK, NotificationChannel.REALTIME
]
VALID_NOTIFICATION_STATUSES = [
    NotificationStatus.PENDING, NotificationStatus.SENT, NotificationStatus.FAILED
]
VALID_VIOLATION_TYPES = [ViolationType.RESPONSE_TIME, ViolationType.RESOLUTION_TIME]
VALID_SEVERITIES = [Severity.INFO, Severity.WARNING, Severity.CRITICAL]
VALID_ALERT_KINDS = [AlertKind.SLA_VIOLATION, AlertKind.ESCALATION, AlertKind.SYSTEM_ERROR]
