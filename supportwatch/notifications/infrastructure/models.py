"""
Notification Infrastructure Models
==================================

SQLAlchemy ORM models for rules, dispatch logs and user settings.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from supportwatch.config import NotificationStatus
from supportwatch.infrastructure.database import Base


def _now() -> datetime:
    return datetime.now(timezone.utc)


class NotificationRuleModel(Base):
    """
    Database model for NotificationRule entity.

    `seq` gives a stable insertion order for rules created within the same
    timestamp.
    """
    __tablename__ = "notification_rules"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    trigger: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    conditions: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    actions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


class NotificationLogModel(Base):
    """
    Database model for NotificationLog entity.

    Maps to the 'notification_logs' table; one row per dispatch attempt.
    """
    __tablename__ = "notification_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    channel: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    recipients: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    subject: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    priority: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=NotificationStatus.PENDING, index=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    ticket_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    rule_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    triggered_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    metadata_json: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, index=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class UserNotificationSettingsModel(Base):
    """Per-user channel enablement and destinations."""
    __tablename__ = "user_notification_settings"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    channels: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    destinations: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    preferences: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
