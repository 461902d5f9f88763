"""
Notification Application Services
=================================

Rule administration, user settings and recipient resolution.

Following SOLID principles:
- Single Responsibility: each service has one clear purpose
- Dependency Inversion: services depend on the unit-of-work and directory
  abstractions, not on SQLAlchemy
"""

import uuid
from typing import Any, List, Mapping, Optional, Tuple

from supportwatch.config import NotificationChannel
from supportwatch.core.exceptions import ResourceNotFoundException
from supportwatch.notifications.application.dto import (
    RuleCreateRequest, RuleUpdateRequest, UserSettingsRequest
)
from supportwatch.notifications.application.interfaces import IUserDirectory
from supportwatch.notifications.domain import (
    NotificationAction, NotificationRule, UserNotificationSettings
)
from supportwatch.shared.application.unit_of_work import UnitOfWork, UnitOfWorkFactory
from supportwatch.shared.infrastructure.logging import get_logger
from supportwatch.shared.time import utcnow

logger = get_logger(__name__)

AUDIENCE_TOKEN = "$audience"
ASSIGNEE_TOKEN = "$assignee"


class NotificationRuleService:
    """CRUD for notification rules. Conditions are validated by the DTOs."""

    def __init__(self, uow_factory: UnitOfWorkFactory):
        self._uow_factory = uow_factory

    async def create_rule(self, request: RuleCreateRequest) -> NotificationRule:
        now = utcnow()
        rule = NotificationRule(
            id=str(uuid.uuid4()),
            name=request.name,
            trigger=request.trigger,
            conditions=request.conditions,
            actions=[NotificationAction.from_dict(action.model_dump()) for action in request.actions],
            is_active=request.is_active,
            created_by=request.created_by,
            created_at=now,
            updated_at=now,
        )
        async with self._uow_factory() as uow:
            await uow.rules.add(rule)

        logger.info(
            "Notification rule created",
            extra={"rule_id": rule.id, "trigger": rule.trigger, "actions": len(rule.actions)}
        )
        return rule

    async def get_rule(self, rule_id: str) -> NotificationRule:
        async with self._uow_factory() as uow:
            rule = await uow.rules.get(rule_id)
        if rule is None:
            raise ResourceNotFoundException("NotificationRule", rule_id)
        return rule

    async def list_rules(
        self,
        trigger: Optional[str] = None,
        is_active: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0
    ) -> Tuple[List[NotificationRule], int]:
        async with self._uow_factory() as uow:
            return await uow.rules.list(trigger=trigger, is_active=is_active, limit=limit, offset=offset)

    async def update_rule(self, rule_id: str, request: RuleUpdateRequest) -> NotificationRule:
        async with self._uow_factory() as uow:
            rule = await uow.rules.get(rule_id)
            if rule is None:
                raise ResourceNotFoundException("NotificationRule", rule_id)

            changes = request.model_dump(exclude_unset=True)
            if "name" in changes and request.name is not None:
                rule.name = request.name
            if "trigger" in changes and request.trigger is not None:
                rule.trigger = request.trigger
            if "conditions" in changes:
                rule.conditions = request.conditions or {}
            if "actions" in changes and request.actions is not None:
                rule.actions = [NotificationAction.from_dict(action.model_dump()) for action in request.actions]
            if "is_active" in changes and request.is_active is not None:
                rule.is_active = request.is_active
            rule.updated_at = utcnow()

            await uow.rules.update(rule)

        logger.info("Notification rule updated", extra={"rule_id": rule_id, "fields": sorted(changes)})
        return rule

    async def delete_rule(self, rule_id: str) -> None:
        async with self._uow_factory() as uow:
            deleted = await uow.rules.delete(rule_id)
        if not deleted:
            raise ResourceNotFoundException("NotificationRule", rule_id)
        logger.info("Notification rule deleted", extra={"rule_id": rule_id})

    async def count_active(self) -> int:
        async with self._uow_factory() as uow:
            return await uow.rules.count_active()


class UserSettingsService:
    """Per-user channel preferences. Settings are created on first read."""

    def __init__(self, uow_factory: UnitOfWorkFactory):
        self._uow_factory = uow_factory

    async def get_settings(self, user_id: str) -> UserNotificationSettings:
        async with self._uow_factory() as uow:
            settings = await uow.user_settings.get(user_id)
            if settings is None:
                settings = await uow.user_settings.upsert(UserNotificationSettings(user_id=user_id))
        return settings

    async def update_settings(self, user_id: str, request: UserSettingsRequest) -> UserNotificationSettings:
        async with self._uow_factory() as uow:
            existing = await uow.user_settings.get(user_id)
            settings = UserNotificationSettings(
                user_id=user_id,
                channels=dict(request.channels),
                destinations=dict(request.destinations),
                preferences=dict(request.preferences),
                is_enabled=request.is_enabled,
                created_at=existing.created_at if existing else utcnow(),
                updated_at=utcnow(),
            )
            settings = await uow.user_settings.upsert(settings)

        logger.info("User notification settings updated", extra={"user_id": user_id})
        return settings


class RecipientResolver:
    """
    Expands action recipients into channel destinations.

    - "$audience": the audience list carried in the event context
    - "$assignee": the ticket's assigned user
    - a directory group: its members
    - a directory user: their stored destination for the channel (or the
      directory address), skipped when they disabled the channel
    - anything else: a literal destination, used as-is
    """

    def __init__(self, directory: IUserDirectory):
        self._directory = directory

    async def resolve(
        self,
        uow: UnitOfWork,
        channel: str,
        recipients: Tuple[str, ...],
        context: Mapping[str, Any]
    ) -> Tuple[str, ...]:
        candidates = self._expand(recipients, context, seen_groups=set())
        user_ids = [value for is_user, value in candidates if is_user]
        settings_by_user = await uow.user_settings.get_many(user_ids) if user_ids else {}

        resolved: List[str] = []
        for is_user, value in candidates:
            if not is_user:
                destination: Optional[str] = value
            else:
                destination = self._destination_for_user(value, channel, settings_by_user.get(value))
            if destination and destination not in resolved:
                resolved.append(destination)
        return tuple(resolved)

    def _expand(
        self,
        recipients: Tuple[str, ...],
        context: Mapping[str, Any],
        seen_groups: set
    ) -> List[Tuple[bool, str]]:
        expanded: List[Tuple[bool, str]] = []
        for recipient in recipients:
            if not recipient:
                continue

            if recipient == AUDIENCE_TOKEN:
                audience = context.get("audience") or []
                if isinstance(audience, str):
                    audience = [audience]
                expanded.extend(self._expand(tuple(audience), context, seen_groups))
                continue

            if recipient == ASSIGNEE_TOKEN:
                ticket = context.get("ticket")
                assignee = ticket.get("assigned_to") if isinstance(ticket, Mapping) else None
                if assignee:
                    expanded.append((True, str(assignee)))
                continue

            members = self._directory.get_group_members(recipient)
            if members is not None:
                if recipient in seen_groups:
                    continue
                seen_groups.add(recipient)
                expanded.extend(self._expand(tuple(members), context, seen_groups))
                continue

            expanded.append((self._directory.get_user(recipient) is not None, recipient))
        return expanded

    def _destination_for_user(
        self,
        user_id: str,
        channel: str,
        settings: Optional[UserNotificationSettings]
    ) -> Optional[str]:
        if settings is not None and not settings.allows(channel):
            logger.debug("Recipient disabled channel", extra={"user_id": user_id, "channel": channel})
            return None

        if settings is not None and settings.destination_for(channel):
            return settings.destination_for(channel)

        if channel == NotificationChannel.REALTIME:
            return user_id

        user = self._directory.get_user(user_id)
        if user is None:
            return None
        if channel == NotificationChannel.EMAIL:
            return user.email
        if channel == NotificationChannel.SLACK:
            return user.slack_id
        return None
