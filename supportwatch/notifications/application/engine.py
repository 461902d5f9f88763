"""
Notification Engine
===================

Turns one event into notifications:

1. RuleMatcher selects the actions of matching rules
2. recipients are resolved and subject/body rendered from the bindings
3. actions with a delay go to the delayed scheduler, the rest are
   dispatched in parallel

Every step is isolated: a failure becomes an error entry or a failed
outcome on the ExecutionReport and never escapes to the event source.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional

from supportwatch.config import NotificationStatus
from supportwatch.notifications.application.interfaces import (
    IDelayedScheduler, INotificationDispatcher
)
from supportwatch.notifications.application.matcher import (
    RuleMatcher, derive_priority, sanitize_context
)
from supportwatch.notifications.application.services import RecipientResolver
from supportwatch.notifications.domain import (
    DispatchOutcome, MatchedAction, RenderedNotification, TemplateRenderer
)
from supportwatch.shared.application.events import EngineEvent
from supportwatch.shared.application.unit_of_work import UnitOfWork, UnitOfWorkFactory
from supportwatch.shared.infrastructure.logging import get_logger
from supportwatch.shared.time import utcnow

logger = get_logger(__name__)


@dataclass
class ExecutionReport:
    """Outcome of running the rules for one trigger."""
    trigger: str
    rules_evaluated: int = 0
    matched_rule_ids: List[str] = field(default_factory=list)
    outcomes: List[DispatchOutcome] = field(default_factory=list)
    scheduled_handles: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == NotificationStatus.SENT)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == NotificationStatus.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trigger": self.trigger,
            "rules_evaluated": self.rules_evaluated,
            "matched_rule_ids": list(self.matched_rule_ids),
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "scheduled_handles": list(self.scheduled_handles),
            "errors": list(self.errors),
            "sent": self.sent,
            "failed": self.failed,
        }


def _json_safe(value: Any) -> Any:
    return json.loads(json.dumps(value, default=str))


class NotificationEngine:
    """Rule execution pipeline shared by emitted events and manual runs."""

    def __init__(
        self,
        matcher: RuleMatcher,
        resolver: RecipientResolver,
        dispatcher: INotificationDispatcher,
        scheduler: IDelayedScheduler,
        uow_factory: UnitOfWorkFactory,
        renderer: Optional[TemplateRenderer] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self._matcher = matcher
        self._resolver = resolver
        self._dispatcher = dispatcher
        self._scheduler = scheduler
        self._uow_factory = uow_factory
        self._renderer = renderer or TemplateRenderer()
        self._clock = clock
        self.last_execution_at: Optional[datetime] = None

    async def handle_event(self, event: EngineEvent) -> ExecutionReport:
        """Event bus entry point."""
        return await self.execute(event.trigger, event.context, triggered_by=event.triggered_by)

    async def execute(
        self,
        trigger: str,
        context: Mapping[str, Any],
        triggered_by: Optional[str] = None
    ) -> ExecutionReport:
        report = ExecutionReport(trigger=trigger)

        try:
            match = await self._matcher.evaluate(trigger, context)
        except Exception as e:
            logger.exception("Rule lookup failed", extra={"trigger": trigger})
            report.errors.append(f"rule lookup failed: {e}")
            return report

        report.rules_evaluated = match.rules_evaluated
        report.matched_rule_ids = list(match.matched_rule_ids)
        report.errors.extend(error.message for error in match.errors)

        immediate: List[RenderedNotification] = []
        delayed: List[tuple] = []
        if match.actions:
            try:
                async with self._uow_factory() as uow:
                    for matched in match.actions:
                        try:
                            notification = await self._prepare(uow, trigger, context, matched, triggered_by)
                        except Exception as e:
                            logger.warning(
                                "Failed to prepare notification",
                                extra={"rule_id": matched.rule_id, "channel": matched.action.channel, "error": str(e)}
                            )
                            report.errors.append(f"rule {matched.rule_id}: {e}")
                            continue

                        if matched.action.delay_minutes > 0:
                            delayed.append((notification, matched.action.delay_minutes))
                        else:
                            immediate.append(notification)
            except Exception as e:
                logger.exception("Recipient resolution failed", extra={"trigger": trigger})
                report.errors.append(f"recipient resolution failed: {e}")

        for notification, delay_minutes in delayed:
            try:
                fire_at = self._clock() + timedelta(minutes=delay_minutes)
                report.scheduled_handles.append(self._scheduler.schedule(notification, fire_at))
            except Exception as e:
                logger.exception("Failed to schedule notification", extra={"rule_id": notification.rule_id})
                report.errors.append(f"rule {notification.rule_id}: scheduling failed: {e}")

        if immediate:
            try:
                report.outcomes = await self._dispatcher.dispatch_many(immediate)
            except Exception as e:
                logger.exception("Dispatch batch failed", extra={"trigger": trigger})
                report.errors.append(f"dispatch failed: {e}")

        self.last_execution_at = self._clock()
        logger.info(
            "Rules executed",
            extra={
                "trigger": trigger,
                "rules_evaluated": report.rules_evaluated,
                "matched": len(report.matched_rule_ids),
                "sent": report.sent,
                "failed": report.failed,
                "scheduled": len(report.scheduled_handles),
                "errors": len(report.errors),
            }
        )
        return report

    def cancel_delayed(self, handle: str) -> bool:
        return self._scheduler.cancel(handle)

    @property
    def pending_delayed_count(self) -> int:
        return self._scheduler.pending_count

    async def _prepare(
        self,
        uow: UnitOfWork,
        trigger: str,
        context: Mapping[str, Any],
        matched: MatchedAction,
        triggered_by: Optional[str]
    ) -> RenderedNotification:
        action = matched.action
        recipients = await self._resolver.resolve(uow, action.channel, action.recipients, context)
        ticket_id = matched.bindings.get("ticketId")

        return RenderedNotification(
            channel=action.channel,
            recipients=recipients,
            subject=self._renderer.render(action.subject, matched.bindings),
            body=self._renderer.render(action.body, matched.bindings),
            priority=action.priority or derive_priority(trigger, context),
            rule_id=matched.rule_id,
            ticket_id=str(ticket_id) if ticket_id is not None else None,
            triggered_by=triggered_by,
            webhook_url=action.webhook_url,
            metadata={
                "trigger": trigger,
                "rule_name": matched.rule_name,
                "context": _json_safe(sanitize_context(dict(context))),
            },
        )
