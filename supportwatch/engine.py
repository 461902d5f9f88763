"""
Support Engine
==============

Composition root for the notification, SLA and alert contexts.

Wires the services around one EventBus and exposes the operations used
by ticket collaborators and the HTTP layer:

- emit(trigger, context): fire-and-forget event submission
- execute_rules_manually(trigger, context, actor_id): synchronous re-run
- cancel_delayed_notification(handle)
- get_engine_stats()
- run_scan(): one SLA monitoring cycle

Event handlers run in subscription order: ticket tracking first so the
snapshot is current, then escalation, then the notification rules.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional

from supportwatch.alerts.application import AlertDashboardService, AlertService
from supportwatch.config import NotificationTrigger, VALID_TRIGGERS
from supportwatch.core.exceptions import ValidationException
from supportwatch.notifications.application import (
    ExecutionReport,
    IUserDirectory,
    NotificationEngine,
    NotificationRuleService,
    RecipientResolver,
    RuleMatcher,
    UserSettingsService,
)
from supportwatch.notifications.infrastructure import (
    ChannelDispatcher,
    ConnectionManager,
    DelayedActionScheduler,
    NotificationChannelClient,
)
from supportwatch.shared.application import EngineEvent, EventBus, UnitOfWorkFactory
from supportwatch.shared.application.events import ALL_TRIGGERS
from supportwatch.shared.infrastructure.logging import get_logger
from supportwatch.shared.time import utcnow
from supportwatch.sla.application import (
    EscalationService,
    ISLAConfigProvider,
    ScanReport,
    SLAMonitor,
    TicketTrackingService,
    ViolationService,
)

logger = get_logger(__name__)

_TRACKED_TRIGGERS = (
    NotificationTrigger.TICKET_CREATED,
    NotificationTrigger.STATUS_CHANGED,
    NotificationTrigger.RESPONSE_ADDED,
    NotificationTrigger.TICKET_RESOLVED,
)
_ESCALATION_TRIGGERS = (
    NotificationTrigger.SLA_VIOLATION,
    NotificationTrigger.STATUS_CHANGED,
    NotificationTrigger.TICKET_RESOLVED,
)


class SupportEngine:
    """Owns the event bus, the delayed scheduler and every service."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        config_provider: ISLAConfigProvider,
        directory: IUserDirectory,
        channels: Mapping[str, NotificationChannelClient],
        connections: Optional[ConnectionManager] = None,
        event_workers: int = 2,
        dispatch_timeout_seconds: float = 10.0,
        base_url: str = "",
        clock: Callable[[], datetime] = utcnow
    ):
        self.uow_factory = uow_factory
        self.config_provider = config_provider
        self.directory = directory
        self.connections = connections or ConnectionManager()
        self.channels = dict(channels)
        self.bus = EventBus(workers=event_workers, clock=clock)

        self.alert_service = AlertService(clock)
        self.dispatcher = ChannelDispatcher(
            self.channels,
            uow_factory,
            alert_service=self.alert_service,
            timeout_seconds=dispatch_timeout_seconds,
            clock=clock,
        )
        self.scheduler = DelayedActionScheduler(self.dispatcher.dispatch, clock)
        self.notifications = NotificationEngine(
            matcher=RuleMatcher(uow_factory, base_url),
            resolver=RecipientResolver(directory),
            dispatcher=self.dispatcher,
            scheduler=self.scheduler,
            uow_factory=uow_factory,
            clock=clock,
        )
        self.rules = NotificationRuleService(uow_factory)
        self.user_settings = UserSettingsService(uow_factory)

        self.tracking = TicketTrackingService(uow_factory, self.alert_service, clock)
        self.escalations = EscalationService(uow_factory, config_provider, self.bus, self.alert_service, clock)
        self.monitor = SLAMonitor(
            uow_factory, config_provider, self.bus, self.alert_service, self.escalations, clock
        )
        self.violations = ViolationService(uow_factory, self.alert_service, clock)
        self.dashboard = AlertDashboardService(uow_factory, clock)

        for trigger in _TRACKED_TRIGGERS:
            self.bus.subscribe(trigger, self.tracking.handle_event)
        for trigger in _ESCALATION_TRIGGERS:
            self.bus.subscribe(trigger, self.escalations.handle_event)
        self.bus.subscribe(ALL_TRIGGERS, self.notifications.handle_event)

    # ========== Lifecycle ==========

    async def start(self) -> None:
        self.scheduler.bind(asyncio.get_running_loop())
        await self.bus.start()
        logger.info("Support engine started", extra={"channels": sorted(self.channels)})

    async def stop(self) -> None:
        dropped = self.scheduler.stop()
        await self.bus.stop()
        for channel in self.channels.values():
            try:
                await channel.close()
            except Exception as e:
                logger.warning("Channel close failed", extra={"channel": channel.name, "error": str(e)})
        logger.info("Support engine stopped", extra={"dropped_delayed": dropped})

    async def drain(self) -> None:
        """Wait for queued events and fired delayed notifications."""
        await self.bus.join()
        await self.scheduler.join()

    # ========== Collaborator operations ==========

    def emit(
        self,
        trigger: str,
        context: Dict[str, Any],
        triggered_by: Optional[str] = None
    ) -> EngineEvent:
        """Queue an event and return immediately."""
        self._check_trigger(trigger)
        return self.bus.publish(trigger, context, triggered_by=triggered_by)

    async def execute_rules_manually(
        self,
        trigger: str,
        context: Dict[str, Any],
        actor_id: Optional[str] = None
    ) -> ExecutionReport:
        """Run the rules for a trigger now and report every outcome."""
        self._check_trigger(trigger)
        logger.info("Manual rule execution", extra={"trigger": trigger, "actor_id": actor_id})
        return await self.notifications.execute(trigger, context, triggered_by=actor_id)

    def cancel_delayed_notification(self, handle: str) -> bool:
        return self.notifications.cancel_delayed(handle)

    async def get_engine_stats(self) -> Dict[str, Any]:
        return {
            "active_rule_count": await self.rules.count_active(),
            "pending_delayed_count": self.notifications.pending_delayed_count,
            "last_scan_at": self.monitor.last_scan_at,
            "last_execution_at": self.notifications.last_execution_at,
        }

    async def run_scan(self, now: Optional[datetime] = None) -> ScanReport:
        return await self.monitor.run_cycle(now)

    @staticmethod
    def _check_trigger(trigger: str) -> None:
        if trigger not in VALID_TRIGGERS:
            raise ValidationException(
                f"Unknown trigger '{trigger}'",
                {"valid_triggers": VALID_TRIGGERS}
            )
