"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

- TicketTrackingService: keeps ticket snapshots current from events and ingest
- SLAMonitor: periodic scan raising response/resolution violations
- EscalationService: per-ticket escalation state machine
- ViolationService: listing, acknowledgement and statistics

Events are published only after the unit of work that produced them
has committed.
"""

import asyncio
import uuid
from collections import Counter
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional, Tuple

from supportwatch.alerts.application import AlertService
from supportwatch.config import (
    CLOSED_STATUSES, NotificationTrigger, Severity, TicketStatus,
    VALID_PRIORITIES, VALID_SEVERITIES, VALID_STATUSES, VALID_VIOLATION_TYPES,
    ViolationType
)
from supportwatch.core.exceptions import (
    InvalidTransitionException, ResourceNotFoundException
)
from supportwatch.shared.application.events import EngineEvent, EventBus
from supportwatch.shared.application.unit_of_work import UnitOfWork, UnitOfWorkFactory
from supportwatch.shared.infrastructure.logging import get_logger, log_latency
from supportwatch.shared.time import ensure_utc, utcnow
from supportwatch.sla.application.dto import TicketSnapshotDTO
from supportwatch.sla.application.interfaces import ISLAConfigProvider
from supportwatch.sla.domain import (
    Escalation, SLACalculator, SLAConfig, SlaViolation, TicketSnapshot
)

logger = get_logger(__name__)

PendingEvent = Tuple[str, Dict[str, Any]]


def _publish_all(bus: EventBus, events: List[PendingEvent], triggered_by: Optional[str] = None) -> None:
    for trigger, context in events:
        bus.publish(trigger, context, triggered_by=triggered_by)


# ========== Outcome values ==========

@dataclass
class EscalationOutcome:
    """Result of one escalation attempt; `changed` is False for no-ops."""
    ticket_id: str
    escalation_id: Optional[str] = None
    from_level: int = 0
    to_level: int = 0
    status: Optional[str] = None
    changed: bool = False
    reason: str = ""
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ticket_id": self.ticket_id,
            "escalation_id": self.escalation_id,
            "from_level": self.from_level,
            "to_level": self.to_level,
            "status": self.status,
            "changed": self.changed,
            "reason": self.reason,
            "error": self.error,
        }


@dataclass
class ScanReport:
    """Result of one SLA monitoring cycle."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    skipped: bool = False
    tickets_scanned: int = 0
    violations_created: List[str] = field(default_factory=list)
    escalations: List[EscalationOutcome] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "skipped": self.skipped,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "tickets_scanned": self.tickets_scanned,
            "violations_created": self.violations_created,
            "escalations": [outcome.to_dict() for outcome in self.escalations],
            "errors": self.errors,
        }


def violation_event_context(violation: SlaViolation, ticket: Optional[TicketSnapshot]) -> Dict[str, Any]:
    return {
        "ticketId": violation.ticket_id,
        "ticket": ticket.to_context() if ticket else {"id": violation.ticket_id},
        "violation": violation.to_context(),
        "violationType": violation.violation_type,
        "severity": violation.severity,
    }


def escalation_event_context(
    escalation: Escalation,
    ticket: Optional[TicketSnapshot],
    audience: List[str]
) -> Dict[str, Any]:
    return {
        "ticketId": escalation.ticket_id,
        "ticket": ticket.to_context() if ticket else {"id": escalation.ticket_id},
        "escalation": escalation.to_context(),
        "level": escalation.level,
        "reason": escalation.reason,
        "status": escalation.status,
        "audience": audience,
    }


# ========== Ticket tracking ==========

class TicketTrackingService:
    """
    Maintains ticket snapshots from ticket events and batch ingest.

    Closing a ticket clears its open violations and resolves its alerts;
    the escalation service resolves the escalation from the same event.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        alert_service: AlertService,
        clock: Callable[[], datetime] = utcnow
    ):
        self._uow_factory = uow_factory
        self._alerts = alert_service
        self._clock = clock

    async def ingest(self, tickets: List[TicketSnapshotDTO]) -> Dict[str, Any]:
        created = updated = failed = 0
        errors: List[str] = []

        for dto in tickets:
            try:
                async with self._uow_factory() as uow:
                    existing = await uow.tickets.get(dto.id)
                    snapshot = dto.to_entity()
                    if existing is not None:
                        snapshot.first_response_at = snapshot.first_response_at or existing.first_response_at
                        if snapshot.status_changed_at is None:
                            snapshot.status_changed_at = (
                                existing.status_changed_at if existing.status == snapshot.status
                                else snapshot.updated_at
                            )
                    await uow.tickets.upsert(snapshot)
                    if not snapshot.is_open:
                        await self._clear_ticket(uow, snapshot.id)
                if existing is None:
                    created += 1
                else:
                    updated += 1
            except Exception as e:
                failed += 1
                errors.append(f"{dto.id}: {e}")
                logger.error("Ticket ingest failed", extra={"ticket_id": dto.id, "error": str(e)})

        logger.info(
            "Tickets ingested",
            extra={"created": created, "updated": updated, "failed": failed}
        )
        return {"created": created, "updated": updated, "failed": failed, "errors": errors}

    async def handle_event(self, event: EngineEvent) -> Optional[TicketSnapshot]:
        context = event.context
        at = event.occurred_at

        async with self._uow_factory() as uow:
            resolved = await self._snapshot_from_context(uow, context, at)
            if resolved is None:
                return None
            ticket, incoming_status = resolved

            if event.trigger == NotificationTrigger.RESPONSE_ADDED:
                response = context.get("response")
                response = response if isinstance(response, Mapping) else {}
                if not response.get("from_customer"):
                    responded_at = ensure_utc(_parse_datetime(response.get("created_at"))) or at
                    ticket.mark_first_response(responded_at)

            target_status = context.get("newStatus") or incoming_status
            if event.trigger == NotificationTrigger.TICKET_RESOLVED and target_status not in CLOSED_STATUSES:
                target_status = TicketStatus.RESOLVED
            if target_status in VALID_STATUSES:
                ticket.change_status(target_status, at)
            elif target_status:
                logger.warning("Unknown ticket status ignored", extra={"ticket_id": ticket.id, "status": target_status})

            await uow.tickets.upsert(ticket)
            if not ticket.is_open:
                await self._clear_ticket(uow, ticket.id)

        return ticket

    async def _snapshot_from_context(
        self,
        uow: UnitOfWork,
        context: Mapping[str, Any],
        at: datetime
    ) -> Optional[Tuple[TicketSnapshot, Optional[str]]]:
        """The stored snapshot refreshed from the event payload, plus the payload status."""
        payload = context.get("ticket")
        payload = payload if isinstance(payload, Mapping) else {}
        ticket_id = payload.get("id") or context.get("ticketId")
        if not ticket_id:
            logger.debug("Event without ticket reference ignored by tracking")
            return None

        existing = await uow.tickets.get(str(ticket_id))
        if existing is None:
            data = {key: value for key, value in payload.items() if value is not None}
            data["id"] = str(ticket_id)
            data.setdefault("created_at", at)
            return TicketSnapshotDTO.model_validate(data).to_entity(), None

        for key in ("title", "application_id", "assigned_to"):
            if payload.get(key) is not None:
                setattr(existing, key, payload[key])
        if payload.get("priority") in VALID_PRIORITIES:
            existing.priority = payload["priority"]
        if existing.first_response_at is None and payload.get("first_response_at"):
            existing.first_response_at = ensure_utc(_parse_datetime(payload["first_response_at"]))
        existing.updated_at = at
        return existing, payload.get("status")

    async def _clear_ticket(self, uow: UnitOfWork, ticket_id: str) -> int:
        now = self._clock()
        violations = await uow.violations.list_open_for_ticket(ticket_id)
        for violation in violations:
            violation.clear(now)
            await uow.violations.update(violation)
        await self._alerts.resolve_for_ticket(uow, ticket_id)
        if violations:
            logger.info(
                "Violations cleared on ticket close",
                extra={"ticket_id": ticket_id, "count": len(violations)}
            )
        return len(violations)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


# ========== Escalation state machine ==========

@dataclass
class _TicketLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class EscalationService:
    """
    Per-ticket escalation state machine.

    - none -> 1: critical violation or manual escalation
    - N -> N+1: a new violation while escalated, a manual escalation, or
      the level's re-escalation interval elapsing (sweep)
    - N -> resolved: ticket resolved/closed; terminal

    Every transition publishes an `escalation` event. Transitions for the
    same ticket are serialized with a per-ticket lock.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        config_provider: ISLAConfigProvider,
        bus: EventBus,
        alert_service: AlertService,
        clock: Callable[[], datetime] = utcnow
    ):
        self._uow_factory = uow_factory
        self._config_provider = config_provider
        self._bus = bus
        self._alerts = alert_service
        self._clock = clock
        self._locks: Dict[str, _TicketLock] = {}

    @asynccontextmanager
    async def _ticket_lock(self, ticket_id: str) -> AsyncIterator[None]:
        """Serialize transitions of one ticket; the entry is dropped once unused."""
        entry = self._locks.get(ticket_id)
        if entry is None:
            entry = self._locks[ticket_id] = _TicketLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[ticket_id]

    async def handle_event(self, event: EngineEvent) -> Optional[EscalationOutcome]:
        if event.trigger == NotificationTrigger.SLA_VIOLATION:
            violation = event.context.get("violation") or {}
            violation_id = violation.get("id") if isinstance(violation, Mapping) else None
            if not violation_id:
                return None
            return await self.on_violation(violation_id)

        if event.trigger in (NotificationTrigger.STATUS_CHANGED, NotificationTrigger.TICKET_RESOLVED):
            ticket_id = event.context.get("ticketId")
            ticket = event.context.get("ticket")
            if isinstance(ticket, Mapping):
                ticket_id = ticket.get("id", ticket_id)
            if not ticket_id:
                return None
            status = event.context.get("newStatus") or event.context.get("status")
            if isinstance(ticket, Mapping) and not status:
                status = ticket.get("status")
            if event.trigger == NotificationTrigger.TICKET_RESOLVED or status in CLOSED_STATUSES:
                return await self.resolve(str(ticket_id), reason="ticket_resolved", triggered_by=event.triggered_by)
        return None

    async def on_violation(self, violation_id: str) -> EscalationOutcome:
        config = self._config_provider.config
        async with self._uow_factory() as uow:
            violation = await uow.violations.get(violation_id)
        if violation is None:
            return EscalationOutcome(ticket_id="", error=f"violation {violation_id} not found")

        ticket_id = violation.ticket_id
        async with self._ticket_lock(ticket_id):
            async with self._uow_factory() as uow:
                violation = await uow.violations.get(violation_id)
                if violation is None or not violation.is_open:
                    return EscalationOutcome(ticket_id=ticket_id, reason="violation_cleared")

                ticket = await uow.tickets.get(violation.ticket_id)
                if ticket is not None and not ticket.is_open:
                    return EscalationOutcome(ticket_id=violation.ticket_id, reason="ticket_closed")

                escalation = await uow.escalations.get_active(violation.ticket_id)
                reason = f"{violation.violation_type}_violation"

                if escalation is None:
                    if violation.severity != Severity.CRITICAL:
                        return EscalationOutcome(ticket_id=violation.ticket_id, reason="below_escalation_severity")
                    escalation = self._new_escalation(violation.ticket_id, is_automatic=True)
                    outcome = self._advance(escalation, reason, None)
                    await uow.escalations.add(escalation)
                elif escalation.level >= config.max_level:
                    return EscalationOutcome(
                        ticket_id=violation.ticket_id,
                        escalation_id=escalation.id,
                        from_level=escalation.level,
                        to_level=escalation.level,
                        status=escalation.status,
                        reason="max_level_reached",
                    )
                else:
                    outcome = self._advance(escalation, f"repeat_{reason}", None)
                    await uow.escalations.update(escalation)

                await self._alerts.record_escalation(uow, escalation)
                context = escalation_event_context(escalation, ticket, config.audience_for_level(escalation.level))

            self._bus.publish(NotificationTrigger.ESCALATION, context)
        self._log_transition(outcome)
        return outcome

    async def escalate(
        self,
        ticket_id: str,
        reason: str = "manual",
        actor_id: Optional[str] = None
    ) -> EscalationOutcome:
        """
        Manual escalation.

        Raises:
            ResourceNotFoundException: If the ticket is not tracked
            InvalidTransitionException: If the ticket is closed or already at the top level
        """
        config = self._config_provider.config
        async with self._ticket_lock(ticket_id):
            async with self._uow_factory() as uow:
                ticket = await uow.tickets.get(ticket_id)
                if ticket is None:
                    raise ResourceNotFoundException("Ticket", ticket_id)
                if not ticket.is_open:
                    raise InvalidTransitionException("Ticket", ticket.status, "escalated")

                escalation = await uow.escalations.get_active(ticket_id)
                if escalation is None:
                    escalation = self._new_escalation(ticket_id, is_automatic=False)
                    outcome = self._advance(escalation, reason, actor_id)
                    await uow.escalations.add(escalation)
                elif escalation.level >= config.max_level:
                    raise InvalidTransitionException("Escalation", f"level {escalation.level}", "beyond max level")
                else:
                    outcome = self._advance(escalation, reason, actor_id)
                    await uow.escalations.update(escalation)

                await self._alerts.record_escalation(uow, escalation)
                context = escalation_event_context(escalation, ticket, config.audience_for_level(escalation.level))

            self._bus.publish(NotificationTrigger.ESCALATION, context, triggered_by=actor_id)
        self._log_transition(outcome)
        return outcome

    async def resolve(
        self,
        ticket_id: str,
        reason: str = "ticket_resolved",
        triggered_by: Optional[str] = None
    ) -> EscalationOutcome:
        """Terminal transition. A ticket without an active escalation is a no-op."""
        async with self._ticket_lock(ticket_id):
            async with self._uow_factory() as uow:
                escalation = await uow.escalations.get_active(ticket_id)
                if escalation is None:
                    return EscalationOutcome(ticket_id=ticket_id, reason="no_active_escalation")

                escalation.resolve(reason, self._clock(), triggered_by)
                await uow.escalations.update(escalation)
                await self._alerts.resolve_for_source(uow, escalation.id)
                ticket = await uow.tickets.get(ticket_id)
                context = escalation_event_context(escalation, ticket, [])

            self._bus.publish(NotificationTrigger.ESCALATION, context, triggered_by=triggered_by)

        outcome = EscalationOutcome(
            ticket_id=ticket_id,
            escalation_id=escalation.id,
            from_level=escalation.level,
            to_level=escalation.level,
            status=escalation.status,
            changed=True,
            reason=reason,
        )
        self._log_transition(outcome)
        return outcome

    async def sweep(self, now: Optional[datetime] = None) -> List[EscalationOutcome]:
        """Re-escalate active escalations whose level interval has elapsed."""
        now = now or self._clock()
        config = self._config_provider.config

        async with self._uow_factory() as uow:
            active = await uow.escalations.list_active()

        outcomes = []
        for candidate in active:
            level_config = config.level_config(candidate.level)
            if level_config is None or level_config.re_escalate_after_minutes is None:
                continue
            if candidate.level >= config.max_level:
                continue
            since = ensure_utc(candidate.last_escalated_at or candidate.created_at)
            if now - since < timedelta(minutes=level_config.re_escalate_after_minutes):
                continue

            try:
                outcome = await self._sweep_one(candidate.ticket_id, candidate.id, now, config)
            except Exception as e:
                logger.error(
                    "Escalation sweep failed for ticket",
                    extra={"ticket_id": candidate.ticket_id, "error": str(e)},
                    exc_info=True
                )
                outcome = EscalationOutcome(ticket_id=candidate.ticket_id, escalation_id=candidate.id, error=str(e))
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes

    async def _sweep_one(
        self,
        ticket_id: str,
        escalation_id: str,
        now: datetime,
        config: SLAConfig
    ) -> Optional[EscalationOutcome]:
        async with self._ticket_lock(ticket_id):
            async with self._uow_factory() as uow:
                escalation = await uow.escalations.get(escalation_id)
                # Re-check under the lock: another transition may have won
                if escalation is None or not escalation.is_active:
                    return None
                level_config = config.level_config(escalation.level)
                if level_config is None or level_config.re_escalate_after_minutes is None:
                    return None
                since = ensure_utc(escalation.last_escalated_at or escalation.created_at)
                if now - since < timedelta(minutes=level_config.re_escalate_after_minutes):
                    return None

                outcome = self._advance(escalation, "unresolved_timeout", None, now)
                await uow.escalations.update(escalation)
                await self._alerts.record_escalation(uow, escalation)
                ticket = await uow.tickets.get(ticket_id)
                context = escalation_event_context(escalation, ticket, config.audience_for_level(escalation.level))

            self._bus.publish(NotificationTrigger.ESCALATION, context)
        self._log_transition(outcome)
        return outcome

    async def history(self, ticket_id: str) -> List[Escalation]:
        async with self._uow_factory() as uow:
            return await uow.escalations.list_for_ticket(ticket_id)

    async def list_escalations(
        self,
        status: Optional[str] = None,
        ticket_id: Optional[str] = None,
        min_level: Optional[int] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Escalation], int]:
        async with self._uow_factory() as uow:
            return await uow.escalations.list(
                status=status, ticket_id=ticket_id, min_level=min_level, limit=limit, offset=offset
            )

    def _new_escalation(self, ticket_id: str, is_automatic: bool) -> Escalation:
        return Escalation(
            id=str(uuid.uuid4()),
            ticket_id=ticket_id,
            is_automatic=is_automatic,
            created_at=self._clock(),
        )

    def _advance(
        self,
        escalation: Escalation,
        reason: str,
        actor_id: Optional[str],
        at: Optional[datetime] = None
    ) -> EscalationOutcome:
        transition = escalation.advance(reason, at or self._clock(), actor_id)
        return EscalationOutcome(
            ticket_id=escalation.ticket_id,
            escalation_id=escalation.id,
            from_level=transition.from_level,
            to_level=transition.to_level,
            status=escalation.status,
            changed=True,
            reason=reason,
        )

    @staticmethod
    def _log_transition(outcome: EscalationOutcome) -> None:
        logger.info(
            "Escalation transition",
            extra={
                "ticket_id": outcome.ticket_id,
                "escalation_id": outcome.escalation_id,
                "from_level": outcome.from_level,
                "to_level": outcome.to_level,
                "status": outcome.status,
                "reason": outcome.reason,
            }
        )


# ========== SLA monitor ==========

class SLAMonitor:
    """
    Periodic SLA scan.

    For each open ticket:
    - response clock: creation until first response
    - resolution clock: since the last status change

    A breach raises a violation unless one of the same type is already
    open for the ticket. Each ticket is evaluated in its own unit of work
    so one failure does not abort the batch. Overlapping cycles are
    skipped.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        config_provider: ISLAConfigProvider,
        bus: EventBus,
        alert_service: AlertService,
        escalations: EscalationService,
        clock: Callable[[], datetime] = utcnow
    ):
        self._uow_factory = uow_factory
        self._config_provider = config_provider
        self._bus = bus
        self._alerts = alert_service
        self._escalations = escalations
        self._clock = clock
        self._lock = asyncio.Lock()
        self.last_scan_at: Optional[datetime] = None

    @property
    def is_scanning(self) -> bool:
        return self._lock.locked()

    async def run_cycle(self, now: Optional[datetime] = None) -> ScanReport:
        if self._lock.locked():
            logger.info("SLA scan already in progress, skipping cycle")
            return ScanReport(started_at=now or self._clock(), skipped=True)

        async with self._lock:
            now = now or self._clock()
            report = ScanReport(started_at=now)
            config = self._config_provider.config

            with log_latency(logger, "sla_scan"):
                try:
                    async with self._uow_factory() as uow:
                        tickets = await uow.tickets.list_open()
                except Exception as e:
                    logger.error("SLA scan could not load tickets", extra={"error": str(e)}, exc_info=True)
                    report.errors.append({"ticket_id": None, "error": str(e)})
                    tickets = []

                for ticket in tickets:
                    report.tickets_scanned += 1
                    try:
                        report.violations_created.extend(await self._scan_ticket(ticket, config, now))
                    except Exception as e:
                        logger.error(
                            "SLA scan failed for ticket",
                            extra={"ticket_id": ticket.id, "error": str(e)},
                            exc_info=True
                        )
                        report.errors.append({"ticket_id": ticket.id, "error": str(e)})

                try:
                    report.escalations = await self._escalations.sweep(now)
                except Exception as e:
                    logger.error("Escalation sweep failed", extra={"error": str(e)}, exc_info=True)
                    report.errors.append({"ticket_id": None, "error": f"escalation sweep: {e}"})

            report.finished_at = self._clock()
            self.last_scan_at = now

        logger.info(
            "SLA scan completed",
            extra={
                "tickets_scanned": report.tickets_scanned,
                "violations_created": len(report.violations_created),
                "escalations": len(report.escalations),
                "errors": len(report.errors),
            }
        )
        return report

    def evaluate_clocks(
        self,
        ticket: TicketSnapshot,
        config: SLAConfig,
        now: datetime
    ) -> List[Tuple[str, int, float]]:
        """Breached clocks as (violation_type, threshold, elapsed) tuples."""
        thresholds = config.thresholds_for(ticket.application_id, ticket.priority)
        breached = []

        if ticket.first_response_at is None:
            elapsed = SLACalculator.elapsed_minutes(ensure_utc(ticket.created_at), now)
            if SLACalculator.is_breached(elapsed, thresholds.response_minutes):
                breached.append((ViolationType.RESPONSE_TIME, thresholds.response_minutes, elapsed))

        elapsed = SLACalculator.elapsed_minutes(ensure_utc(ticket.resolution_clock_start), now)
        if SLACalculator.is_breached(elapsed, thresholds.resolution_minutes):
            breached.append((ViolationType.RESOLUTION_TIME, thresholds.resolution_minutes, elapsed))

        return breached

    async def _scan_ticket(self, ticket: TicketSnapshot, config: SLAConfig, now: datetime) -> List[str]:
        breached = self.evaluate_clocks(ticket, config, now)
        if not breached:
            return []

        created: List[SlaViolation] = []
        async with self._uow_factory() as uow:
            for violation_type, threshold, elapsed in breached:
                if await uow.violations.get_open(ticket.id, violation_type) is not None:
                    continue

                violation = SlaViolation(
                    id=str(uuid.uuid4()),
                    ticket_id=ticket.id,
                    violation_type=violation_type,
                    threshold_minutes=threshold,
                    elapsed_minutes=elapsed,
                    severity=SLACalculator.severity(elapsed, threshold, config.critical_overrun_ratio),
                    priority=ticket.priority,
                    application_id=ticket.application_id,
                    detected_at=now,
                )
                await uow.violations.add(violation)
                await self._alerts.record_violation(uow, violation)
                created.append(violation)

        for violation in created:
            logger.warning(
                "SLA violation detected",
                extra={
                    "ticket_id": ticket.id,
                    "violation_type": violation.violation_type,
                    "severity": violation.severity,
                    "threshold_minutes": violation.threshold_minutes,
                    "elapsed_minutes": round(violation.elapsed_minutes, 1),
                }
            )
        _publish_all(
            self._bus,
            [(NotificationTrigger.SLA_VIOLATION, violation_event_context(v, ticket)) for v in created]
        )
        return [violation.id for violation in created]


# ========== Violations ==========

class ViolationService:
    """Violation listing, acknowledgement and statistics."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        alert_service: AlertService,
        clock: Callable[[], datetime] = utcnow
    ):
        self._uow_factory = uow_factory
        self._alerts = alert_service
        self._clock = clock

    async def list_violations(
        self,
        ticket_id: Optional[str] = None,
        violation_type: Optional[str] = None,
        severity: Optional[str] = None,
        is_open: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[SlaViolation], int]:
        async with self._uow_factory() as uow:
            return await uow.violations.list(
                ticket_id=ticket_id, violation_type=violation_type, severity=severity,
                is_open=is_open, limit=limit, offset=offset
            )

    async def acknowledge(
        self,
        violation_id: str,
        actor_id: Optional[str] = None,
        comment: Optional[str] = None
    ) -> SlaViolation:
        """
        Raises:
            ResourceNotFoundException: Unknown violation
            InvalidTransitionException: Violation already cleared
        """
        async with self._uow_factory() as uow:
            violation = await uow.violations.get(violation_id)
            if violation is None:
                raise ResourceNotFoundException("SlaViolation", violation_id)
            violation.acknowledge(actor_id, comment, self._clock())
            await uow.violations.update(violation)
            await self._alerts.resolve_for_source(uow, violation.id)

        logger.info(
            "SLA violation acknowledged",
            extra={"violation_id": violation_id, "ticket_id": violation.ticket_id, "actor_id": actor_id}
        )
        return violation

    async def stats(self, days: int = 30) -> Dict[str, Any]:
        async with self._uow_factory() as uow:
            violations = await uow.violations.list_since(self._clock() - timedelta(days=days))

        by_type = Counter(v.violation_type for v in violations)
        by_severity = Counter(v.severity for v in violations)
        resolved = sum(1 for v in violations if not v.is_open)
        overrun_hours = [v.overrun_minutes / 60 for v in violations]

        return {
            "days": days,
            "total": len(violations),
            "by_type": {t: by_type.get(t, 0) for t in VALID_VIOLATION_TYPES},
            "by_severity": {s: by_severity.get(s, 0) for s in VALID_SEVERITIES if s != Severity.INFO},
            "resolved": resolved,
            "unresolved": len(violations) - resolved,
            "average_overrun_hours": round(sum(overrun_hours) / len(overrun_hours), 2) if overrun_hours else 0.0,
        }
