"""
Alert Application Services
==========================

- AlertService: writes the alert projection inside the caller's unit of work
- AlertDashboardService: read-only rollups over alerts, violations,
  escalations, notification logs and tracked tickets
"""

import uuid
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from supportwatch.alerts.domain import Alert
from supportwatch.config import (
    AlertKind, EscalationStatus, NotificationStatus, Priority, Severity,
    VALID_CHANNELS, VALID_NOTIFICATION_STATUSES, VALID_VIOLATION_TYPES
)
from supportwatch.core.exceptions import ResourceNotFoundException
from supportwatch.shared.application.unit_of_work import UnitOfWork, UnitOfWorkFactory
from supportwatch.shared.infrastructure.logging import get_logger
from supportwatch.shared.time import ensure_utc, utcnow

logger = get_logger(__name__)


class AlertService:
    """Creates and resolves alerts as part of a larger transaction."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock

    async def record_violation(self, uow: UnitOfWork, violation: Any) -> Alert:
        alert = Alert(
            id=str(uuid.uuid4()),
            kind=AlertKind.SLA_VIOLATION,
            severity=violation.severity,
            title=f"SLA {violation.violation_type.replace('_', ' ')} breached",
            message=(
                f"Ticket {violation.ticket_id} exceeded its {violation.threshold_minutes} minute "
                f"limit ({violation.elapsed_minutes:.0f} minutes elapsed)"
            ),
            ticket_id=violation.ticket_id,
            source_id=violation.id,
            metadata=violation.to_context(),
            created_at=self._clock(),
        )
        return await uow.alerts.add(alert)

    async def record_escalation(self, uow: UnitOfWork, escalation: Any) -> Alert:
        """One open alert per escalation; a new level replaces the previous alert."""
        await self.resolve_for_source(uow, escalation.id)
        alert = Alert(
            id=str(uuid.uuid4()),
            kind=AlertKind.ESCALATION,
            severity=Severity.CRITICAL if escalation.level >= 2 else Severity.WARNING,
            title=f"Ticket escalated to level {escalation.level}",
            message=escalation.reason,
            ticket_id=escalation.ticket_id,
            source_id=escalation.id,
            metadata=escalation.to_context(),
            created_at=self._clock(),
        )
        return await uow.alerts.add(alert)

    async def record_dispatch_failure(
        self,
        uow: UnitOfWork,
        channel: str,
        error: Optional[str],
        ticket_id: Optional[str] = None,
        log_id: Optional[str] = None
    ) -> Alert:
        alert = Alert(
            id=str(uuid.uuid4()),
            kind=AlertKind.SYSTEM_ERROR,
            severity=Severity.WARNING,
            title=f"Notification delivery failed on {channel}",
            message=error or "",
            ticket_id=ticket_id,
            source_id=log_id,
            metadata={"channel": channel},
            created_at=self._clock(),
        )
        return await uow.alerts.add(alert)

    async def resolve_for_source(self, uow: UnitOfWork, source_id: str) -> int:
        return await self._resolve(uow, await uow.alerts.list_open(source_id=source_id))

    async def resolve_for_ticket(self, uow: UnitOfWork, ticket_id: str) -> int:
        return await self._resolve(uow, await uow.alerts.list_open(ticket_id=ticket_id))

    async def _resolve(self, uow: UnitOfWork, alerts: List[Alert]) -> int:
        now = self._clock()
        for alert in alerts:
            alert.resolve(now)
            await uow.alerts.update(alert)
        return len(alerts)


def _rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


class AlertDashboardService:
    """
    Read-only dashboard aggregations.

    Windows are computed in Python over the rows inside the window so the
    same code runs against PostgreSQL and SQLite.
    """

    def __init__(self, uow_factory: UnitOfWorkFactory, clock: Callable[[], datetime] = utcnow):
        self._uow_factory = uow_factory
        self._clock = clock

    async def list_alerts(
        self,
        kind: Optional[str] = None,
        severity: Optional[str] = None,
        is_resolved: Optional[bool] = None,
        ticket_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Alert], int]:
        async with self._uow_factory() as uow:
            return await uow.alerts.list(
                kind=kind, severity=severity, is_resolved=is_resolved,
                ticket_id=ticket_id, limit=limit, offset=offset
            )

    async def resolve_alert(self, alert_id: str) -> Alert:
        async with self._uow_factory() as uow:
            alert = await uow.alerts.get(alert_id)
            if alert is None:
                raise ResourceNotFoundException("Alert", alert_id)
            alert.resolve(self._clock())
            await uow.alerts.update(alert)
        return alert

    async def overview(self) -> Dict[str, Any]:
        now = self._clock()
        day_ago = now - timedelta(hours=24)
        week_ago = now - timedelta(days=7)

        async with self._uow_factory() as uow:
            _, active_violations = await uow.violations.list(is_open=True, limit=1)
            by_severity = {}
            for severity in (Severity.WARNING, Severity.CRITICAL):
                _, by_severity[severity] = await uow.violations.list(
                    is_open=True, severity=severity, limit=1
                )
            violations_24h = await uow.violations.list_since(day_ago)
            escalations_week = await uow.escalations.list_since(week_ago)
            _, active_escalations = await uow.escalations.list(status=EscalationStatus.ACTIVE, limit=1)
            open_tickets = await uow.tickets.list_open()
            _, open_alerts = await uow.alerts.list(is_resolved=False, limit=1)

        escalations_24h = [e for e in escalations_week if ensure_utc(e.created_at) >= day_ago]
        automatic = sum(1 for e in escalations_week if e.is_automatic)

        return {
            "active_violations": active_violations,
            "open_violations_by_severity": by_severity,
            "violations_last_24h": len(violations_24h),
            "escalations_last_24h": len(escalations_24h),
            "active_escalations": active_escalations,
            "automatic_escalation_rate_7d": _rate(automatic, len(escalations_week)),
            "high_priority_open_tickets": sum(
                1 for t in open_tickets if t.priority in (Priority.URGENT, Priority.HIGH)
            ),
            "open_alerts": open_alerts,
            "generated_at": now,
        }

    async def violation_trends(self, days: int = 7) -> Dict[str, Any]:
        """Violations per day and type, oldest day first, zero-filled."""
        now = self._clock()
        start = (now - timedelta(days=days - 1)).replace(hour=0, minute=0, second=0, microsecond=0)

        async with self._uow_factory() as uow:
            violations = await uow.violations.list_since(start)

        buckets: Dict[str, Counter] = defaultdict(Counter)
        for violation in violations:
            day = ensure_utc(violation.detected_at).date().isoformat()
            buckets[day][violation.violation_type] += 1

        series = []
        for offset in range(days):
            day = (start + timedelta(days=offset)).date().isoformat()
            counts = buckets.get(day, Counter())
            entry: Dict[str, Any] = {"date": day}
            for violation_type in VALID_VIOLATION_TYPES:
                entry[violation_type] = counts.get(violation_type, 0)
            entry["total"] = sum(counts.values())
            series.append(entry)

        return {"days": days, "series": series}

    async def escalation_analysis(self, days: int = 30) -> Dict[str, Any]:
        now = self._clock()
        async with self._uow_factory() as uow:
            escalations = await uow.escalations.list_since(now - timedelta(days=days))

        by_level = Counter(str(e.level) for e in escalations)
        by_reason = Counter(e.reason or "unspecified" for e in escalations)
        hourly = Counter(ensure_utc(e.created_at).hour for e in escalations)
        automatic = sum(1 for e in escalations if e.is_automatic)
        resolved = sum(1 for e in escalations if e.status == EscalationStatus.RESOLVED)

        return {
            "days": days,
            "total": len(escalations),
            "by_level": dict(sorted(by_level.items(), key=lambda item: int(item[0]))),
            "by_reason": dict(by_reason.most_common()),
            "automatic": automatic,
            "manual": len(escalations) - automatic,
            "resolved": resolved,
            "average_level": round(sum(e.level for e in escalations) / len(escalations), 2) if escalations else 0.0,
            "hourly_distribution": {hour: hourly.get(hour, 0) for hour in range(24)},
        }

    async def notification_effectiveness(self, days: int = 7) -> Dict[str, Any]:
        now = self._clock()
        async with self._uow_factory() as uow:
            rows = await uow.logs.count_by_channel_and_status(since=now - timedelta(days=days))

        by_channel: Dict[str, Dict[str, Any]] = {}
        by_status: Counter = Counter()
        for channel, status, count in rows:
            entry = by_channel.setdefault(
                channel, {status_name: 0 for status_name in VALID_NOTIFICATION_STATUSES}
            )
            entry[status] = entry.get(status, 0) + count
            by_status[status] += count

        for channel in VALID_CHANNELS:
            by_channel.setdefault(channel, {status_name: 0 for status_name in VALID_NOTIFICATION_STATUSES})

        for entry in by_channel.values():
            counts = [entry[status_name] for status_name in VALID_NOTIFICATION_STATUSES]
            entry["total"] = sum(counts)
            entry["success_rate"] = _rate(
                entry[NotificationStatus.SENT],
                entry[NotificationStatus.SENT] + entry[NotificationStatus.FAILED]
            )

        sent = by_status.get(NotificationStatus.SENT, 0)
        failed = by_status.get(NotificationStatus.FAILED, 0)
        return {
            "days": days,
            "total": sum(by_status.values()),
            "by_status": {status_name: by_status.get(status_name, 0) for status_name in VALID_NOTIFICATION_STATUSES},
            "by_channel": by_channel,
            "success_rate": _rate(sent, sent + failed),
        }

    async def realtime_alerts(self, minutes: int = 30) -> List[Alert]:
        async with self._uow_factory() as uow:
            return await uow.alerts.list_since(self._clock() - timedelta(minutes=minutes))
