"""
Channel Dispatcher
==================

Sends rendered notifications through the channel clients and records one
NotificationLog per send. Each notification is delivered in isolation: a
pending log is written first, sends run in parallel under a bounded
timeout, and each log is finalized in its own transaction.

No send is retried; a failed log is terminal.
"""

import asyncio
import time
import uuid
from typing import Callable, List, Mapping, Optional, Tuple

from supportwatch.alerts.application.services import AlertService
from supportwatch.config import NotificationChannel, NotificationStatus
from supportwatch.core.exceptions import ChannelTimeoutException, DispatchException
from supportwatch.notifications.application.interfaces import INotificationDispatcher
from supportwatch.notifications.domain import DispatchOutcome, NotificationLog, RenderedNotification
from supportwatch.notifications.infrastructure.channels import NotificationChannelClient, OutboundMessage
from supportwatch.shared.application.unit_of_work import UnitOfWorkFactory
from supportwatch.shared.infrastructure.logging import get_logger, log_latency
from supportwatch.shared.time import utcnow

logger = get_logger(__name__)


class ChannelDispatcher(INotificationDispatcher):
    """Fan-out over channel clients with per-send logs."""

    def __init__(
        self,
        channels: Mapping[str, NotificationChannelClient],
        uow_factory: UnitOfWorkFactory,
        alert_service: Optional[AlertService] = None,
        timeout_seconds: float = 10.0,
        clock: Callable = utcnow
    ):
        self._channels = dict(channels)
        self._uow_factory = uow_factory
        self._alerts = alert_service
        self._timeout_seconds = timeout_seconds
        self._clock = clock

    @property
    def channels(self) -> List[str]:
        return list(self._channels)

    async def send(
        self,
        channel: str,
        recipients: Tuple[str, ...],
        subject: str,
        body: str,
        priority: str
    ) -> DispatchOutcome:
        """Send an ad-hoc notification on one channel."""
        return await self.dispatch(RenderedNotification(
            channel=channel,
            recipients=tuple(recipients),
            subject=subject,
            body=body,
            priority=priority,
        ))

    async def dispatch(self, notification: RenderedNotification) -> DispatchOutcome:
        outcomes = await self.dispatch_many([notification])
        return outcomes[0]

    async def dispatch_many(self, notifications: List[RenderedNotification]) -> List[DispatchOutcome]:
        if not notifications:
            return []

        with log_latency(logger, "notification_dispatch", notifications=len(notifications)):
            logs = []
            for notification in notifications:
                logs.append(await self._open_log(notification))

            results = await asyncio.gather(*(self._deliver(n) for n in notifications))

            outcomes = []
            for notification, log, (error, latency_ms) in zip(notifications, logs, results):
                await self._close_log(log, error)
                outcomes.append(DispatchOutcome(
                    channel=notification.channel,
                    recipients=notification.recipients,
                    status=NotificationStatus.FAILED if error else NotificationStatus.SENT,
                    log_id=log.id,
                    error=error,
                    latency_ms=latency_ms,
                    ticket_id=notification.ticket_id,
                    rule_id=notification.rule_id,
                ))
        return outcomes

    async def _deliver(self, notification: RenderedNotification) -> Tuple[Optional[str], float]:
        """Run one send. Returns (error, latency_ms); error is None on success."""
        start = time.perf_counter()
        try:
            await self._send(notification)
            error = None
        except DispatchException as e:
            error = e.message
        except Exception as e:
            logger.exception("Unexpected channel error", extra={"channel": notification.channel})
            error = f"{type(e).__name__}: {e}"
        latency_ms = (time.perf_counter() - start) * 1000

        if error:
            logger.warning(
                "Notification dispatch failed",
                extra={
                    "channel": notification.channel,
                    "ticket_id": notification.ticket_id,
                    "rule_id": notification.rule_id,
                    "error": error,
                }
            )
        return error, latency_ms

    async def _send(self, notification: RenderedNotification) -> None:
        client = self._channels.get(notification.channel)
        if client is None:
            raise DispatchException(notification.channel, "channel not configured")

        needs_recipients = not (notification.channel == NotificationChannel.WEBHOOK and notification.webhook_url)
        if needs_recipients and not notification.recipients:
            raise DispatchException(notification.channel, "no recipients resolved")

        message = OutboundMessage(
            recipients=notification.recipients,
            subject=notification.subject,
            body=notification.body,
            priority=notification.priority,
            ticket_id=notification.ticket_id,
            webhook_url=notification.webhook_url,
            metadata=notification.metadata,
        )
        try:
            await asyncio.wait_for(client.send(message), timeout=self._timeout_seconds)
        except asyncio.TimeoutError as e:
            raise ChannelTimeoutException(notification.channel, self._timeout_seconds) from e

    async def _open_log(self, notification: RenderedNotification) -> NotificationLog:
        log = NotificationLog(
            id=str(uuid.uuid4()),
            channel=notification.channel,
            recipients=list(notification.recipients),
            subject=notification.subject,
            body=notification.body,
            priority=notification.priority,
            ticket_id=notification.ticket_id,
            rule_id=notification.rule_id,
            triggered_by=notification.triggered_by,
            metadata=dict(notification.metadata),
            created_at=self._clock(),
        )
        try:
            async with self._uow_factory() as uow:
                await uow.logs.add(log)
        except Exception:
            logger.exception("Failed to write notification log", extra={"log_id": log.id})
        return log

    async def _close_log(self, log: NotificationLog, error: Optional[str]) -> None:
        if error:
            log.mark_failed(error)
        else:
            log.mark_sent(self._clock())

        try:
            async with self._uow_factory() as uow:
                if await uow.logs.get(log.id) is None:
                    await uow.logs.add(log)
                else:
                    await uow.logs.update(log)
                if error and self._alerts is not None:
                    await self._alerts.record_dispatch_failure(
                        uow, log.channel, error, ticket_id=log.ticket_id, log_id=log.id
                    )
        except Exception:
            logger.exception("Failed to finalize notification log", extra={"log_id": log.id})
