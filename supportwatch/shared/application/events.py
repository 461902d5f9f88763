"""
Engine Events
=============

The single internal message type and the asyncio queues that carry it.

CRUD callers only publish; worker tasks drain the queues and hand each
event to the subscribed handlers (ticket tracking, escalation, notification
rules) in subscription order. A failing handler is logged and the next
handler still runs.
"""

import asyncio
import itertools
import threading
import uuid
import zlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from supportwatch.shared.infrastructure.logging import (
    get_correlation_id, get_logger, set_correlation_id
)
from supportwatch.shared.time import utcnow

logger = get_logger(__name__)

EventHandler = Callable[["EngineEvent"], Awaitable[Any]]

ALL_TRIGGERS = "*"


@dataclass(frozen=True)
class EngineEvent:
    """A domain event: a trigger plus its context."""
    trigger: str
    context: Dict[str, Any]
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=utcnow)
    triggered_by: Optional[str] = None
    correlation_id: Optional[str] = None


class EventBus:
    """
    In-process event queues with a fixed pool of worker tasks.

    Each worker owns one queue. Events that reference a ticket are routed
    by ticket id, so all events of one ticket are handled by the same
    worker in publish order; events without a ticket are spread round-robin.

    publish() never blocks and never raises into the caller; events
    published before start() are buffered and processed once workers run.
    """

    def __init__(self, workers: int = 2, clock: Callable[[], datetime] = utcnow):
        self._worker_count = max(1, workers)
        self._clock = clock
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._queues: List[asyncio.Queue] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: List[asyncio.Task] = []
        self._backlog: List[EngineEvent] = []
        self._backlog_lock = threading.Lock()
        self._round_robin = itertools.count()
        self._in_flight = 0
        self.processed_count = 0

    def subscribe(self, trigger: str, handler: EventHandler) -> None:
        """Register a handler for one trigger, or "*" for every trigger."""
        self._handlers.setdefault(trigger, []).append(handler)

    def publish(
        self,
        trigger: str,
        context: Dict[str, Any],
        triggered_by: Optional[str] = None
    ) -> EngineEvent:
        event = EngineEvent(
            trigger=trigger,
            context=dict(context or {}),
            occurred_at=self._clock(),
            triggered_by=triggered_by,
            correlation_id=get_correlation_id(),
        )

        if not self._queues or self._loop is None:
            with self._backlog_lock:
                self._backlog.append(event)
            return event

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._enqueue(event)
        else:
            self._loop.call_soon_threadsafe(self._enqueue, event)

        logger.debug(
            "Event published",
            extra={"trigger": trigger, "event_id": event.event_id}
        )
        return event

    def shard_for(self, event: EngineEvent) -> int:
        """Index of the worker queue that handles the event."""
        ticket_id = event_ticket_id(event.context)
        if ticket_id is None:
            return next(self._round_robin) % self._worker_count
        return zlib.crc32(ticket_id.encode("utf-8")) % self._worker_count

    def _enqueue(self, event: EngineEvent) -> None:
        self._in_flight += 1
        self._queues[self.shard_for(event)].put_nowait(event)

    async def start(self) -> None:
        if self._tasks:
            return

        self._loop = asyncio.get_running_loop()
        self._queues = [asyncio.Queue() for _ in range(self._worker_count)]

        with self._backlog_lock:
            backlog, self._backlog = self._backlog, []
        for event in backlog:
            self._enqueue(event)

        self._tasks = [
            asyncio.create_task(self._worker(queue), name=f"event-worker-{index}")
            for index, queue in enumerate(self._queues)
        ]
        logger.info("Event bus started", extra={"workers": self._worker_count})

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        # Handlers may publish follow-up events onto other queues
        while self._queues and self._in_flight:
            await asyncio.gather(*(queue.join() for queue in self._queues))

    async def stop(self) -> None:
        if not self._tasks:
            return

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._queues = []
        self._in_flight = 0
        self._loop = None
        logger.info("Event bus stopped", extra={"processed": self.processed_count})

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    async def dispatch(self, event: EngineEvent) -> None:
        """Run every handler subscribed to the event's trigger."""
        handlers = self._handlers.get(event.trigger, []) + self._handlers.get(ALL_TRIGGERS, [])
        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "Event handler failed",
                    extra={
                        "trigger": event.trigger,
                        "event_id": event.event_id,
                        "handler": getattr(handler, "__qualname__", repr(handler)),
                        "error": str(e),
                    },
                    exc_info=True,
                )

    async def _worker(self, queue: asyncio.Queue) -> None:
        while True:
            event = await queue.get()
            try:
                set_correlation_id(event.correlation_id or event.event_id)
                await self.dispatch(event)
                self.processed_count += 1
            finally:
                self._in_flight -= 1
                queue.task_done()


def event_ticket_id(context: Mapping[str, Any]) -> Optional[str]:
    """The ticket an event refers to, from `ticket.id` or `ticketId`."""
    ticket = context.get("ticket")
    if isinstance(ticket, Mapping) and ticket.get("id"):
        return str(ticket["id"])
    if context.get("ticketId"):
        return str(context["ticketId"])
    return None
