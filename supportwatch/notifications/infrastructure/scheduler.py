"""
Delayed Action Scheduler
========================

In-memory registry of rendered notifications waiting for their fire time.

The registry is guarded by a threading lock so that schedule and cancel
may be called from any thread. Firing and cancelling both remove the
entry under the lock; whichever removes it first wins, so a handle is
dispatched at most once and `cancel` returns True only if nothing was
sent. Pending entries are lost on restart.
"""

import asyncio
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from supportwatch.notifications.application.interfaces import IDelayedScheduler
from supportwatch.notifications.domain import RenderedNotification
from supportwatch.shared.infrastructure.logging import get_logger
from supportwatch.shared.time import ensure_utc, utcnow

logger = get_logger(__name__)

DispatchCallback = Callable[[RenderedNotification], Awaitable[Any]]


@dataclass
class PendingAction:
    """A scheduled notification and its timer."""
    handle: str
    notification: RenderedNotification
    fire_at: datetime
    timer: Optional[asyncio.TimerHandle] = None


class DelayedActionScheduler(IDelayedScheduler):
    """Handle -> pending action registry firing through a dispatch callback."""

    def __init__(self, dispatch_callback: DispatchCallback, clock: Callable[[], datetime] = utcnow):
        self._dispatch = dispatch_callback
        self._clock = clock
        self._pending: Dict[str, PendingAction] = {}
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._in_flight: Set[asyncio.Task] = set()
        self.fired_count = 0
        self.cancelled_count = 0

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """Event loop used when scheduling from outside a running loop."""
        self._loop = loop

    def schedule(self, notification: RenderedNotification, fire_at: datetime) -> str:
        handle = str(uuid.uuid4())
        fire_at = ensure_utc(fire_at)
        delay = max(0.0, (fire_at - self._clock()).total_seconds())
        entry = PendingAction(handle=handle, notification=notification, fire_at=fire_at)

        with self._lock:
            self._pending[handle] = entry

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            if self._loop is None:
                self._loop = loop
            entry.timer = loop.call_later(delay, self._fire, handle)
        elif self._loop is not None:
            self._loop.call_soon_threadsafe(self._arm, handle, delay)
        else:
            with self._lock:
                self._pending.pop(handle, None)
            raise RuntimeError("DelayedActionScheduler has no event loop to schedule on")

        logger.info(
            "Delayed notification scheduled",
            extra={
                "handle": handle,
                "channel": notification.channel,
                "fire_at": fire_at.isoformat(),
                "ticket_id": notification.ticket_id,
            }
        )
        return handle

    def cancel(self, handle: str) -> bool:
        entry = self._claim(handle, cancelled=True)
        if entry is None:
            return False

        if entry.timer is not None:
            self._cancel_timer(entry.timer)
        logger.info("Delayed notification cancelled", extra={"handle": handle})
        return True

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def pending(self) -> List[PendingAction]:
        with self._lock:
            return sorted(self._pending.values(), key=lambda entry: entry.fire_at)

    async def join(self) -> None:
        """Wait for dispatches that already fired."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    def stop(self) -> int:
        """Drop every pending action; returns how many were dropped."""
        with self._lock:
            entries = list(self._pending.values())
            self._pending.clear()
        for entry in entries:
            if entry.timer is not None:
                self._cancel_timer(entry.timer)
        if entries:
            logger.warning("Dropped pending delayed notifications", extra={"count": len(entries)})
        return len(entries)

    def _arm(self, handle: str, delay: float) -> None:
        with self._lock:
            entry = self._pending.get(handle)
            if entry is None:
                return
            entry.timer = asyncio.get_running_loop().call_later(delay, self._fire, handle)

    def _claim(self, handle: str, cancelled: bool = False) -> Optional[PendingAction]:
        with self._lock:
            entry = self._pending.pop(handle, None)
            if entry is not None:
                if cancelled:
                    self.cancelled_count += 1
                else:
                    self.fired_count += 1
            return entry

    def _fire(self, handle: str) -> None:
        entry = self._claim(handle)
        if entry is None:
            return

        task = asyncio.get_running_loop().create_task(self._run(entry))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _run(self, entry: PendingAction) -> None:
        try:
            await self._dispatch(entry.notification)
            logger.info("Delayed notification fired", extra={"handle": entry.handle})
        except Exception:
            logger.exception("Delayed notification dispatch failed", extra={"handle": entry.handle})

    def _cancel_timer(self, timer: asyncio.TimerHandle) -> None:
        loop = self._loop
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None or loop is None:
            timer.cancel()
        elif not loop.is_closed():
            loop.call_soon_threadsafe(timer.cancel)
