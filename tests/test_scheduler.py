"""Tests for the delayed action scheduler."""

import asyncio
import threading
from datetime import timedelta

import pytest

from supportwatch.notifications.domain import RenderedNotification
from supportwatch.notifications.infrastructure import DelayedActionScheduler
from supportwatch.shared.time import utcnow


def make_notification(subject="Follow up on T-1"):
    return RenderedNotification(
        channel="email",
        recipients=("bob@example.com",),
        subject=subject,
        body="Still waiting",
        priority="medium",
        ticket_id="T-1",
    )


class Sink:
    def __init__(self):
        self.dispatched = []

    async def __call__(self, notification):
        self.dispatched.append(notification)


@pytest.mark.asyncio
async def test_fires_after_delay():
    sink = Sink()
    scheduler = DelayedActionScheduler(sink)

    scheduler.schedule(make_notification(), utcnow() + timedelta(milliseconds=50))
    assert scheduler.pending_count == 1

    await asyncio.sleep(0.2)
    await scheduler.join()

    assert len(sink.dispatched) == 1
    assert scheduler.pending_count == 0
    assert scheduler.fired_count == 1


@pytest.mark.asyncio
async def test_past_fire_time_fires_immediately():
    sink = Sink()
    scheduler = DelayedActionScheduler(sink)

    scheduler.schedule(make_notification(), utcnow() - timedelta(minutes=5))
    await asyncio.sleep(0.05)
    await scheduler.join()

    assert len(sink.dispatched) == 1


@pytest.mark.asyncio
async def test_cancel_before_fire_prevents_dispatch():
    sink = Sink()
    scheduler = DelayedActionScheduler(sink)

    handle = scheduler.schedule(make_notification(), utcnow() + timedelta(milliseconds=50))
    assert scheduler.cancel(handle) is True

    await asyncio.sleep(0.2)
    await scheduler.join()

    assert sink.dispatched == []
    assert scheduler.pending_count == 0
    assert scheduler.cancelled_count == 1


@pytest.mark.asyncio
async def test_cancel_after_fire_returns_false():
    sink = Sink()
    scheduler = DelayedActionScheduler(sink)

    handle = scheduler.schedule(make_notification(), utcnow())
    await asyncio.sleep(0.05)
    await scheduler.join()

    assert scheduler.cancel(handle) is False
    assert len(sink.dispatched) == 1


@pytest.mark.asyncio
async def test_unknown_handle_cannot_be_cancelled():
    scheduler = DelayedActionScheduler(Sink())
    assert scheduler.cancel("no-such-handle") is False


@pytest.mark.asyncio
async def test_pending_is_ordered_by_fire_time():
    scheduler = DelayedActionScheduler(Sink())
    now = utcnow()
    late = scheduler.schedule(make_notification("late"), now + timedelta(minutes=30))
    early = scheduler.schedule(make_notification("early"), now + timedelta(minutes=5))

    assert [entry.handle for entry in scheduler.pending()] == [early, late]
    assert scheduler.stop() == 2
    assert scheduler.pending_count == 0


@pytest.mark.asyncio
async def test_dispatch_error_is_contained():
    async def explode(notification):
        raise RuntimeError("dispatcher down")

    scheduler = DelayedActionScheduler(explode)
    scheduler.schedule(make_notification(), utcnow())
    await asyncio.sleep(0.05)
    await scheduler.join()

    assert scheduler.fired_count == 1


@pytest.mark.asyncio
async def test_fire_and_cancel_race_has_exactly_one_outcome():
    """Cancel from other threads while timers fire on the loop."""
    sink = Sink()
    scheduler = DelayedActionScheduler(sink)
    scheduler.bind(asyncio.get_running_loop())

    now = utcnow()
    handles = [
        scheduler.schedule(make_notification(f"n{i}"), now + timedelta(milliseconds=i % 20))
        for i in range(200)
    ]

    cancelled = []
    lock = threading.Lock()

    def cancel_all(subset):
        for handle in subset:
            if scheduler.cancel(handle):
                with lock:
                    cancelled.append(handle)

    threads = [threading.Thread(target=cancel_all, args=(handles[i::4],)) for i in range(4)]
    for thread in threads:
        thread.start()
    while any(thread.is_alive() for thread in threads):
        await asyncio.sleep(0.001)

    await asyncio.sleep(0.1)
    await scheduler.join()

    dispatched = {n.subject for n in sink.dispatched}
    cancelled_subjects = {f"n{handles.index(h)}" for h in cancelled}

    assert len(sink.dispatched) == len(dispatched)
    assert dispatched.isdisjoint(cancelled_subjects)
    assert len(dispatched) + len(cancelled_subjects) == 200
    assert scheduler.fired_count + scheduler.cancelled_count == 200
