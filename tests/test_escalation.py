"""Tests for the escalation state machine."""

import asyncio
from datetime import timedelta

import pytest
import yaml

from supportwatch.core.exceptions import InvalidTransitionException, ResourceNotFoundException
from supportwatch.notifications.application.dto import ActionDTO, RuleCreateRequest
from supportwatch.sla.application import TicketSnapshotDTO

from tests.conftest import T0, ticket_payload


class EventRecorder:
    def __init__(self):
        self.events = []

    async def __call__(self, event):
        self.events.append(event)


async def track(engine, **overrides):
    await engine.tracking.ingest([TicketSnapshotDTO(**ticket_payload(**overrides))])


async def active_escalation(engine, ticket_id):
    async with engine.uow_factory() as uow:
        return await uow.escalations.get_active(ticket_id)


@pytest.fixture
def escalation_events(engine):
    recorder = EventRecorder()
    engine.bus.subscribe("escalation", recorder)
    return recorder


@pytest.mark.asyncio
async def test_critical_violation_starts_escalation_and_notifies_level_audience(engine, channels, escalation_events):
    await engine.rules.create_rule(RuleCreateRequest(
        name="Escalation to leads",
        trigger="escalation",
        conditions={"field": "status", "value": "active"},
        actions=[ActionDTO(
            channel="email",
            recipients=["$audience"],
            subject="[{{ticketId}}] escalated to level {{level}}",
            body="Reason: {{reason}}",
        )],
    ))
    await track(engine, ticket_id="U-1", priority="urgent")

    await engine.run_scan(T0 + timedelta(minutes=30))
    await engine.drain()

    escalation = await active_escalation(engine, "U-1")
    assert escalation.level == 1
    assert escalation.is_automatic
    assert escalation.reason == "response_time_violation"

    assert len(escalation_events.events) == 1
    assert escalation_events.events[0].context["audience"] == ["support-leads"]

    sent = channels["email"].sent
    assert [m.recipients for m in sent] == [("bob@example.com",)]
    assert sent[0].subject == "[U-1] escalated to level 1"
    assert sent[0].priority == "high"

    async with engine.uow_factory() as uow:
        alerts, _ = await uow.alerts.list(kind="escalation", is_resolved=False)
    assert len(alerts) == 1


@pytest.mark.asyncio
async def test_warning_violation_does_not_escalate(engine):
    await track(engine, ticket_id="T-1", priority="high")
    await engine.run_scan(T0 + timedelta(hours=4, minutes=30))
    await engine.drain()

    assert await active_escalation(engine, "T-1") is None


@pytest.mark.asyncio
async def test_repeat_violation_advances_active_escalation(engine, config_manager, tmp_path):
    policy = tmp_path / "sla_config.yaml"
    policy.write_text(yaml.safe_dump({
        "escalation_levels": [{"level": 1}, {"level": 2}, {"level": 3}],
    }))
    config_manager.load(policy)
    await track(engine, ticket_id="U-1", priority="urgent")
    await engine.run_scan(T0 + timedelta(minutes=30))
    await engine.drain()

    # Resolution clock (240 min) breaches critically at 360 min
    await engine.run_scan(T0 + timedelta(hours=6))
    await engine.drain()

    escalation = await active_escalation(engine, "U-1")
    assert escalation.level == 2
    assert [t.to_level for t in escalation.transitions] == [1, 2]
    assert escalation.reason == "repeat_resolution_time_violation"


@pytest.mark.asyncio
async def test_manual_escalation_is_monotonic_and_capped(engine, escalation_events):
    await track(engine, ticket_id="T-1", priority="low")

    levels = []
    for _ in range(3):
        outcome = await engine.escalations.escalate("T-1", reason="customer called", actor_id="alice")
        levels.append(outcome.to_level)
    assert levels == [1, 2, 3]

    with pytest.raises(InvalidTransitionException):
        await engine.escalations.escalate("T-1", actor_id="alice")

    escalation = await active_escalation(engine, "T-1")
    assert escalation.level == 3
    assert not escalation.is_automatic
    assert [t.triggered_by for t in escalation.transitions] == ["alice"] * 3

    await engine.drain()
    assert [e.context["level"] for e in escalation_events.events] == [1, 2, 3]
    assert escalation_events.events[-1].context["audience"] == ["support-directors"]


@pytest.mark.asyncio
async def test_violation_at_max_level_is_a_noop(engine):
    await track(engine, ticket_id="U-1", priority="urgent")
    for _ in range(3):
        await engine.escalations.escalate("U-1")

    await engine.run_scan(T0 + timedelta(minutes=30))
    await engine.drain()

    escalation = await active_escalation(engine, "U-1")
    assert escalation.level == 3
    assert len(escalation.transitions) == 3


@pytest.mark.asyncio
async def test_concurrent_escalations_are_serialized(engine):
    await track(engine, ticket_id="T-1", priority="low")

    outcomes = await asyncio.gather(
        engine.escalations.escalate("T-1"),
        engine.escalations.escalate("T-1"),
    )

    assert sorted(o.to_level for o in outcomes) == [1, 2]
    assert len({o.escalation_id for o in outcomes}) == 1
    assert engine.escalations._locks == {}


@pytest.mark.asyncio
async def test_escalation_queued_behind_resolution_starts_fresh(engine):
    await track(engine, ticket_id="T-1", priority="low")

    first, resolved, fresh = await asyncio.gather(
        engine.escalations.escalate("T-1"),
        engine.escalations.resolve("T-1"),
        engine.escalations.escalate("T-1"),
    )

    assert first.to_level == 1
    assert resolved.changed and resolved.escalation_id == first.escalation_id
    assert fresh.to_level == 1
    assert fresh.escalation_id != first.escalation_id

    async with engine.uow_factory() as uow:
        history = await uow.escalations.list_for_ticket("T-1")
    assert sorted(e.status for e in history) == ["active", "resolved"]
    assert engine.escalations._locks == {}


@pytest.mark.asyncio
async def test_ticket_locks_are_released_after_use(engine):
    ticket_ids = [f"T-{n}" for n in range(30)]
    for ticket_id in ticket_ids:
        await track(engine, ticket_id=ticket_id, priority="high")

    # Warning-level response breaches: violations without escalation
    await engine.run_scan(T0 + timedelta(hours=4, minutes=30))
    await engine.drain()
    await engine.escalations.escalate("T-0", actor_id="alice")

    for ticket_id in ticket_ids:
        engine.emit("status_changed", {"ticket": {"id": ticket_id}, "newStatus": "resolved"})
    await engine.drain()

    assert await active_escalation(engine, "T-0") is None
    assert engine.escalations._locks == {}


@pytest.mark.asyncio
async def test_escalate_unknown_or_closed_ticket(engine):
    with pytest.raises(ResourceNotFoundException):
        await engine.escalations.escalate("missing")

    await track(engine, ticket_id="T-9", status="closed")
    with pytest.raises(InvalidTransitionException):
        await engine.escalations.escalate("T-9")


@pytest.mark.asyncio
async def test_resolution_is_terminal_and_published_once(engine, escalation_events):
    await track(engine, ticket_id="T-1", priority="low")
    first = await engine.escalations.escalate("T-1")

    engine.emit("status_changed", {"ticket": {"id": "T-1"}, "newStatus": "closed"})
    await engine.drain()

    async with engine.uow_factory() as uow:
        history = await uow.escalations.list_for_ticket("T-1")
    assert [e.status for e in history] == ["resolved"]
    assert history[0].transitions[-1].status == "resolved"

    again = await engine.escalations.resolve("T-1")
    assert again.changed is False
    assert again.reason == "no_active_escalation"

    statuses = [e.context["status"] for e in escalation_events.events]
    assert statuses == ["active", "resolved"]

    # A reopened ticket starts a fresh escalation
    engine.emit("status_changed", {"ticket": {"id": "T-1"}, "newStatus": "open"})
    await engine.drain()
    reopened = await engine.escalations.escalate("T-1")
    assert reopened.to_level == 1
    assert reopened.escalation_id != first.escalation_id


@pytest.mark.asyncio
async def test_sweep_re_escalates_after_level_interval(engine, clock):
    await track(engine, ticket_id="T-1", priority="low")
    await engine.escalations.escalate("T-1")

    report = await engine.run_scan(T0 + timedelta(minutes=59))
    assert report.escalations == []

    report = await engine.run_scan(T0 + timedelta(minutes=61))
    assert [(o.from_level, o.to_level, o.reason) for o in report.escalations] == [(1, 2, "unresolved_timeout")]

    # Level 2 waits 120 minutes from its own transition
    report = await engine.run_scan(T0 + timedelta(minutes=150))
    assert report.escalations == []
    report = await engine.run_scan(T0 + timedelta(minutes=182))
    assert [o.to_level for o in report.escalations] == [3]

    # Top level has no re-escalation interval
    report = await engine.run_scan(T0 + timedelta(hours=10))
    assert report.escalations == []
    assert (await active_escalation(engine, "T-1")).level == 3
