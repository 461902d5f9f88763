"""Tests for the SLA monitor scan cycle and ticket tracking."""

import asyncio
from datetime import timedelta

import pytest
import yaml

from supportwatch.sla.application import TicketSnapshotDTO

from tests.conftest import T0, ticket_payload


async def track(engine, **overrides):
    dto = TicketSnapshotDTO(**ticket_payload(**overrides))
    result = await engine.tracking.ingest([dto])
    assert result["failed"] == 0
    return dto


async def open_violations(engine, ticket_id=None):
    async with engine.uow_factory() as uow:
        violations, _ = await uow.violations.list(ticket_id=ticket_id, is_open=True)
    return violations


@pytest.mark.asyncio
async def test_response_breach_raised_once(engine):
    await track(engine, ticket_id="T-1", priority="high")

    report = await engine.run_scan(T0 + timedelta(hours=3))
    assert report.violations_created == []

    report = await engine.run_scan(T0 + timedelta(hours=4, minutes=30))
    assert len(report.violations_created) == 1

    report = await engine.run_scan(T0 + timedelta(hours=5))
    assert report.violations_created == []

    violations = await open_violations(engine, "T-1")
    assert len(violations) == 1
    violation = violations[0]
    assert violation.violation_type == "response_time"
    assert violation.threshold_minutes == 240
    assert violation.elapsed_minutes == pytest.approx(270)
    assert violation.severity == "warning"


@pytest.mark.asyncio
async def test_severity_becomes_critical_past_overrun_ratio(engine):
    await track(engine, ticket_id="U-1", priority="urgent")
    await track(engine, ticket_id="U-2", priority="urgent", created_at=(T0 + timedelta(minutes=10)).isoformat())

    await engine.run_scan(T0 + timedelta(minutes=30))

    by_ticket = {v.ticket_id: v for v in await open_violations(engine)}
    # U-1: 30 min against 15 -> overrun 15 >= 7.5
    assert by_ticket["U-1"].severity == "critical"
    # U-2: 20 min against 15 -> overrun 5 < 7.5
    assert by_ticket["U-2"].severity == "warning"


@pytest.mark.asyncio
async def test_first_response_stops_response_clock(engine, clock):
    await track(engine, ticket_id="T-1", priority="high")

    clock.advance(hours=1)
    engine.emit("response_added", {
        "ticket": {"id": "T-1"},
        "response": {"from_customer": False, "created_at": (T0 + timedelta(hours=1)).isoformat()},
    })
    await engine.drain()

    report = await engine.run_scan(T0 + timedelta(hours=6))
    assert report.violations_created == []

    async with engine.uow_factory() as uow:
        ticket = await uow.tickets.get("T-1")
    assert ticket.first_response_at == T0 + timedelta(hours=1)


@pytest.mark.asyncio
async def test_customer_reply_does_not_count_as_response(engine):
    await track(engine, ticket_id="T-1", priority="high")
    engine.emit("response_added", {"ticket": {"id": "T-1"}, "response": {"from_customer": True}})
    await engine.drain()

    report = await engine.run_scan(T0 + timedelta(hours=5))
    assert len(report.violations_created) == 1


@pytest.mark.asyncio
async def test_resolution_clock_and_application_override(engine, config_manager, tmp_path):
    policy = tmp_path / "sla_config.yaml"
    policy.write_text(yaml.safe_dump({
        "applications": {"billing": {"medium": {"response_minutes": 30, "resolution_minutes": 60}}},
    }))
    config_manager.load(policy)
    await track(
        engine,
        ticket_id="B-1",
        priority="medium",
        application_id="billing",
        first_response_at=(T0 + timedelta(minutes=5)).isoformat(),
    )
    await track(engine, ticket_id="M-1", priority="medium")

    report = await engine.run_scan(T0 + timedelta(minutes=90))

    violations = await open_violations(engine)
    assert [(v.ticket_id, v.violation_type) for v in violations] == [("B-1", "resolution_time")]
    assert report.tickets_scanned == 2


@pytest.mark.asyncio
async def test_acknowledged_violation_can_be_raised_again(engine):
    await track(engine, ticket_id="T-1", priority="high")
    await engine.run_scan(T0 + timedelta(hours=5))
    violation = (await open_violations(engine, "T-1"))[0]

    acknowledged = await engine.violations.acknowledge(violation.id, actor_id="alice", comment="on it")
    assert acknowledged.acknowledged_by == "alice"
    assert await open_violations(engine, "T-1") == []

    report = await engine.run_scan(T0 + timedelta(hours=6))
    assert len(report.violations_created) == 1


@pytest.mark.asyncio
async def test_one_failing_ticket_does_not_abort_scan(engine, monkeypatch):
    await track(engine, ticket_id="T-bad", priority="high")
    await track(engine, ticket_id="T-good", priority="high")

    original = engine.monitor.evaluate_clocks

    def flaky(ticket, config, now):
        if ticket.id == "T-bad":
            raise RuntimeError("corrupt snapshot")
        return original(ticket, config, now)

    monkeypatch.setattr(engine.monitor, "evaluate_clocks", flaky)
    report = await engine.run_scan(T0 + timedelta(hours=5))

    assert report.tickets_scanned == 2
    assert report.errors == [{"ticket_id": "T-bad", "error": "corrupt snapshot"}]
    assert [v.ticket_id for v in await open_violations(engine)] == ["T-good"]


@pytest.mark.asyncio
async def test_overlapping_scans_are_skipped(engine):
    await track(engine, ticket_id="T-1", priority="high")

    first, second = await asyncio.gather(
        engine.run_scan(T0 + timedelta(hours=5)),
        engine.run_scan(T0 + timedelta(hours=5)),
    )

    assert (first.skipped, second.skipped) == (False, True)
    assert len(first.violations_created) == 1
    assert len(await open_violations(engine)) == 1


@pytest.mark.asyncio
async def test_closed_tickets_are_not_scanned(engine):
    await track(engine, ticket_id="T-1", priority="high", status="resolved")
    report = await engine.run_scan(T0 + timedelta(days=3))
    assert report.tickets_scanned == 0


@pytest.mark.asyncio
async def test_resolving_ticket_clears_violations_and_alerts(engine):
    await track(engine, ticket_id="T-1", priority="high")
    await engine.run_scan(T0 + timedelta(hours=5))
    await engine.drain()

    engine.emit("ticket_resolved", {"ticket": {"id": "T-1"}})
    await engine.drain()

    assert await open_violations(engine, "T-1") == []
    async with engine.uow_factory() as uow:
        ticket = await uow.tickets.get("T-1")
        alerts, _ = await uow.alerts.list(ticket_id="T-1", is_resolved=False)
    assert ticket.status == "resolved"
    assert alerts == []


@pytest.mark.asyncio
async def test_violation_stats(engine):
    await track(engine, ticket_id="T-1", priority="high")
    await track(engine, ticket_id="U-1", priority="urgent")
    await engine.run_scan(T0 + timedelta(hours=5))

    stats = await engine.violations.stats(days=7)

    assert stats["total"] == 3
    assert stats["by_type"] == {"response_time": 2, "resolution_time": 1}
    assert stats["unresolved"] == 3
