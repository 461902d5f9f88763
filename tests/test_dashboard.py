"""Tests for the alert dashboard rollups."""

import pytest
import pytest_asyncio

from supportwatch.core.exceptions import ResourceNotFoundException
from supportwatch.sla.application import TicketSnapshotDTO

from tests.conftest import ticket_payload


@pytest_asyncio.fixture
async def breached(engine, clock):
    """Open tickets five hours past creation, scanned once."""
    await engine.tracking.ingest([
        TicketSnapshotDTO(**ticket_payload("T-1", priority="high")),
        TicketSnapshotDTO(**ticket_payload("U-1", priority="urgent")),
        TicketSnapshotDTO(**ticket_payload("L-1", priority="low")),
    ])
    clock.advance(hours=5)
    await engine.run_scan()
    await engine.drain()
    return engine


@pytest.mark.asyncio
async def test_overview(breached):
    overview = await breached.dashboard.overview()

    assert overview["active_violations"] == 3
    assert overview["open_violations_by_severity"] == {"warning": 2, "critical": 1}
    assert overview["violations_last_24h"] == 3
    assert overview["escalations_last_24h"] == 1
    assert overview["active_escalations"] == 1
    assert overview["automatic_escalation_rate_7d"] == 100.0
    assert overview["high_priority_open_tickets"] == 2
    # Three violation alerts plus one escalation alert
    assert overview["open_alerts"] == 4


@pytest.mark.asyncio
async def test_violation_trends_are_zero_filled(breached):
    trends = await breached.dashboard.violation_trends(days=7)

    series = trends["series"]
    assert len(series) == 7
    assert series[-1] == {"date": "2024-03-04", "response_time": 2, "resolution_time": 1, "total": 3}
    assert all(point["total"] == 0 for point in series[:-1])
    assert series[0]["date"] == "2024-02-27"


@pytest.mark.asyncio
async def test_escalation_analysis(breached):
    analysis = await breached.dashboard.escalation_analysis(days=30)

    assert analysis["total"] == 1
    assert analysis["by_level"] == {"1": 1}
    assert analysis["by_reason"] == {"response_time_violation": 1}
    assert analysis["automatic"] == 1
    assert analysis["manual"] == 0
    assert analysis["hourly_distribution"][14] == 1
    assert sum(analysis["hourly_distribution"].values()) == 1


@pytest.mark.asyncio
async def test_notification_effectiveness(engine, channels):
    channels["slack"].fail_with = "rejected"
    await engine.dispatcher.send("email", ("bob@example.com",), "a", "b", "medium")
    await engine.dispatcher.send("email", ("carol@example.com",), "a", "b", "medium")
    await engine.dispatcher.send("slack", ("#support",), "a", "b", "medium")

    stats = await engine.dashboard.notification_effectiveness(days=7)

    assert stats["total"] == 3
    assert stats["by_status"] == {"pending": 0, "sent": 2, "failed": 1}
    assert stats["by_channel"]["email"]["success_rate"] == 100.0
    assert stats["by_channel"]["slack"]["success_rate"] == 0.0
    assert stats["by_channel"]["teams"]["total"] == 0
    assert stats["success_rate"] == 66.7


@pytest.mark.asyncio
async def test_realtime_alerts_and_resolution(breached):
    alerts = await breached.dashboard.realtime_alerts(minutes=30)
    assert {a.kind for a in alerts} == {"sla_violation", "escalation"}

    resolved = await breached.dashboard.resolve_alert(alerts[0].id)
    assert resolved.is_resolved

    with pytest.raises(ResourceNotFoundException):
        await breached.dashboard.resolve_alert("missing")
