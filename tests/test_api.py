"""HTTP API tests against the FastAPI app with an in-process engine."""

from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from supportwatch.main import create_app

from tests.conftest import T0, ticket_payload


@pytest_asyncio.fixture
async def client(engine):
    app = create_app(use_lifespan=False)
    app.state.engine = engine
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


RULE = {
    "name": "Urgent tickets to admins",
    "trigger": "ticket_created",
    "conditions": {"field": "ticket.priority", "operator": "equals", "value": "urgent"},
    "actions": [{"channel": "email", "recipients": ["admins"], "subject": "Urgent: {{ticket.title}}"}],
}


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["checks"]["engine"] == "running"
    assert data["checks"]["pending_delayed"] == 0


@pytest.mark.asyncio
async def test_rule_crud(client):
    response = await client.post("/notifications/rules", json=RULE)
    assert response.status_code == 201
    rule = response.json()
    assert rule["is_active"] is True
    assert rule["actions"][0]["delay_minutes"] == 0

    response = await client.get(f"/notifications/rules/{rule['id']}")
    assert response.status_code == 200
    assert response.json()["name"] == RULE["name"]

    response = await client.put(f"/notifications/rules/{rule['id']}", json={"is_active": False})
    assert response.status_code == 200
    assert response.json()["is_active"] is False

    response = await client.get("/notifications/rules", params={"is_active": False})
    assert response.json()["total"] == 1

    response = await client.delete(f"/notifications/rules/{rule['id']}")
    assert response.status_code == 204

    response = await client.get(f"/notifications/rules/{rule['id']}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_invalid_rules_are_rejected(client):
    bad_operator = dict(RULE, conditions={"field": "ticket.priority", "operator": "matches", "value": "x"})
    response = await client.post("/notifications/rules", json=bad_operator)
    assert response.status_code == 422

    bad_trigger = dict(RULE, trigger="ticket_deleted")
    response = await client.post("/notifications/rules", json=bad_trigger)
    assert response.status_code == 422

    no_actions = dict(RULE, actions=[])
    response = await client.post("/notifications/rules", json=no_actions)
    assert response.status_code == 422

    both_combinators = dict(RULE, conditions={
        "all": [{"field": "ticket.priority", "value": "urgent"}],
        "any": [{"field": "ticket.priority", "value": "high"}],
    })
    response = await client.post("/notifications/rules", json=both_combinators)
    assert response.status_code == 422

    response = await client.get("/notifications/rules")
    assert response.json()["total"] == 0


@pytest.mark.asyncio
async def test_emitted_event_is_queued_then_dispatched(client, engine, channels):
    await client.post("/notifications/rules", json=RULE)

    response = await client.post("/notifications/events", json={
        "trigger": "ticket_created",
        "context": {"ticket": ticket_payload("U-1", priority="urgent")},
        "triggered_by": "carol",
    })
    assert response.status_code == 202
    assert response.json()["trigger"] == "ticket_created"
    assert response.json()["event_id"]

    await engine.drain()
    assert [m.subject for m in channels["email"].sent] == ["Urgent: Cannot log in"]

    response = await client.get("/notifications/logs", params={"status": "sent"})
    logs = response.json()
    assert logs["total"] == 1
    assert logs["items"][0]["recipients"] == ["alice@example.com"]
    assert logs["items"][0]["triggered_by"] == "carol"


@pytest.mark.asyncio
async def test_manual_execution_and_delayed_cancel(client):
    delayed = dict(RULE, actions=[dict(RULE["actions"][0], delay_minutes=15)])
    await client.post("/notifications/rules", json=delayed)

    response = await client.post("/notifications/execute", json={
        "trigger": "ticket_created",
        "context": {"ticket": ticket_payload("U-1", priority="urgent")},
        "actor_id": "alice",
    })
    assert response.status_code == 200
    report = response.json()
    assert report["rules_evaluated"] == 1
    assert report["outcomes"] == []
    handle = report["scheduled_handles"][0]

    stats = (await client.get("/notifications/stats")).json()
    assert stats["active_rule_count"] == 1
    assert stats["pending_delayed_count"] == 1

    response = await client.delete(f"/notifications/delayed/{handle}")
    assert response.json() == {"handle": handle, "cancelled": True}
    response = await client.delete(f"/notifications/delayed/{handle}")
    assert response.json() == {"handle": handle, "cancelled": False}


@pytest.mark.asyncio
async def test_execute_with_failing_channel_reports_failure(client, channels):
    channels["email"].fail_with = "mailbox unavailable"
    await client.post("/notifications/rules", json=RULE)

    response = await client.post("/notifications/execute", json={
        "trigger": "ticket_created",
        "context": {"ticket": ticket_payload("U-1", priority="urgent")},
    })

    report = response.json()
    assert report["failed"] == 1
    assert "mailbox unavailable" in report["outcomes"][0]["error"]

    alerts = (await client.get("/alerts", params={"kind": "system_error"})).json()
    assert alerts["total"] == 1


@pytest.mark.asyncio
async def test_user_settings(client):
    response = await client.get("/notifications/settings/alice")
    assert response.status_code == 200
    assert response.json()["is_enabled"] is True

    response = await client.put("/notifications/settings/alice", json={
        "channels": {"slack": False},
        "destinations": {"email": "alice.pager@example.com"},
    })
    assert response.status_code == 200
    data = response.json()
    assert data["channels"] == {"slack": False}
    assert data["destinations"] == {"email": "alice.pager@example.com"}

    response = await client.put("/notifications/settings/alice", json={"channels": {"fax": True}})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_ticket_ingest_scan_and_acknowledge(client):
    created_at = (T0 - timedelta(hours=5)).isoformat()
    response = await client.post("/sla/tickets", json={
        "tickets": [ticket_payload("T-1", priority="high", created_at=created_at)]
    })
    assert response.json() == {"created": 1, "updated": 0, "failed": 0, "errors": []}

    response = await client.post("/sla/scan")
    assert response.status_code == 200
    scan = response.json()
    assert scan["skipped"] is False
    assert scan["tickets_scanned"] == 1
    assert len(scan["violations_created"]) == 1

    violations = (await client.get("/sla/violations", params={"is_open": True})).json()
    assert violations["total"] == 1
    violation = violations["items"][0]
    assert violation["violation_type"] == "response_time"
    assert violation["severity"] == "warning"

    url = f"/sla/violations/{violation['id']}/acknowledge"
    response = await client.post(url, json={"actor_id": "alice", "comment": "calling customer"})
    assert response.status_code == 200
    assert response.json()["is_open"] is False

    response = await client.post(url, json={"actor_id": "alice"})
    assert response.status_code == 409

    response = await client.post("/sla/violations/missing/acknowledge", json={})
    assert response.status_code == 404

    stats = (await client.get("/sla/violations/stats", params={"days": 7})).json()
    assert stats["total"] == 1
    assert stats["resolved"] == 1


@pytest.mark.asyncio
async def test_manual_escalation_endpoints(client):
    await client.post("/sla/tickets", json={"tickets": [ticket_payload("T-1", priority="low")]})

    for expected in (1, 2, 3):
        response = await client.post("/sla/tickets/T-1/escalate", json={"reason": "vip", "actor_id": "alice"})
        assert response.status_code == 200
        assert response.json()["to_level"] == expected

    response = await client.post("/sla/tickets/T-1/escalate", json={})
    assert response.status_code == 409

    response = await client.post("/sla/tickets/missing/escalate", json={})
    assert response.status_code == 404

    history = (await client.get("/sla/tickets/T-1/escalations")).json()
    assert len(history) == 1
    assert history[0]["level"] == 3
    assert len(history[0]["transitions"]) == 3

    active = (await client.get("/sla/escalations", params={"status": "active", "min_level": 2})).json()
    assert active["total"] == 1


@pytest.mark.asyncio
async def test_sla_config_endpoint(client):
    config = (await client.get("/sla/config")).json()
    assert config["defaults"]["urgent"]["response_minutes"] == 15
    assert [level["level"] for level in config["escalation_levels"]] == [1, 2, 3]


@pytest.mark.asyncio
async def test_alert_dashboard_endpoints(client, engine):
    created_at = (T0 - timedelta(hours=1)).isoformat()
    await client.post("/sla/tickets", json={
        "tickets": [ticket_payload("U-1", priority="urgent", created_at=created_at)]
    })
    await client.post("/sla/scan")
    await engine.drain()

    overview = (await client.get("/alerts/overview")).json()
    assert overview["active_violations"] == 1
    assert overview["active_escalations"] == 1

    alerts = (await client.get("/alerts", params={"is_resolved": False})).json()
    assert {a["kind"] for a in alerts["items"]} == {"sla_violation", "escalation"}

    alert_id = alerts["items"][0]["id"]
    response = await client.post(f"/alerts/{alert_id}/resolve")
    assert response.status_code == 200
    assert response.json()["is_resolved"] is True

    response = await client.post("/alerts/missing/resolve")
    assert response.status_code == 404

    for path in ("/alerts/trends", "/alerts/escalations", "/alerts/effectiveness", "/alerts/realtime"):
        response = await client.get(path)
        assert response.status_code == 200, path
