"""End-to-end tests for the support engine: events, rules and dispatch."""

from datetime import timedelta

import pytest

from supportwatch.core.exceptions import ValidationException
from supportwatch.notifications.application.dto import (
    ActionDTO, RuleCreateRequest, RuleUpdateRequest, UserSettingsRequest
)

from tests.conftest import T0, ticket_payload


async def add_rule(engine, trigger="ticket_created", conditions=None, **action):
    action.setdefault("channel", "realtime")
    action.setdefault("recipients", ["admins"])
    return await engine.rules.create_rule(RuleCreateRequest(
        name=f"{trigger} -> {action['channel']}",
        trigger=trigger,
        conditions=conditions or {},
        actions=[ActionDTO(**action)],
    ))


@pytest.mark.asyncio
async def test_ticket_created_event_notifies_admins_in_realtime(engine, channels):
    rule = await add_rule(
        engine,
        conditions={"field": "ticket.priority", "operator": "in", "value": ["high", "urgent"]},
        subject="New ticket: {{ticket.title}}",
        body="{{ticket.title}} ({{ticket.priority}}) {{ticketUrl}}",
    )

    engine.emit("ticket_created", {"ticket": ticket_payload("T-1")}, triggered_by="carol")
    await engine.drain()

    sent = channels["realtime"].sent
    assert len(sent) == 1
    assert sent[0].recipients == ("alice",)
    assert sent[0].subject == "New ticket: Cannot log in"
    assert sent[0].body == "Cannot log in (high) https://support.example.com/tickets/T-1"
    assert sent[0].priority == "high"

    async with engine.uow_factory() as uow:
        logs, _ = await uow.logs.list(ticket_id="T-1")
        ticket = await uow.tickets.get("T-1")
    assert [(log.status, log.rule_id, log.triggered_by) for log in logs] == [("sent", rule.id, "carol")]
    assert ticket is not None and ticket.priority == "high"


@pytest.mark.asyncio
async def test_non_matching_event_sends_nothing(engine, channels):
    await add_rule(engine, conditions={"field": "ticket.priority", "value": "urgent"})

    engine.emit("ticket_created", {"ticket": ticket_payload("T-1", priority="low")})
    await engine.drain()

    assert channels["realtime"].sent == []


@pytest.mark.asyncio
async def test_manual_execution_reports_each_outcome(engine, channels):
    channels["slack"].fail_with = "invalid_token"
    await add_rule(engine, channel="email", recipients=["support-managers"], subject="{{ticketId}}")
    await add_rule(engine, channel="slack", recipients=["#support"], subject="{{ticketId}}")

    report = await engine.execute_rules_manually("ticket_created", {"ticket": ticket_payload("T-7")}, actor_id="alice")

    assert report.rules_evaluated == 2
    assert [o.status for o in report.outcomes] == ["sent", "failed"]
    # Nested group support-leads -> bob
    assert channels["email"].sent[0].recipients == ("carol@example.com", "bob@example.com")
    assert "invalid_token" in report.outcomes[1].error
    assert report.sent == 1 and report.failed == 1

    async with engine.uow_factory() as uow:
        alerts, _ = await uow.alerts.list(kind="system_error")
    assert [a.ticket_id for a in alerts] == ["T-7"]


@pytest.mark.asyncio
async def test_rule_error_does_not_stop_other_rules(engine, channels):
    await add_rule(engine, conditions={"field": "ticket.title", "operator": "greater_than", "value": 3})
    await add_rule(engine, channel="email", recipients=["alice"])

    report = await engine.execute_rules_manually("ticket_created", {"ticket": ticket_payload("T-1")})

    assert len(report.errors) == 1
    assert "cannot be compared" in report.errors[0]
    assert [o.channel for o in report.outcomes] == ["email"]
    assert channels["email"].sent[0].recipients == ("alice@example.com",)


@pytest.mark.asyncio
async def test_user_settings_control_destinations(engine, channels):
    await engine.user_settings.update_settings("alice", UserSettingsRequest(channels={"realtime": False}))
    await engine.user_settings.update_settings(
        "bob", UserSettingsRequest(destinations={"email": "bob.oncall@example.com"})
    )
    await add_rule(engine, channel="realtime", recipients=["admins"])
    await add_rule(engine, channel="email", recipients=["$assignee"])

    report = await engine.execute_rules_manually("ticket_created", {"ticket": ticket_payload("T-1")})

    realtime, email = report.outcomes
    assert realtime.status == "failed"
    assert "no recipients" in realtime.error
    assert email.status == "sent"
    assert channels["email"].sent[0].recipients == ("bob.oncall@example.com",)


@pytest.mark.asyncio
async def test_literal_recipients_and_deduplication(engine, channels):
    await add_rule(engine, channel="email", recipients=["ops@example.com", "alice", "admins", "ops@example.com"])

    await engine.execute_rules_manually("ticket_created", {"ticket": ticket_payload()})

    assert channels["email"].sent[0].recipients == ("ops@example.com", "alice@example.com")


@pytest.mark.asyncio
async def test_delayed_action_is_scheduled_and_cancellable(engine, channels):
    await add_rule(engine, channel="email", recipients=["alice"], delay_minutes=30, subject="Reminder {{ticketId}}")

    report = await engine.execute_rules_manually("ticket_created", {"ticket": ticket_payload("T-3")})

    assert report.outcomes == []
    assert len(report.scheduled_handles) == 1
    handle = report.scheduled_handles[0]

    pending = engine.scheduler.pending()
    assert pending[0].fire_at == T0 + timedelta(minutes=30)
    assert pending[0].notification.subject == "Reminder T-3"
    assert (await engine.get_engine_stats())["pending_delayed_count"] == 1

    assert engine.cancel_delayed_notification(handle) is True
    assert engine.cancel_delayed_notification(handle) is False
    assert (await engine.get_engine_stats())["pending_delayed_count"] == 0
    assert channels["email"].sent == []


@pytest.mark.asyncio
async def test_context_secrets_are_not_logged(engine):
    await add_rule(engine)

    report = await engine.execute_rules_manually(
        "ticket_created",
        {"ticket": ticket_payload("T-1"), "user": {"id": "u1", "password": "hunter2"}},
    )

    async with engine.uow_factory() as uow:
        log = await uow.logs.get(report.outcomes[0].log_id)
    assert log.metadata["context"]["user"] == {"id": "u1"}
    assert log.metadata["trigger"] == "ticket_created"


@pytest.mark.asyncio
async def test_unknown_trigger_is_rejected(engine):
    with pytest.raises(ValidationException):
        engine.emit("ticket_deleted", {})
    with pytest.raises(ValidationException):
        await engine.execute_rules_manually("ticket_deleted", {})


@pytest.mark.asyncio
async def test_engine_stats(engine, clock):
    rule = await add_rule(engine)
    await add_rule(engine, trigger="escalation")
    await engine.rules.update_rule(rule.id, RuleUpdateRequest(is_active=False))

    stats = await engine.get_engine_stats()
    assert stats == {
        "active_rule_count": 1,
        "pending_delayed_count": 0,
        "last_scan_at": None,
        "last_execution_at": None,
    }

    clock.advance(minutes=5)
    await engine.run_scan()
    await engine.execute_rules_manually("escalation", {"ticketId": "T-1"})

    stats = await engine.get_engine_stats()
    assert stats["last_scan_at"] == T0 + timedelta(minutes=5)
    assert stats["last_execution_at"] == T0 + timedelta(minutes=5)


@pytest.mark.asyncio
async def test_stop_closes_channels_and_drops_pending(engine, channels):
    await add_rule(engine, channel="email", recipients=["alice"], delay_minutes=10)
    await engine.execute_rules_manually("ticket_created", {"ticket": ticket_payload()})

    await engine.stop()

    assert engine.scheduler.pending_count == 0
    assert all(channel.closed for channel in channels.values())
