"""Shared test fixtures for all test modules."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List

import pytest
import pytest_asyncio

from supportwatch.config import NotificationChannel
from supportwatch.core.exceptions import DispatchException
from supportwatch.engine import SupportEngine
from supportwatch.infrastructure.database import close_database, create_tables, init_database
from supportwatch.infrastructure.database.unit_of_work import sqlalchemy_unit_of_work
from supportwatch.notifications.infrastructure import (
    DirectoryConfig,
    NotificationChannelClient,
    OutboundMessage,
    YAMLUserDirectory,
)
from supportwatch.sla.domain import EscalationLevelConfig, SLAConfig
from supportwatch.sla.infrastructure import SLAConfigManager

# Fixed "now" used by every clock-driven test
T0 = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingChannel(NotificationChannelClient):
    """Channel client that records messages instead of delivering them."""

    def __init__(self, name: str, fail_with: str = None, delay: float = 0.0):
        self.name = name
        self.fail_with = fail_with
        self.delay = delay
        self.sent: List[OutboundMessage] = []
        self.closed = False

    async def send(self, message: OutboundMessage) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with:
            raise DispatchException(self.name, self.fail_with)
        self.sent.append(message)

    async def close(self) -> None:
        self.closed = True


def make_sla_config(**overrides) -> SLAConfig:
    data = {
        "defaults": {
            "urgent": {"response_minutes": 15, "resolution_minutes": 240},
            "high": {"response_minutes": 240, "resolution_minutes": 1440},
            "medium": {"response_minutes": 480, "resolution_minutes": 2880},
            "low": {"response_minutes": 960, "resolution_minutes": 5760},
        },
        "critical_overrun_ratio": 0.5,
        "escalation_levels": [
            EscalationLevelConfig(level=1, re_escalate_after_minutes=60, notify=["support-leads"]),
            EscalationLevelConfig(level=2, re_escalate_after_minutes=120, notify=["support-managers"]),
            EscalationLevelConfig(level=3, notify=["support-directors"]),
        ],
    }
    data.update(overrides)
    return SLAConfig(**data)


def make_directory() -> YAMLUserDirectory:
    return YAMLUserDirectory(DirectoryConfig(
        users={
            "alice": {"name": "Alice Admin", "email": "alice@example.com", "slack_id": "U001"},
            "bob": {"name": "Bob Lead", "email": "bob@example.com", "slack_id": "U002"},
            "carol": {"name": "Carol Manager", "email": "carol@example.com"},
            "dave": {"name": "Dave Director", "email": "dave@example.com"},
        },
        groups={
            "admins": ["alice"],
            "support-leads": ["bob"],
            "support-managers": ["carol", "support-leads"],
            "support-directors": ["dave"],
        },
    ))


@pytest_asyncio.fixture
async def database(tmp_path):
    """Fresh file-backed SQLite database per test."""
    init_database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_tables()
    yield sqlalchemy_unit_of_work
    await close_database()


@pytest.fixture
def uow_factory(database):
    return database


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def channels():
    return {
        channel: RecordingChannel(channel)
        for channel in (
            NotificationChannel.EMAIL,
            NotificationChannel.SLACK,
            NotificationChannel.TEAMS,
            NotificationChannel.WEBHOOK,
            NotificationChannel.REALTIME,
        )
    }


@pytest.fixture
def config_manager():
    return SLAConfigManager(config=make_sla_config())


@pytest.fixture
def directory():
    return make_directory()


@pytest_asyncio.fixture
async def engine(database, config_manager, directory, channels, clock):
    support_engine = SupportEngine(
        uow_factory=database,
        config_provider=config_manager,
        directory=directory,
        channels=channels,
        event_workers=1,
        dispatch_timeout_seconds=0.5,
        base_url="https://support.example.com",
        clock=clock,
    )
    await support_engine.start()
    yield support_engine
    await support_engine.drain()
    await support_engine.stop()


def ticket_payload(ticket_id: str = "T-1", **overrides) -> dict:
    data = {
        "id": ticket_id,
        "title": "Cannot log in",
        "priority": "high",
        "status": "open",
        "application_id": None,
        "assigned_to": "bob",
        "created_at": T0.isoformat(),
    }
    data.update(overrides)
    return data
