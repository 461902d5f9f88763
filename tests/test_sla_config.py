"""Tests for the SLA policy file, its hot reload and the scan scheduler."""

import asyncio

import pytest
import yaml
from pydantic import ValidationError

from supportwatch.core.exceptions import ConfigurationException
from supportwatch.sla.domain import SLAConfig
from supportwatch.sla.infrastructure import SLAConfigManager, SLAScheduler


def write_policy(path, data):
    path.write_text(yaml.safe_dump(data))
    return path


def test_missing_file_falls_back_to_defaults(tmp_path):
    manager = SLAConfigManager()
    config = manager.load(tmp_path / "absent.yaml")

    assert config == SLAConfig()
    assert manager.config.thresholds_for(None, "urgent").response_minutes == 15


def test_partial_defaults_are_merged(tmp_path):
    policy = write_policy(tmp_path / "sla.yaml", {"defaults": {"low": {"response_minutes": 5, "resolution_minutes": 10}}})

    config = SLAConfigManager().load(policy)

    assert config.thresholds_for(None, "low").response_minutes == 5
    assert config.thresholds_for(None, "urgent").response_minutes == 15


def test_application_override_and_fallback(tmp_path):
    policy = write_policy(tmp_path / "sla.yaml", {
        "applications": {"billing": {"urgent": {"response_minutes": 10, "resolution_minutes": 120}}},
    })
    config = SLAConfigManager().load(policy)

    assert config.thresholds_for("billing", "urgent").resolution_minutes == 120
    assert config.thresholds_for("billing", "high") == config.thresholds_for(None, "high")
    assert config.thresholds_for("unknown-app", "urgent").response_minutes == 15


def test_invalid_policy_raises_configuration_error(tmp_path):
    policy = write_policy(tmp_path / "sla.yaml", {"defaults": {"critical": {"response_minutes": 1, "resolution_minutes": 2}}})

    with pytest.raises(ConfigurationException):
        SLAConfigManager().load(policy)


def test_duplicate_escalation_levels_are_rejected():
    with pytest.raises(ValidationError):
        SLAConfig(escalation_levels=[{"level": 1}, {"level": 1}])


def test_reload_swaps_policy_and_keeps_previous_on_error(tmp_path):
    policy = write_policy(tmp_path / "sla.yaml", {"critical_overrun_ratio": 0.5})
    manager = SLAConfigManager()
    manager.load(policy)

    write_policy(policy, {"critical_overrun_ratio": 1.0})
    assert manager.reload() is True
    assert manager.config.critical_overrun_ratio == 1.0

    policy.write_text("critical_overrun_ratio: [unclosed")
    assert manager.reload() is False
    assert manager.config.critical_overrun_ratio == 1.0


def test_reload_without_load_is_a_noop():
    manager = SLAConfigManager(config=SLAConfig())
    assert manager.reload() is False


def test_watching_lifecycle(tmp_path):
    manager = SLAConfigManager()
    with pytest.raises(RuntimeError):
        manager.start_watching()

    manager.load(write_policy(tmp_path / "sla.yaml", {}))
    manager.start_watching()
    try:
        assert manager.is_watching
    finally:
        manager.stop_watching()
    assert not manager.is_watching

    # Stopping twice is harmless
    manager.stop_watching()


def test_unloaded_config_raises():
    with pytest.raises(RuntimeError):
        SLAConfigManager().config


@pytest.mark.asyncio
async def test_scheduler_runs_job_until_stopped():
    calls = []

    async def job():
        calls.append(1)

    scheduler = SLAScheduler(interval_seconds=1)
    await scheduler.start(job)
    try:
        assert scheduler.is_running
        # A second start keeps the single job
        await scheduler.start(job)
        await asyncio.sleep(1.6)
    finally:
        await scheduler.stop()

    assert not scheduler.is_running
    assert len(calls) >= 1
