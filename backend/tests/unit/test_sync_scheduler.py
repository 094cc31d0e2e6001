"""Unit tests for SyncScheduler."""

from unittest.mock import MagicMock

import pytest

from schemas.sync import SyncStartResponse
from services.exceptions import DirectoryNotConfiguredError, SyncAlreadyRunningError
from services.sync_scheduler import SyncScheduler


@pytest.fixture
def fake_coordinator():
    coordinator = MagicMock()
    coordinator.start_scheduled_sync.return_value = SyncStartResponse(
        sync_id="00000000-0000-0000-0000-000000000001", estimated_duration="5m"
    )
    return coordinator


def test_interval_from_config(config_gate, fake_coordinator, directory_config):
    config_gate.update_config(directory_config.model_copy(update={"sync_interval_minutes": 15}))
    scheduler = SyncScheduler(fake_coordinator, config_gate)

    assert scheduler.interval_seconds() == 900


def test_zero_interval_pauses(config_gate, fake_coordinator):
    scheduler = SyncScheduler(fake_coordinator, config_gate)

    assert scheduler.interval_seconds() is None


def test_disabled_or_unconfigured_pauses(config_gate, unconfigured_gate, fake_coordinator, directory_config):
    config_gate.update_config(directory_config.model_copy(update={"sync_interval_minutes": 5}))
    config_gate.disable()

    assert SyncScheduler(fake_coordinator, config_gate).interval_seconds() is None
    assert SyncScheduler(fake_coordinator, unconfigured_gate).interval_seconds() is None


def test_trigger_starts_scheduled_sync(config_gate, fake_coordinator):
    scheduler = SyncScheduler(fake_coordinator, config_gate)

    assert scheduler.trigger() is True
    fake_coordinator.start_scheduled_sync.assert_called_once()


def test_trigger_skips_when_running(config_gate, fake_coordinator):
    fake_coordinator.start_scheduled_sync.side_effect = SyncAlreadyRunningError("abc")
    scheduler = SyncScheduler(fake_coordinator, config_gate)

    assert scheduler.trigger() is False


def test_trigger_skips_when_unconfigured(config_gate, fake_coordinator):
    fake_coordinator.start_scheduled_sync.side_effect = DirectoryNotConfiguredError()
    scheduler = SyncScheduler(fake_coordinator, config_gate)

    assert scheduler.trigger() is False


def test_start_and_stop(config_gate, fake_coordinator):
    scheduler = SyncScheduler(fake_coordinator, config_gate)

    scheduler.start()
    scheduler.stop(timeout=5)

    fake_coordinator.start_scheduled_sync.assert_not_called()


def test_scheduled_run_through_real_coordinator(coordinator, config_gate, run_service):
    scheduler = SyncScheduler(coordinator, config_gate)

    assert scheduler.trigger() is True
    assert coordinator.wait(timeout=10)

    runs = run_service.statistics().recent_runs
    assert [r.trigger for r in runs] == ["scheduled"]
