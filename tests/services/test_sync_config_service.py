"""Tests for sync_config access."""

import pytest

from opsync.models import SyncConfig
from opsync.services.sync_config_service import (
    DEFAULT_SYNC_CONFIG,
    SyncConfigSnapshot,
    ensure_sync_config,
    get_sync_config,
    load_sync_config,
    update_sync_config,
)
from opsync.services.sync_errors import ConfigError, InputError


def snapshot(start, end):
    return SyncConfigSnapshot(
        provider="eitje",
        mode="incremental",
        enabled_endpoints=("planning_shifts",),
        incremental_interval_minutes=60,
        worker_interval_minutes=5,
        quiet_hours_start=start,
        quiet_hours_end=end,
        max_chunk_attempts=3,
    )


class TestQuietHours:
    """Test the half-open quiet hour window."""

    @pytest.mark.parametrize("hour,expected", [(0, False), (1, True), (4, True), (5, False), (23, False)])
    def test_same_day_window(self, hour, expected):
        assert snapshot(1, 5).in_quiet_hours(hour) is expected

    @pytest.mark.parametrize("hour,expected", [(21, False), (22, True), (23, True), (0, True), (1, True), (2, False)])
    def test_window_wraps_midnight(self, hour, expected):
        assert snapshot(22, 2).in_quiet_hours(hour) is expected

    def test_equal_bounds_mean_no_window(self):
        assert not any(snapshot(3, 3).in_quiet_hours(hour) for hour in range(24))


class TestLoadSyncConfig:
    """Test loading and seeding the singleton."""

    def test_missing_row_raises(self, db_session):
        with pytest.raises(ConfigError):
            load_sync_config(db_session)

    def test_ensure_creates_defaults_once(self, db_session):
        first = ensure_sync_config(db_session)
        second = ensure_sync_config(db_session)
        db_session.commit()

        assert first is second
        assert db_session.query(SyncConfig).count() == 1

        config = load_sync_config(db_session)
        assert config.mode == DEFAULT_SYNC_CONFIG["mode"]
        assert config.enabled_endpoints == ("time_registration_shifts", "planning_shifts", "revenue_days")
        assert config.is_incremental is False

    def test_invalid_worker_interval_raises(self, db_session, sync_config):
        sync_config.worker_interval_minutes = 0
        db_session.commit()

        with pytest.raises(ConfigError):
            load_sync_config(db_session)

    def test_get_sync_config_none_without_row(self, db_session):
        assert get_sync_config(db_session) is None


class TestUpdateSyncConfig:
    """Test validated operator updates."""

    def test_partial_update(self, db_session, sync_config):
        result = update_sync_config(db_session, mode="incremental", quiet_hours_start=22, quiet_hours_end=6)
        db_session.commit()

        assert result["mode"] == "incremental"
        assert result["worker_interval_minutes"] == 5
        config = load_sync_config(db_session)
        assert config.is_incremental
        assert config.in_quiet_hours(23)

    def test_update_creates_row_when_missing(self, db_session):
        result = update_sync_config(db_session, worker_interval_minutes=2)

        assert result["worker_interval_minutes"] == 2
        assert result["mode"] == "manual"

    @pytest.mark.parametrize(
        "fields",
        [
            {"mode": "hourly"},
            {"worker_interval_minutes": 0},
            {"quiet_hours_start": 24},
            {"enabled_endpoints": []},
            {"enabled_endpoints": ["payroll"]},
            {"max_chunk_attempts": 0},
            {"unknown_field": 1},
        ],
    )
    def test_invalid_values_rejected(self, db_session, sync_config, fields):
        with pytest.raises(InputError):
            update_sync_config(db_session, **fields)

        db_session.rollback()
        assert load_sync_config(db_session).mode == "manual"
