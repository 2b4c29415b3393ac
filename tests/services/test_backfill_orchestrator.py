"""Tests for BackfillOrchestrator."""

import pytest
from datetime import date, timedelta

from opsync.integrations.eitje import SUPPORTED_ENDPOINTS
from opsync.models import BackfillProgress, BackfillQueueChunk, SyncLog
from opsync.services.backfill_orchestrator import (
    BackfillOrchestrator,
    get_backfill_status,
    list_backfills,
    validate_endpoints,
)
from opsync.services.sync_errors import InputError


class TestStartBackfill:
    """Test planning and enqueueing a backfill."""

    def test_twenty_day_backfill_creates_staggered_chunks(self, db_session, sync_config, now):
        result = BackfillOrchestrator(db_session, chunk_size=6).start_backfill(
            date(2024, 1, 1), date(2024, 1, 20), now=now
        )

        assert result["success"] is True
        assert result["total_chunks"] == 4
        assert result["worker_interval_minutes"] == 5
        assert result["estimated_duration_minutes"] == 20
        assert result["estimated_duration_hours"] == 1

        chunks = (
            db_session.query(BackfillQueueChunk)
            .filter_by(progress_id=result["progress_id"])
            .order_by(BackfillQueueChunk.chunk_start)
            .all()
        )
        assert [c.next_run_at for c in chunks] == [now + timedelta(minutes=5 * i) for i in range(4)]
        assert [(c.chunk_start, c.chunk_end) for c in chunks][-1] == (date(2024, 1, 19), date(2024, 1, 20))
        assert all(c.status == "pending" and c.attempts == 0 for c in chunks)

        progress = db_session.get(BackfillProgress, result["progress_id"])
        assert progress.status == "in_progress"
        assert progress.total_chunks == 4

    def test_defaults_to_all_supported_endpoints(self, db_session, sync_config, now):
        sync_config.enabled_endpoints = ["planning_shifts"]
        db_session.commit()

        result = BackfillOrchestrator(db_session).start_backfill(date(2024, 1, 1), date(2024, 1, 6), now=now)

        assert result["endpoints"] == list(SUPPORTED_ENDPOINTS)
        assert result["chunks"][0]["endpoints"] == list(SUPPORTED_ENDPOINTS)

    def test_new_backfill_supersedes_older_one(self, db_session, sync_config, now):
        orchestrator = BackfillOrchestrator(db_session)
        first = orchestrator.start_backfill(date(2024, 1, 1), date(2024, 1, 20), now=now)
        second = orchestrator.start_backfill(date(2024, 2, 1), date(2024, 2, 3), now=now)

        assert second["success"] is True
        assert second["cleanup"]["failed_progress"] == 1
        assert second["cleanup"]["failed_queue"] == 4

        old = db_session.get(BackfillProgress, first["progress_id"])
        assert old.status == "failed"
        assert old.last_error == "superseded by new backfill"

        old_chunks = db_session.query(BackfillQueueChunk).filter_by(progress_id=first["progress_id"]).all()
        assert {c.status for c in old_chunks} == {"failed"}

        active = db_session.query(BackfillProgress).filter(BackfillProgress.status == "in_progress").all()
        assert [p.id for p in active] == [second["progress_id"]]

    def test_supersede_can_be_disabled(self, db_session, sync_config, now):
        orchestrator = BackfillOrchestrator(db_session)
        first = orchestrator.start_backfill(date(2024, 1, 1), date(2024, 1, 6), now=now)
        second = orchestrator.start_backfill(
            date(2024, 1, 7), date(2024, 1, 12), now=now, supersede_previous=False
        )

        assert second["cleanup"] is None
        assert db_session.get(BackfillProgress, first["progress_id"]).status == "in_progress"

    def test_pending_backfill_logs_are_cancelled(self, db_session, sync_config, now):
        db_session.add(
            SyncLog(
                provider="eitje",
                endpoint="planning_shifts",
                sync_mode="backfill",
                date_range_start=date(2024, 1, 1),
                date_range_end=date(2024, 1, 6),
                status="pending",
                started_at=now,
            )
        )
        db_session.commit()

        result = BackfillOrchestrator(db_session).start_backfill(date(2024, 1, 1), date(2024, 1, 2), now=now)

        assert result["cleanup"]["cancelled_logs"] == 1
        log = db_session.query(SyncLog).one()
        assert log.status == "failed"
        assert log.error_message == "superseded"

    def test_inverted_range_creates_nothing(self, db_session, sync_config, now):
        result = BackfillOrchestrator(db_session).start_backfill(date(2024, 1, 20), date(2024, 1, 1), now=now)

        assert result["success"] is False
        assert result["error_type"] == "input_error"
        assert db_session.query(BackfillProgress).count() == 0
        assert db_session.query(BackfillQueueChunk).count() == 0

    def test_unknown_endpoint_rejected(self, db_session, sync_config, now):
        result = BackfillOrchestrator(db_session).start_backfill(
            date(2024, 1, 1), date(2024, 1, 2), endpoints=["payroll"], now=now
        )

        assert result["success"] is False
        assert "payroll" in result["error"]
        assert db_session.query(BackfillProgress).count() == 0

    def test_rejected_backfill_leaves_existing_one_alone(self, db_session, sync_config, now):
        orchestrator = BackfillOrchestrator(db_session)
        first = orchestrator.start_backfill(date(2024, 1, 1), date(2024, 1, 6), now=now)
        orchestrator.start_backfill(date(2024, 1, 6), date(2024, 1, 1), now=now)

        assert db_session.get(BackfillProgress, first["progress_id"]).status == "in_progress"

    def test_missing_config_is_config_error(self, db_session, now):
        result = BackfillOrchestrator(db_session).start_backfill(date(2024, 1, 1), date(2024, 1, 2), now=now)

        assert result["success"] is False
        assert result["error_type"] == "config_error"
        assert db_session.query(BackfillProgress).count() == 0


class TestValidateEndpoints:
    """Test endpoint list validation."""

    def test_none_means_defaults(self):
        assert validate_endpoints(None) is None

    def test_duplicates_removed_in_order(self):
        assert validate_endpoints(["revenue_days", "planning_shifts", "revenue_days"]) == [
            "revenue_days",
            "planning_shifts",
        ]

    def test_empty_list_rejected(self):
        with pytest.raises(InputError):
            validate_endpoints([])


class TestBackfillStatus:
    """Test status and listing queries."""

    def test_status_includes_chunk_counts(self, db_session, sync_config, now):
        result = BackfillOrchestrator(db_session).start_backfill(date(2024, 1, 1), date(2024, 1, 12), now=now)

        status = get_backfill_status(db_session, result["progress_id"])

        assert status["chunk_counts"] == {"pending": 2}
        assert len(status["chunks"]) == 2

    def test_unknown_progress_returns_none(self, db_session):
        assert get_backfill_status(db_session, 999) is None

    def test_list_newest_first(self, db_session, sync_config, now):
        orchestrator = BackfillOrchestrator(db_session)
        first = orchestrator.start_backfill(date(2024, 1, 1), date(2024, 1, 2), now=now)
        second = orchestrator.start_backfill(date(2024, 1, 3), date(2024, 1, 4), now=now)

        backfills = list_backfills(db_session, limit=10)

        assert [b["id"] for b in backfills] == [second["progress_id"], first["progress_id"]]
