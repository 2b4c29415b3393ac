"""Tests for the backfill queue worker."""

from datetime import date, timedelta
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from opsync.models import BackfillProgress, BackfillQueueChunk
from opsync.services.backfill_cleanup import cleanup_superseded
from opsync.services import queue_worker
from opsync.services.queue_worker import BackfillQueueWorker, refresh_progress
from opsync.services.sync_errors import ProviderError, SupersededError


def _ok(inserted=2):
    return {"success": True, "records_fetched": inserted, "records_inserted": inserted, "records_updated": 0}


class TestQueueWorkerRun:
    """Test claiming and processing due chunks."""

    def test_nothing_due(self, db_session, sync_config, backfill_factory, mock_sync_service, mock_processor, now):
        _, chunks = backfill_factory()
        chunks[0].next_run_at = now + timedelta(minutes=10)
        db_session.commit()

        result = BackfillQueueWorker(db_session, mock_sync_service, mock_processor).run(now=now)

        assert result["success"] is True
        assert result["chunks_processed"] == 0
        assert result["message"] == "No chunks due"
        mock_sync_service.sync.assert_not_called()

    def test_successful_chunk_completes_backfill(
        self, db_session, sync_config, backfill_factory, mock_sync_service, mock_processor, now
    ):
        progress, chunks = backfill_factory(endpoints=["planning_shifts", "revenue_days"])

        result = BackfillQueueWorker(db_session, mock_sync_service, mock_processor).run(now=now)

        assert result["success"] is True
        assert result["chunks_processed"] == 1
        assert result["total_inserted"] == 4
        assert mock_sync_service.sync.call_count == 2
        mock_sync_service.sync.assert_any_call(
            "planning_shifts", date(2024, 1, 1), date(2024, 1, 6), mode="backfill"
        )

        chunk = db_session.get(BackfillQueueChunk, chunks[0].id)
        assert chunk.status == "done"
        assert chunk.records_inserted == 4
        assert chunk.completed_at == now

        progress = db_session.get(BackfillProgress, progress.id)
        assert progress.status == "completed"
        assert progress.completed_chunks == 1
        assert progress.records_fetched == 4

    def test_aggregated_endpoint_runs_processor(
        self, db_session, sync_config, backfill_factory, mock_sync_service, mock_processor, now
    ):
        backfill_factory(endpoints=["time_registration_shifts", "planning_shifts"])

        BackfillQueueWorker(db_session, mock_sync_service, mock_processor).run(now=now)

        mock_processor.process.assert_called_once_with(
            "time_registration_shifts", date(2024, 1, 1), date(2024, 1, 6)
        )

    def test_fails_twice_then_succeeds(
        self, db_session, sync_config, backfill_factory, mock_sync_service, mock_processor, now
    ):
        progress, chunks = backfill_factory()
        mock_sync_service.sync.side_effect = [
            ProviderError("timeout"),
            ProviderError("rate limited"),
            _ok(3),
        ]
        worker = BackfillQueueWorker(db_session, mock_sync_service, mock_processor)

        first = worker.run(now=now)
        chunk = db_session.get(BackfillQueueChunk, chunks[0].id)
        assert first["success"] is False
        assert chunk.status == "pending"
        assert chunk.attempts == 1
        assert chunk.next_run_at == now + timedelta(minutes=5)

        # Not due yet
        assert worker.run(now=now + timedelta(minutes=1))["chunks_processed"] == 0

        worker.run(now=now + timedelta(minutes=5))
        chunk = db_session.get(BackfillQueueChunk, chunks[0].id)
        assert chunk.attempts == 2
        assert chunk.next_run_at == now + timedelta(minutes=15)

        third = worker.run(now=now + timedelta(minutes=15))
        chunk = db_session.get(BackfillQueueChunk, chunks[0].id)
        assert third["success"] is True
        assert chunk.status == "done"
        assert chunk.attempts == 2
        assert db_session.get(BackfillProgress, progress.id).status == "completed"

    def test_exhausted_attempts_fail_chunk_and_progress(
        self, db_session, sync_config, backfill_factory, mock_sync_service, mock_processor, now
    ):
        progress, chunks = backfill_factory()
        mock_sync_service.sync.side_effect = ProviderError("bad credentials")
        worker = BackfillQueueWorker(db_session, mock_sync_service, mock_processor)

        run_at = now
        for _ in range(3):
            worker.run(now=run_at)
            run_at += timedelta(hours=1)

        chunk = db_session.get(BackfillQueueChunk, chunks[0].id)
        assert chunk.status == "failed"
        assert chunk.attempts == 3
        assert "bad credentials" in chunk.error_message

        progress = db_session.get(BackfillProgress, progress.id)
        assert progress.status == "failed"
        assert "1 chunk(s) failed" in progress.last_error

        assert worker.run(now=run_at)["chunks_processed"] == 0
        assert mock_sync_service.sync.call_count == 3

    def test_partial_endpoint_failure_retries_whole_chunk(
        self, db_session, sync_config, backfill_factory, mock_sync_service, mock_processor, now
    ):
        _, chunks = backfill_factory(endpoints=["planning_shifts", "revenue_days"])
        mock_sync_service.sync.side_effect = [_ok(), ProviderError("502")]

        result = BackfillQueueWorker(db_session, mock_sync_service, mock_processor).run(now=now)

        outcome = result["results"][0]
        assert outcome["status"] == "pending"
        assert [e["success"] for e in outcome["endpoints"]] == [True, False]
        assert "revenue_days" in db_session.get(BackfillQueueChunk, chunks[0].id).error_message

    def test_processes_oldest_due_first(
        self, db_session, sync_config, backfill_factory, mock_sync_service, mock_processor, now
    ):
        _, chunks = backfill_factory(
            chunks=[(date(2024, 1, 1), date(2024, 1, 3)), (date(2024, 1, 4), date(2024, 1, 6))]
        )
        chunks[0].next_run_at = now - timedelta(minutes=1)
        chunks[1].next_run_at = now - timedelta(minutes=10)
        db_session.commit()

        result = BackfillQueueWorker(db_session, mock_sync_service, mock_processor, max_chunks_per_run=1).run(now=now)

        assert [r["chunk_id"] for r in result["results"]] == [chunks[1].id]
        assert db_session.get(BackfillQueueChunk, chunks[0].id).status == "pending"

    def test_superseded_while_processing(
        self, db_session, sync_config, backfill_factory, mock_sync_service, mock_processor, now
    ):
        progress, chunks = backfill_factory()

        def sync_then_supersede(*args, **kwargs):
            cleanup_superseded(db_session, now=now)
            db_session.commit()
            return _ok()

        mock_sync_service.sync.side_effect = sync_then_supersede

        result = BackfillQueueWorker(db_session, mock_sync_service, mock_processor).run(now=now)

        outcome = result["results"][0]
        assert outcome["superseded"] is True
        assert outcome["status"] == "failed"
        chunk = db_session.get(BackfillQueueChunk, chunks[0].id)
        assert chunk.error_message == "superseded by new backfill"
        assert db_session.get(BackfillProgress, progress.id).status == "failed"

    def test_cancelled_log_of_current_backfill_is_an_ordinary_failure(
        self, db_session, sync_config, backfill_factory, mock_sync_service, mock_processor, now
    ):
        progress, chunks = backfill_factory(endpoints=["planning_shifts", "revenue_days"])

        calls = []

        def sync(endpoint, *args, **kwargs):
            calls.append(endpoint)
            if endpoint == "planning_shifts":
                cleanup_superseded(db_session, current_progress_id=progress.id, now=now)
                db_session.commit()
                raise SupersededError("sync log 1 for planning_shifts was superseded")
            return _ok(3)

        mock_sync_service.sync.side_effect = sync

        result = BackfillQueueWorker(db_session, mock_sync_service, mock_processor).run(now=now)

        outcome = result["results"][0]
        assert calls == ["planning_shifts", "revenue_days"]
        assert outcome["superseded"] is False
        assert outcome["status"] == "pending"
        assert outcome["attempts"] == 1
        assert [e["success"] for e in outcome["endpoints"]] == [False, True]

        chunk = db_session.get(BackfillQueueChunk, chunks[0].id)
        assert chunk.status == "pending"
        assert chunk.next_run_at == now + timedelta(minutes=5)
        assert "planning_shifts" in chunk.error_message
        assert db_session.get(BackfillProgress, progress.id).status == "in_progress"

    def test_cancelled_log_of_superseded_backfill_stops_chunk(
        self, db_session, sync_config, backfill_factory, mock_sync_service, mock_processor, now
    ):
        progress, chunks = backfill_factory(endpoints=["planning_shifts", "revenue_days"])

        def sync(endpoint, *args, **kwargs):
            cleanup_superseded(db_session, now=now)
            db_session.commit()
            raise SupersededError(f"sync log for {endpoint} was superseded")

        mock_sync_service.sync.side_effect = sync

        result = BackfillQueueWorker(db_session, mock_sync_service, mock_processor).run(now=now)

        outcome = result["results"][0]
        assert outcome["superseded"] is True
        assert outcome["status"] == "failed"
        assert outcome["attempts"] == 0
        assert mock_sync_service.sync.call_count == 1
        assert db_session.get(BackfillQueueChunk, chunks[0].id).error_message == "superseded by new backfill"

    def test_database_error_is_returned_not_raised(
        self, db_session, sync_config, backfill_factory, mock_sync_service, mock_processor, now
    ):
        backfill_factory()
        worker = BackfillQueueWorker(db_session, mock_sync_service, mock_processor)

        with patch.object(worker, "_claim", side_effect=OperationalError("UPDATE", {}, Exception("db down"))):
            result = worker.run(now=now)

        assert result["success"] is False
        assert result["error_type"] == "internal_error"
        assert result["chunks_processed"] == 0
        mock_sync_service.sync.assert_not_called()

    def test_crash_after_claim_requeues_chunk(
        self, db_session, sync_config, backfill_factory, mock_sync_service, mock_processor, now
    ):
        progress, chunks = backfill_factory()
        real_refresh = queue_worker.refresh_progress
        calls = []

        def refresh_failing_once(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                raise OperationalError("SELECT", {}, Exception("connection reset"))
            return real_refresh(*args, **kwargs)

        with patch("opsync.services.queue_worker.refresh_progress", side_effect=refresh_failing_once):
            result = BackfillQueueWorker(db_session, mock_sync_service, mock_processor).run(now=now)

        assert result["success"] is False
        outcome = result["results"][0]
        assert outcome["status"] == "pending"
        assert outcome["attempts"] == 1
        assert "connection reset" in outcome["error"]

        chunk = db_session.get(BackfillQueueChunk, chunks[0].id)
        assert chunk.status == "pending"
        assert chunk.attempts == 1
        assert chunk.next_run_at == now + timedelta(minutes=5)
        assert db_session.get(BackfillProgress, progress.id).status == "in_progress"

    def test_missing_config(self, db_session, backfill_factory, mock_sync_service, mock_processor, now):
        backfill_factory()

        result = BackfillQueueWorker(db_session, mock_sync_service, mock_processor).run(now=now)

        assert result["success"] is False
        assert result["error_type"] == "config_error"
        assert result["chunks_processed"] == 0
        mock_sync_service.sync.assert_not_called()


class TestClaim:
    """Test the conditional pending -> processing claim."""

    def test_second_claim_loses(self, db_session, sync_config, backfill_factory, mock_sync_service, now):
        _, chunks = backfill_factory()
        worker = BackfillQueueWorker(db_session, mock_sync_service)

        assert worker._claim(chunks[0].id, now) is True
        assert worker._claim(chunks[0].id, now) is False

        chunk = db_session.get(BackfillQueueChunk, chunks[0].id)
        assert chunk.status == "processing"
        assert chunk.started_at == now


class TestRefreshProgress:
    """Test rolling chunk outcomes up into progress."""

    def test_partial_completion_stays_in_progress(self, db_session, backfill_factory, now):
        progress, chunks = backfill_factory(
            chunks=[(date(2024, 1, 1), date(2024, 1, 3)), (date(2024, 1, 4), date(2024, 1, 6))]
        )
        chunks[0].status = "done"
        chunks[0].records_inserted = 7
        db_session.commit()

        refresh_progress(db_session, progress.id, now)

        assert progress.status == "in_progress"
        assert progress.completed_chunks == 1
        assert progress.records_fetched == 7

    def test_superseded_progress_status_not_overwritten(self, db_session, backfill_factory, now):
        progress, chunks = backfill_factory(status="failed")
        chunks[0].status = "done"
        db_session.commit()

        refresh_progress(db_session, progress.id, now)

        assert progress.status == "failed"
        assert progress.completed_chunks == 1

    def test_unknown_progress(self, db_session, now):
        assert refresh_progress(db_session, 404, now) is None
