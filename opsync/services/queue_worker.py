"""Backfill queue worker: claims due chunks and pulls them from the provider."""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from config.settings import settings
from opsync.integrations.eitje import ENDPOINT_CONFIG
from opsync.models.backfill_progress import (
    BackfillProgress,
    ACTIVE_PROGRESS_STATUSES,
    PROGRESS_COMPLETED,
    PROGRESS_FAILED,
)
from opsync.models.backfill_queue import (
    BackfillQueueChunk,
    CHUNK_PENDING,
    CHUNK_PROCESSING,
    CHUNK_DONE,
    CHUNK_FAILED,
)
from opsync.processors.daily_aggregator import DailyAggregator
from opsync.services.provider_sync import ProviderSyncService
from opsync.services.sync_config_service import load_sync_config, SyncConfigSnapshot
from opsync.services.sync_errors import ConfigError, SupersededError, error_result
from opsync.utils.timezone import utc_now, isoformat_or_none

logger = logging.getLogger(__name__)


def refresh_progress(db_session: Session, progress_id: int, now: datetime) -> Optional[BackfillProgress]:
    """Roll chunk outcomes up into the owning progress row. Does not commit.

    Counters are always refreshed. Status only moves while the progress is
    still active: any terminally failed chunk fails it, all chunks done
    completes it.
    """
    progress = db_session.get(BackfillProgress, progress_id)
    if progress is None:
        return None

    counts = dict(
        db_session.query(BackfillQueueChunk.status, func.count(BackfillQueueChunk.id))
        .filter(BackfillQueueChunk.progress_id == progress_id)
        .group_by(BackfillQueueChunk.status)
        .all()
    )
    records = (
        db_session.query(func.coalesce(func.sum(BackfillQueueChunk.records_inserted), 0))
        .filter(
            BackfillQueueChunk.progress_id == progress_id,
            BackfillQueueChunk.status == CHUNK_DONE,
        )
        .scalar()
    )

    progress.completed_chunks = counts.get(CHUNK_DONE, 0)
    progress.records_fetched = int(records or 0)

    if progress.status in ACTIVE_PROGRESS_STATUSES:
        failed_count = counts.get(CHUNK_FAILED, 0)
        if failed_count:
            last_failed = (
                db_session.query(BackfillQueueChunk)
                .filter(
                    BackfillQueueChunk.progress_id == progress_id,
                    BackfillQueueChunk.status == CHUNK_FAILED,
                )
                .order_by(BackfillQueueChunk.updated_at.desc(), BackfillQueueChunk.id.desc())
                .first()
            )
            progress.status = PROGRESS_FAILED
            progress.last_error = (
                f"{failed_count} chunk(s) failed; last: "
                f"{last_failed.chunk_start}..{last_failed.chunk_end}: {last_failed.error_message}"
            )
            progress.completed_at = now
            logger.error(f"❌ Backfill {progress_id} failed: {progress.last_error}")
        elif progress.completed_chunks >= progress.total_chunks:
            progress.status = PROGRESS_COMPLETED
            progress.completed_at = now
            logger.info(f"✅ Backfill {progress_id} completed ({progress.records_fetched} records)")

    db_session.flush()
    return progress


class BackfillQueueWorker:
    """Processes due backfill chunks, one scheduler tick at a time.

    Chunks are claimed with a conditional ``pending -> processing`` update so
    overlapping ticks never process the same chunk. Failed chunks are retried
    with linear backoff up to ``max_chunk_attempts``.
    """

    def __init__(
        self,
        db_session: Session,
        sync_service: Optional[ProviderSyncService] = None,
        processor: Optional[DailyAggregator] = None,
        max_chunks_per_run: Optional[int] = None,
    ):
        self.db_session = db_session
        self.sync_service = sync_service or ProviderSyncService(db_session, provider=settings.sync.provider)
        self.processor = processor or DailyAggregator(db_session, provider=settings.sync.provider)
        self.max_chunks_per_run = max_chunks_per_run or settings.sync.max_chunks_per_run

    def run(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utc_now()
        results: List[Dict[str, Any]] = []

        try:
            return self._run(now, results)
        except ConfigError as e:
            logger.error(f"❌ Queue worker cannot start: {e}")
            return error_result(e, chunks_processed=0)
        except Exception as e:
            self.db_session.rollback()
            logger.error(f"❌ Queue worker run failed: {e}", exc_info=True)
            return error_result(e, chunks_processed=len(results), results=results)

    def _run(self, now: datetime, results: List[Dict[str, Any]]) -> Dict[str, Any]:
        config = load_sync_config(self.db_session)

        due_ids = [
            row.id
            for row in self.db_session.query(BackfillQueueChunk.id)
            .filter(
                BackfillQueueChunk.status == CHUNK_PENDING,
                BackfillQueueChunk.next_run_at <= now,
            )
            .order_by(BackfillQueueChunk.next_run_at, BackfillQueueChunk.id)
            .limit(self.max_chunks_per_run)
            .all()
        ]

        if not due_ids:
            logger.debug("No backfill chunks due")
            return {
                "success": True,
                "chunks_processed": 0,
                "results": [],
                "total_inserted": 0,
                "message": "No chunks due",
            }

        for chunk_id in due_ids:
            if not self._claim(chunk_id, now):
                logger.info(f"Chunk {chunk_id} already claimed by another tick, skipping")
                continue
            try:
                results.append(self._process_chunk(chunk_id, config, now))
            except Exception as e:
                self.db_session.rollback()
                logger.error(f"❌ Chunk {chunk_id} crashed: {e}", exc_info=True)
                results.append(self._release_crashed(chunk_id, config, now, e))

        return {
            "success": all(r["status"] == CHUNK_DONE for r in results),
            "chunks_processed": len(results),
            "results": results,
            "total_inserted": sum(r["inserted"] for r in results),
        }

    def _claim(self, chunk_id: int, now: datetime) -> bool:
        claimed = (
            self.db_session.query(BackfillQueueChunk)
            .filter(
                BackfillQueueChunk.id == chunk_id,
                BackfillQueueChunk.status == CHUNK_PENDING,
            )
            .update({BackfillQueueChunk.status: CHUNK_PROCESSING, BackfillQueueChunk.started_at: now})
        )
        self.db_session.commit()
        return claimed == 1

    def _current_status(self, chunk_id: int) -> Optional[str]:
        return (
            self.db_session.query(BackfillQueueChunk.status)
            .filter(BackfillQueueChunk.id == chunk_id)
            .scalar()
        )

    def _failure_values(self, attempts: int, error_message: str, config: SyncConfigSnapshot, now: datetime):
        """Outcome columns for a failed attempt, plus the retry time (None once exhausted)."""
        if attempts >= config.max_chunk_attempts:
            return {
                BackfillQueueChunk.status: CHUNK_FAILED,
                BackfillQueueChunk.attempts: attempts,
                BackfillQueueChunk.error_message: error_message,
                BackfillQueueChunk.completed_at: now,
            }, None
        next_run_at = now + timedelta(minutes=config.worker_interval_minutes * attempts)
        return {
            BackfillQueueChunk.status: CHUNK_PENDING,
            BackfillQueueChunk.attempts: attempts,
            BackfillQueueChunk.error_message: error_message,
            BackfillQueueChunk.next_run_at: next_run_at,
        }, next_run_at

    def _write_outcome(self, chunk_id: int, values) -> bool:
        # Only write the outcome if cleanup has not failed the chunk meanwhile
        updated = (
            self.db_session.query(BackfillQueueChunk)
            .filter(
                BackfillQueueChunk.id == chunk_id,
                BackfillQueueChunk.status == CHUNK_PROCESSING,
            )
            .update(values)
        )
        return updated == 1

    def _release_crashed(
        self, chunk_id: int, config: SyncConfigSnapshot, now: datetime, error: Exception
    ) -> Dict[str, Any]:
        """Put a chunk whose processing raised back in the queue, charging the attempt."""
        chunk = self.db_session.get(BackfillQueueChunk, chunk_id)
        attempts = (chunk.attempts or 0) + 1
        values, next_run_at = self._failure_values(attempts, f"worker error: {error}"[:2000], config, now)
        written = self._write_outcome(chunk_id, values)
        refresh_progress(self.db_session, chunk.progress_id, now)
        self.db_session.commit()

        return {
            "chunk_id": chunk_id,
            "progress_id": chunk.progress_id,
            "chunk_start": chunk.chunk_start.isoformat(),
            "chunk_end": chunk.chunk_end.isoformat(),
            "status": self._current_status(chunk_id),
            "superseded": not written,
            "attempts": attempts if written else chunk.attempts,
            "inserted": 0,
            "next_run_at": isoformat_or_none(next_run_at if written else None),
            "endpoints": [],
            "error": str(error),
        }

    def _sync_endpoint(self, endpoint: str, start, end) -> int:
        result = self.sync_service.sync(endpoint, start, end, mode="backfill")
        endpoint_config = ENDPOINT_CONFIG.get(endpoint)
        if endpoint_config and endpoint_config.requires_aggregation:
            self.processor.process(endpoint, start, end)
            self.db_session.commit()
        return result["records_inserted"]

    def _process_chunk(self, chunk_id: int, config: SyncConfigSnapshot, now: datetime) -> Dict[str, Any]:
        chunk = self.db_session.get(BackfillQueueChunk, chunk_id)
        progress_id = chunk.progress_id
        start, end = chunk.chunk_start, chunk.chunk_end
        endpoints = list(chunk.endpoints or [])
        previous_attempts = chunk.attempts or 0

        logger.info(f"🔄 Processing chunk {chunk_id} ({start}..{end}) for progress {progress_id}: {endpoints}")

        endpoint_results: List[Dict[str, Any]] = []
        errors: List[str] = []
        inserted = 0
        superseded = False

        for endpoint in endpoints:
            try:
                count = self._sync_endpoint(endpoint, start, end)
                inserted += count
                endpoint_results.append({"endpoint": endpoint, "success": True, "inserted": count})
            except SupersededError as e:
                endpoint_results.append({"endpoint": endpoint, "success": False, "error": str(e)})
                if self._current_status(chunk_id) != CHUNK_PROCESSING:
                    logger.warning(f"Chunk {chunk_id} superseded while syncing {endpoint}: {e}")
                    superseded = True
                    break
                # The log was cancelled but this chunk's backfill is still current
                logger.warning(f"⚠️ Chunk {chunk_id} endpoint {endpoint} log cancelled: {e}")
                errors.append(f"{endpoint}: {e}")
            except Exception as e:
                self.db_session.rollback()
                logger.error(f"❌ Chunk {chunk_id} endpoint {endpoint} failed: {e}")
                errors.append(f"{endpoint}: {e}")
                endpoint_results.append({"endpoint": endpoint, "success": False, "error": str(e)})

        attempts = previous_attempts
        next_run_at = None
        if not superseded:
            if not errors:
                values = {
                    BackfillQueueChunk.status: CHUNK_DONE,
                    BackfillQueueChunk.completed_at: now,
                    BackfillQueueChunk.records_inserted: inserted,
                    BackfillQueueChunk.error_message: None,
                }
            else:
                attempts = previous_attempts + 1
                values, next_run_at = self._failure_values(attempts, "; ".join(errors)[:2000], config, now)
            superseded = not self._write_outcome(chunk_id, values)
            if superseded:
                attempts = previous_attempts
                next_run_at = None

        refresh_progress(self.db_session, progress_id, now)
        self.db_session.commit()

        status = self._current_status(chunk_id)
        if superseded:
            logger.warning(f"Chunk {chunk_id} was superseded, outcome not recorded")
        elif status == CHUNK_DONE:
            logger.info(f"✅ Chunk {chunk_id} done ({inserted} new records)")
        elif status == CHUNK_PENDING:
            logger.warning(f"⚠️ Chunk {chunk_id} attempt {attempts} failed, retry at {next_run_at}")

        return {
            "chunk_id": chunk_id,
            "progress_id": progress_id,
            "chunk_start": start.isoformat(),
            "chunk_end": end.isoformat(),
            "status": status,
            "superseded": superseded,
            "attempts": attempts,
            "inserted": inserted,
            "next_run_at": isoformat_or_none(next_run_at),
            "endpoints": endpoint_results,
        }
