"""Starts chunked historical backfills."""

import logging
import math
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from config.settings import settings
from opsync.integrations.eitje import SUPPORTED_ENDPOINTS
from opsync.models.backfill_progress import BackfillProgress, PROGRESS_IN_PROGRESS
from opsync.models.backfill_queue import BackfillQueueChunk, CHUNK_PENDING
from opsync.services.backfill_cleanup import cleanup_superseded
from opsync.services.chunk_planner import plan_chunks
from opsync.services.sync_config_service import load_sync_config
from opsync.services.sync_errors import InputError, SyncError, error_result
from opsync.utils.timezone import utc_now

logger = logging.getLogger(__name__)


def validate_endpoints(endpoints: Optional[Iterable[str]]) -> Optional[List[str]]:
    """Explicit endpoint lists must be non-empty and supported; None means "use defaults"."""
    if endpoints is None:
        return None
    endpoints = list(dict.fromkeys(endpoints))
    if not endpoints:
        raise InputError("At least one endpoint is required")
    unknown = [e for e in endpoints if e not in SUPPORTED_ENDPOINTS]
    if unknown:
        raise InputError(f"Unsupported endpoints: {', '.join(unknown)}")
    return endpoints


class BackfillOrchestrator:
    """Creates a progress record plus one staggered queue chunk per planned date range.

    Everything happens in one transaction together with the cleanup of
    superseded work: either the new backfill fully exists and older ones are
    failed, or nothing changed.
    """

    def __init__(self, db_session: Session, chunk_size: Optional[int] = None, provider: Optional[str] = None):
        self.db_session = db_session
        self.chunk_size = chunk_size or settings.sync.chunk_size_days
        self.provider = provider or settings.sync.provider

    def start_backfill(
        self,
        start_date: date,
        end_date: date,
        endpoints: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
        supersede_previous: bool = True,
    ) -> Dict[str, Any]:
        """
        Plan and enqueue a backfill for [start_date, end_date].

        Returns:
            Dict with progress_id, total_chunks, worker_interval_minutes,
            estimated duration and the planned chunks; on failure a
            ``success: False`` result with error_type
        """
        try:
            return self._start(start_date, end_date, endpoints, now or utc_now(), supersede_previous)
        except SyncError as e:
            self.db_session.rollback()
            logger.warning(f"Backfill {start_date}..{end_date} rejected: {e}")
            return error_result(e)
        except Exception as e:
            self.db_session.rollback()
            logger.error(f"❌ Error starting backfill {start_date}..{end_date}: {e}", exc_info=True)
            return error_result(e)

    def _start(self, start_date, end_date, endpoints, now, supersede_previous) -> Dict[str, Any]:
        if start_date > end_date:
            raise InputError(f"start_date {start_date} is after end_date {end_date}")
        endpoints = validate_endpoints(endpoints)

        config = load_sync_config(self.db_session)
        if endpoints is None:
            endpoints = list(SUPPORTED_ENDPOINTS)

        chunks = plan_chunks(start_date, end_date, self.chunk_size)
        interval = config.worker_interval_minutes

        progress = BackfillProgress(
            provider=self.provider,
            endpoint_set=",".join(endpoints),
            start_date=start_date,
            end_date=end_date,
            status=PROGRESS_IN_PROGRESS,
            total_chunks=len(chunks),
        )
        self.db_session.add(progress)
        self.db_session.flush()

        queued = []
        for index, chunk in enumerate(chunks):
            queued.append(
                BackfillQueueChunk(
                    progress_id=progress.id,
                    chunk_start=chunk.start,
                    chunk_end=chunk.end,
                    endpoints=list(endpoints),
                    status=CHUNK_PENDING,
                    next_run_at=now + timedelta(minutes=index * interval),
                    attempts=0,
                )
            )
        self.db_session.add_all(queued)
        self.db_session.flush()

        cleanup = None
        if supersede_previous:
            cleanup = cleanup_superseded(
                self.db_session, current_progress_id=progress.id, provider=self.provider, now=now
            )

        self.db_session.commit()

        duration_minutes = len(chunks) * interval
        logger.info(
            f"🚀 Backfill {progress.id} queued: {start_date}..{end_date}, "
            f"{len(chunks)} chunks every {interval} min, endpoints={endpoints}"
        )

        return {
            "success": True,
            "progress_id": progress.id,
            "total_chunks": len(chunks),
            "worker_interval_minutes": interval,
            "estimated_duration_minutes": duration_minutes,
            "estimated_duration_hours": math.ceil(duration_minutes / 60),
            "estimated_completion_at": (now + timedelta(minutes=duration_minutes)).isoformat(),
            "endpoints": endpoints,
            "chunks": [chunk.to_dict() for chunk in queued],
            "cleanup": cleanup,
        }


def get_backfill_status(db_session: Session, progress_id: int) -> Optional[Dict[str, Any]]:
    """A progress record with its chunks and per-status chunk counts."""
    progress = db_session.get(BackfillProgress, progress_id)
    if progress is None:
        return None

    chunks = (
        db_session.query(BackfillQueueChunk)
        .filter(BackfillQueueChunk.progress_id == progress_id)
        .order_by(BackfillQueueChunk.chunk_start)
        .all()
    )
    counts: Dict[str, int] = {}
    for chunk in chunks:
        counts[chunk.status] = counts.get(chunk.status, 0) + 1

    return {**progress.to_dict(), "chunk_counts": counts, "chunks": [c.to_dict() for c in chunks]}


def list_backfills(db_session: Session, limit: int = 20) -> List[Dict[str, Any]]:
    rows = (
        db_session.query(BackfillProgress)
        .order_by(BackfillProgress.created_at.desc(), BackfillProgress.id.desc())
        .limit(limit)
        .all()
    )
    return [row.to_dict() for row in rows]
