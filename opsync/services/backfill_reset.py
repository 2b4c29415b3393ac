"""Schedule resets for queued chunks."""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from opsync.models.backfill_queue import (
    BackfillQueueChunk,
    CHUNK_PENDING,
    CHUNK_PROCESSING,
    CHUNK_FAILED,
)
from opsync.utils.timezone import utc_now

logger = logging.getLogger(__name__)


def reset_schedule(
    db_session: Session, progress_id: Optional[int] = None, now: Optional[datetime] = None
) -> Dict[str, Any]:
    """Make every pending chunk (optionally of one progress) due immediately.

    Chunks in any other status are untouched. Does not commit.
    """
    now = now or utc_now()

    query = db_session.query(BackfillQueueChunk).filter(
        BackfillQueueChunk.status == CHUNK_PENDING
    )
    if progress_id is not None:
        query = query.filter(BackfillQueueChunk.progress_id == progress_id)

    chunks_updated = query.update({BackfillQueueChunk.next_run_at: now})

    logger.info(f"Reset schedule of {chunks_updated} pending chunks (progress_id={progress_id})")
    return {"success": True, "chunks_updated": chunks_updated, "progress_id": progress_id}


def recover_stuck_chunks(
    db_session: Session,
    max_attempts: int,
    stuck_after_minutes: int = 30,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Return chunks left in ``processing`` by a crashed worker to the queue.

    An interrupted run counts as a failed attempt, so a chunk that keeps
    killing its worker ends up failed instead of looping. Does not commit.
    """
    from opsync.services.queue_worker import refresh_progress

    now = now or utc_now()
    cutoff = now - timedelta(minutes=stuck_after_minutes)

    stuck = (
        db_session.query(BackfillQueueChunk)
        .filter(
            BackfillQueueChunk.status == CHUNK_PROCESSING,
            BackfillQueueChunk.started_at < cutoff,
        )
        .all()
    )

    requeued = 0
    failed = 0
    for chunk in stuck:
        chunk.attempts = (chunk.attempts or 0) + 1
        chunk.error_message = f"worker interrupted after {stuck_after_minutes} minutes"
        if chunk.attempts >= max_attempts:
            chunk.status = CHUNK_FAILED
            chunk.completed_at = now
            failed += 1
        else:
            chunk.status = CHUNK_PENDING
            chunk.next_run_at = now
            requeued += 1
    db_session.flush()

    for progress_id in {chunk.progress_id for chunk in stuck}:
        refresh_progress(db_session, progress_id, now)

    if stuck:
        logger.warning(f"⚠️ Recovered {len(stuck)} stuck chunks (requeued={requeued}, failed={failed})")

    return {"success": True, "stuck_found": len(stuck), "requeued": requeued, "failed": failed}
