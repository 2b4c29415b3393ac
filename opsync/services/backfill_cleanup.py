"""Supersede earlier, still-incomplete backfill work.

The newest backfill is authoritative. Older progress rows, their open chunks
and any pending provider logs are marked failed; nothing is deleted.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from opsync.models.backfill_progress import (
    BackfillProgress,
    ACTIVE_PROGRESS_STATUSES,
    PROGRESS_FAILED,
)
from opsync.models.backfill_queue import BackfillQueueChunk, OPEN_CHUNK_STATUSES, CHUNK_FAILED
from opsync.models.sync_log import SyncLog, LOG_PENDING, LOG_FAILED
from opsync.utils.timezone import utc_now

logger = logging.getLogger(__name__)

SUPERSEDED_LOG_MESSAGE = "superseded"
SUPERSEDED_REASON = "superseded by new backfill"


def cleanup_superseded(
    db_session: Session,
    current_progress_id: Optional[int] = None,
    provider: str = "eitje",
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Fail every incomplete backfill record except ``current_progress_id``.

    Does not commit; the orchestrator runs this inside its own transaction and
    the API/CLI run it inside ``session_scope``. Running it twice changes
    nothing the second time.

    Returns:
        Dict with cancelled_logs, failed_progress and failed_queue counts
    """
    now = now or utc_now()

    cancelled_logs = (
        db_session.query(SyncLog)
        .filter(
            SyncLog.provider == provider,
            SyncLog.status == LOG_PENDING,
            SyncLog.date_range_start.isnot(None),
            SyncLog.date_range_end.isnot(None),
        )
        .update(
            {
                SyncLog.status: LOG_FAILED,
                SyncLog.error_message: SUPERSEDED_LOG_MESSAGE,
                SyncLog.completed_at: now,
            }
        )
    )

    progress_query = db_session.query(BackfillProgress).filter(
        BackfillProgress.provider == provider,
        BackfillProgress.status.in_(ACTIVE_PROGRESS_STATUSES),
    )
    if current_progress_id is not None:
        progress_query = progress_query.filter(BackfillProgress.id != current_progress_id)
    failed_progress = progress_query.update(
        {
            BackfillProgress.status: PROGRESS_FAILED,
            BackfillProgress.last_error: SUPERSEDED_REASON,
            BackfillProgress.completed_at: now,
        }
    )

    provider_progress_ids = select(BackfillProgress.id).where(BackfillProgress.provider == provider)
    queue_query = db_session.query(BackfillQueueChunk).filter(
        BackfillQueueChunk.status.in_(OPEN_CHUNK_STATUSES),
        BackfillQueueChunk.progress_id.in_(provider_progress_ids),
    )
    if current_progress_id is not None:
        queue_query = queue_query.filter(BackfillQueueChunk.progress_id != current_progress_id)
    failed_queue = queue_query.update(
        {
            BackfillQueueChunk.status: CHUNK_FAILED,
            BackfillQueueChunk.error_message: SUPERSEDED_REASON,
            BackfillQueueChunk.completed_at: now,
        }
    )

    if cancelled_logs or failed_progress or failed_queue:
        logger.info(
            f"🧹 Superseded prior backfill work: logs={cancelled_logs}, "
            f"progress={failed_progress}, chunks={failed_queue}"
        )

    return {
        "success": True,
        "cancelled_logs": cancelled_logs,
        "failed_progress": failed_progress,
        "failed_queue": failed_queue,
    }
