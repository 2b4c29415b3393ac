"""Cleanup and maintenance tasks for the sync scheduler."""

import logging
from datetime import timedelta
from typing import Dict, Any

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(name="opsync.tasks.cleanup_tasks.recover_stuck_chunks", bind=True)
def recover_stuck_chunks(self, stuck_after_minutes: int = None) -> Dict[str, Any]:
    """
    Requeue backfill chunks left in 'processing' by a crashed or killed worker.

    Args:
        stuck_after_minutes: Minutes in processing before a chunk counts as stuck
            (default: SYNC_STUCK_CHUNK_MINUTES)

    Returns:
        Dict with recovery statistics
    """
    from config.settings import settings
    from opsync.services.backfill_reset import recover_stuck_chunks as recover
    from opsync.services.job_execution_tracker import track_celery_task
    from opsync.services.sync_config_service import load_sync_config
    from opsync.utils.database import get_db

    threshold = stuck_after_minutes or settings.sync.stuck_chunk_minutes
    db = next(get_db())

    try:
        tracker = track_celery_task(self, db, "recover-stuck-chunks")
        with tracker:
            config = load_sync_config(db)
            result = recover(db, max_attempts=config.max_chunk_attempts, stuck_after_minutes=threshold)
            db.commit()
            tracker.set_result(result)
            return result

    except Exception as e:
        logger.error(f"❌ Error recovering stuck chunks: {e}", exc_info=True)
        raise
    finally:
        db.close()


def cleanup_stuck_executions(db, hours_threshold: int = 6) -> Dict[str, Any]:
    """Mark job executions stuck in 'running' as timed out. Commits."""
    from opsync.models.job_execution import JobExecution
    from opsync.utils.timezone import utc_now

    now = utc_now()
    cutoff_time = now - timedelta(hours=hours_threshold)

    stuck_jobs = (
        db.query(JobExecution)
        .filter(
            JobExecution.status == "running",
            JobExecution.started_at < cutoff_time,
        )
        .all()
    )

    for job in stuck_jobs:
        duration = int((now - job.started_at).total_seconds())
        job.status = "timeout"
        job.completed_at = now
        job.duration_seconds = duration
        job.error_message = (
            f"Task stuck in running state - automatically cleaned up after {duration}s"
        )
        logger.info(f"  ⏱️  Marked {job.job_name} (id={job.id}) as timeout")

    db.commit()
    return {"success": True, "stuck_jobs_found": len(stuck_jobs), "marked_as_timeout": len(stuck_jobs)}


@shared_task(name="opsync.tasks.cleanup_tasks.cleanup_stuck_job_executions", bind=True)
def cleanup_stuck_job_executions(self, hours_threshold: int = 6) -> Dict[str, Any]:
    """
    Clean up job executions that are stuck in 'running' state.

    Args:
        hours_threshold: Number of hours before considering a job stuck (default: 6)

    Returns:
        Dict with cleanup statistics
    """
    from opsync.services.job_execution_tracker import track_celery_task
    from opsync.utils.database import get_db

    logger.info(f"🧹 Starting cleanup of stuck job executions (threshold: {hours_threshold}h)...")
    db = next(get_db())

    try:
        tracker = track_celery_task(self, db, "cleanup-stuck-jobs")
        with tracker:
            result = cleanup_stuck_executions(db, hours_threshold)
            logger.info(f"✅ Cleanup complete: {result['marked_as_timeout']} marked as timeout")
            tracker.set_result(result)
            return result

    except Exception as e:
        logger.error(f"❌ Error in cleanup stuck jobs task: {e}", exc_info=True)
        raise
    finally:
        db.close()
