"""Celery task wrappers for the sync scheduler components."""

import logging
from typing import Any, Callable, Dict

from celery import shared_task

from opsync.services.sync_config_service import SyncConfigSnapshot, load_sync_config
from opsync.services.sync_errors import ConfigError, error_result
from opsync.utils.database import get_db
from opsync.utils.timezone import utc_now

logger = logging.getLogger(__name__)


def run_gated_job(
    task,
    job_name: str,
    interval_minutes: Callable[[SyncConfigSnapshot], float],
    run: Callable[[Any], Dict[str, Any]],
) -> Dict[str, Any]:
    """Run ``run(db)`` if the job is due per sync_config and not already running.

    Beat fires every minute; this gate turns that into the configured cadence
    and records each real run in job_executions.
    """
    from opsync.services.job_execution_tracker import track_celery_task
    from opsync.services.job_lock import JobLockService

    db = next(get_db())

    try:
        try:
            config = load_sync_config(db)
        except ConfigError as e:
            logger.error(f"❌ {job_name}: {e}")
            return error_result(e, job=job_name)

        locks = JobLockService(db)
        started_at = utc_now()
        if not locks.acquire(job_name, interval_minutes(config), now=started_at):
            return {"success": True, "skipped": True, "reason": "not_due", "job": job_name}

        try:
            tracker = track_celery_task(task, db, job_name)
            with tracker:
                result = run(db)
                tracker.set_result(result)
                return result
        except Exception:
            db.rollback()
            raise
        finally:
            locks.release(job_name, started_at)

    except Exception as e:
        logger.error(f"❌ Error in {job_name} task: {e}", exc_info=True)
        raise
    finally:
        db.close()


@shared_task(name="opsync.tasks.sync_tasks.process_backfill_queue", bind=True)
def process_backfill_queue(self):
    """Process due backfill chunks (every worker_interval_minutes)."""
    from opsync.services.queue_worker import BackfillQueueWorker

    return run_gated_job(
        self,
        "process-backfill-queue",
        lambda config: config.worker_interval_minutes,
        lambda db: BackfillQueueWorker(db).run(),
    )


@shared_task(name="opsync.tasks.sync_tasks.run_incremental_sync", bind=True)
def run_incremental_sync(self):
    """Pull yesterday..today (every incremental_interval_minutes, incremental mode only)."""
    from opsync.services.incremental_sync import IncrementalSyncer

    return run_gated_job(
        self,
        "incremental-sync",
        lambda config: config.incremental_interval_minutes,
        lambda db: IncrementalSyncer(db).run(),
    )


@shared_task(name="opsync.tasks.sync_tasks.detect_data_gaps", bind=True)
def detect_data_gaps(self):
    """Report missing days (every SYNC_GAP_CHECK_INTERVAL_HOURS). Never starts a backfill."""
    from config.settings import settings
    from opsync.services.gap_detector import GapDetector

    return run_gated_job(
        self,
        "detect-data-gaps",
        lambda config: settings.sync.gap_check_interval_hours * 60,
        lambda db: GapDetector(db).detect(),
    )
