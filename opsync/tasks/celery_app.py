"""Celery application configuration for scheduled sync processing."""

from celery import Celery
from celery.schedules import crontab

from config.settings import settings

celery_app = Celery(
    'ops_sync',
    include=[
        'opsync.tasks.sync_tasks',
        'opsync.tasks.cleanup_tasks',
    ]
)

celery_app.conf.update(
    broker_url=settings.celery.broker_url,
    result_backend=settings.celery.result_backend,
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # One chunk never needs more than a few minutes
    task_soft_time_limit=25 * 60,
    worker_max_tasks_per_child=100,
    broker_connection_retry_on_startup=True,
    broker_connection_max_retries=10,
    result_expires=3600,
    # Late acknowledgment: requeue if the worker dies mid-task
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
)

# Beat only emits ticks. The effective cadence of the sync jobs comes from the
# sync_config row and is enforced per job through scheduled_job_locks.
celery_app.conf.beat_schedule = {
    # ========== Sync Ticks ==========
    'process-backfill-queue': {
        'task': 'opsync.tasks.sync_tasks.process_backfill_queue',
        'schedule': crontab(minute='*'),
    },
    'incremental-sync': {
        'task': 'opsync.tasks.sync_tasks.run_incremental_sync',
        'schedule': crontab(minute='*'),
    },
    # Gap detection interval comes from SYNC_GAP_CHECK_INTERVAL_HOURS
    'detect-data-gaps': {
        'task': 'opsync.tasks.sync_tasks.detect_data_gaps',
        'schedule': crontab(minute=15),
    },

    # ========== Maintenance ==========
    'recover-stuck-chunks': {
        'task': 'opsync.tasks.cleanup_tasks.recover_stuck_chunks',
        'schedule': crontab(minute='*/10'),
    },
    'cleanup-stuck-jobs': {
        'task': 'opsync.tasks.cleanup_tasks.cleanup_stuck_job_executions',
        'schedule': crontab(minute=45),
    },
}

__all__ = ['celery_app']
