"""Job execution tracking service for Celery Beat scheduled sync tasks.

Usage:
    tracker = JobExecutionTracker(db_session, job_name="incremental-sync")
    with tracker:
        result = IncrementalSyncer(db_session).run()
        tracker.set_result(result)
"""

import logging
import traceback
from typing import Any, Dict, List, Optional
from contextlib import contextmanager

from sqlalchemy.orm import Session
from celery import Task

from opsync.models.job_execution import JobExecution
from opsync.config.job_monitoring_config import get_job_config
from opsync.utils.timezone import utc_now

logger = logging.getLogger(__name__)


class JobExecutionTracker:
    """Records the lifecycle of one scheduled job run in job_executions."""

    def __init__(
        self,
        db_session: Session,
        job_name: str,
        task_id: Optional[str] = None,
        worker_name: Optional[str] = None,
        celery_queue: Optional[str] = None,
    ):
        self.db_session = db_session
        self.job_name = job_name
        self.task_id = task_id
        self.worker_name = worker_name
        self.celery_queue = celery_queue

        try:
            self.job_config = get_job_config(job_name)
            self.job_category = self.job_config.category
            self.priority = self.job_config.priority
        except KeyError:
            logger.warning(f"Job '{job_name}' not found in monitoring config. Using defaults.")
            self.job_config = None
            self.job_category = "unknown"
            self.priority = "normal"

        self.execution: Optional[JobExecution] = None
        self._result_data: Optional[Dict[str, Any]] = None

    def start(self) -> JobExecution:
        """Create the execution record with status='running'."""
        self.execution = JobExecution(
            job_name=self.job_name,
            job_category=self.job_category,
            task_id=self.task_id,
            status="running",
            started_at=utc_now(),
            worker_name=self.worker_name,
            celery_queue=self.celery_queue,
            priority=self.priority,
        )

        try:
            self.db_session.add(self.execution)
            self.db_session.commit()
            logger.debug(f"Started tracking job execution: {self.job_name} (id={self.execution.id})")
        except Exception as e:
            logger.error(f"Failed to create job execution record for {self.job_name}: {e}")
            self.db_session.rollback()
            raise

        return self.execution

    def set_result(self, result_data: Dict[str, Any]) -> None:
        self._result_data = result_data

    def complete(self, result_data: Optional[Dict[str, Any]] = None) -> None:
        """Mark the run successful, or skipped when the result says so."""
        if not self.execution:
            logger.warning(f"Cannot complete job {self.job_name}: execution not started")
            return

        final_result = result_data or self._result_data
        completed_at = utc_now()
        duration = int((completed_at - self.execution.started_at).total_seconds())

        skipped = bool(final_result and final_result.get("skipped"))
        self.execution.status = "skipped" if skipped else "success"
        self.execution.completed_at = completed_at
        self.execution.duration_seconds = duration
        self.execution.result_data = final_result

        try:
            self.db_session.commit()
            logger.info(f"✅ Job completed: {self.job_name} (duration={duration}s, id={self.execution.id})")

            if self.job_config and duration > self.job_config.expected_duration_seconds:
                logger.warning(
                    f"⚠️ Job {self.job_name} took longer than expected: "
                    f"{duration}s vs {self.job_config.expected_duration_seconds}s"
                )
        except Exception as e:
            logger.error(f"Failed to update job execution record for {self.job_name}: {e}")
            self.db_session.rollback()

    def fail(self, error: Exception, retry_count: int = 0) -> None:
        if not self.execution:
            logger.warning(f"Cannot mark job {self.job_name} as failed: execution not started")
            return

        self.db_session.rollback()

        completed_at = utc_now()
        duration = int((completed_at - self.execution.started_at).total_seconds())

        self.execution.status = "failed"
        self.execution.completed_at = completed_at
        self.execution.duration_seconds = duration
        self.execution.error_message = str(error)
        self.execution.error_traceback = traceback.format_exc()
        self.execution.retry_count = retry_count

        try:
            self.db_session.commit()
            logger.error(
                f"❌ Job failed: {self.job_name} "
                f"(duration={duration}s, error={str(error)[:100]}, id={self.execution.id})"
            )
        except Exception as e:
            logger.error(f"Failed to update job execution record for {self.job_name}: {e}")
            self.db_session.rollback()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.complete()
        else:
            self.fail(error=exc_val)

        # Always re-raise exception (don't suppress)
        return False


def track_celery_task(task: Task, db_session: Session, job_name: str) -> JobExecutionTracker:
    """Create a tracker for a Celery task with automatic context extraction."""
    request = task.request if task else None
    delivery_info = getattr(request, "delivery_info", None) or {}
    return JobExecutionTracker(
        db_session=db_session,
        job_name=job_name,
        task_id=getattr(request, "id", None),
        worker_name=getattr(request, "hostname", None),
        celery_queue=delivery_info.get("routing_key"),
    )


@contextmanager
def track_job_execution(db_session: Session, job_name: str, task: Optional[Task] = None):
    """Context manager for tracking job execution (simplified API).

    Usage:
        with track_job_execution(db_session, "detect-data-gaps") as tracker:
            tracker.set_result(GapDetector(db_session).detect())
    """
    if task:
        tracker = track_celery_task(task, db_session, job_name)
    else:
        tracker = JobExecutionTracker(db_session, job_name)

    with tracker:
        yield tracker


def get_recent_executions(
    db_session: Session,
    job_name: Optional[str] = None,
    failed_only: bool = False,
    limit: int = 20,
) -> List[JobExecution]:
    """Recent job executions, newest first."""
    query = db_session.query(JobExecution)

    if failed_only:
        query = query.filter(JobExecution.status.in_(["failed", "timeout"]))
    if job_name:
        query = query.filter(JobExecution.job_name == job_name)

    return query.order_by(JobExecution.started_at.desc()).limit(limit).all()
