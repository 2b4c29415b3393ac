"""Cadence and overlap gate for beat-triggered jobs, backed by scheduled_job_locks."""

import logging
import os
import socket
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config.settings import settings
from opsync.models.scheduled_job_lock import ScheduledJobLock
from opsync.utils.timezone import utc_now

logger = logging.getLogger(__name__)

# Beat ticks drift by a few seconds; a run this close to its interval counts as due
CADENCE_GRACE_SECONDS = 30


def default_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


class JobLockService:
    """Acquire/release per-job locks.

    ``acquire`` succeeds only when the job is due (``last_run_at`` at least
    ``min_interval_minutes`` ago) and no live holder has the lock. Locks older
    than ``stale_after_minutes`` are treated as abandoned.
    """

    def __init__(self, db_session: Session, stale_after_minutes: Optional[int] = None):
        self.db_session = db_session
        self.stale_after_minutes = stale_after_minutes or settings.sync.job_lock_stale_minutes

    def _get_or_create(self, job_name: str) -> ScheduledJobLock:
        lock = self.db_session.get(ScheduledJobLock, job_name)
        if lock is not None:
            return lock

        self.db_session.add(ScheduledJobLock(job_name=job_name, is_locked=False))
        try:
            self.db_session.commit()
        except IntegrityError:
            # Another worker created it first
            self.db_session.rollback()
        return self.db_session.get(ScheduledJobLock, job_name)

    def is_due(self, job_name: str, min_interval_minutes: float, now: Optional[datetime] = None) -> bool:
        now = now or utc_now()
        lock = self._get_or_create(job_name)
        if lock.last_run_at is None or not min_interval_minutes:
            return True
        elapsed = (now - lock.last_run_at).total_seconds()
        return elapsed + CADENCE_GRACE_SECONDS >= min_interval_minutes * 60

    def acquire(
        self,
        job_name: str,
        min_interval_minutes: float = 0,
        owner: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        now = now or utc_now()

        if not self.is_due(job_name, min_interval_minutes, now):
            logger.debug(f"{job_name} not due yet")
            return False

        stale_cutoff = now - timedelta(minutes=self.stale_after_minutes)
        acquired = (
            self.db_session.query(ScheduledJobLock)
            .filter(
                ScheduledJobLock.job_name == job_name,
                or_(
                    ScheduledJobLock.is_locked == False,  # noqa: E712
                    ScheduledJobLock.locked_at.is_(None),
                    ScheduledJobLock.locked_at < stale_cutoff,
                ),
            )
            .update(
                {
                    ScheduledJobLock.is_locked: True,
                    ScheduledJobLock.locked_at: now,
                    ScheduledJobLock.locked_by: owner or default_owner(),
                },
                synchronize_session=False,
            )
        )
        self.db_session.commit()

        if acquired:
            logger.debug(f"🔒 Acquired lock for {job_name}")
        else:
            logger.info(f"{job_name} is already running elsewhere, skipping")
        return acquired == 1

    def release(self, job_name: str, started_at: datetime, now: Optional[datetime] = None) -> None:
        """Release the lock and record the run's start as last_run_at."""
        now = now or utc_now()
        self.db_session.query(ScheduledJobLock).filter(
            ScheduledJobLock.job_name == job_name
        ).update(
            {
                ScheduledJobLock.is_locked: False,
                ScheduledJobLock.locked_at: None,
                ScheduledJobLock.locked_by: None,
                ScheduledJobLock.last_run_at: started_at,
                ScheduledJobLock.last_run_duration_seconds: int((now - started_at).total_seconds()),
            },
            synchronize_session=False,
        )
        self.db_session.commit()
        logger.debug(f"🔓 Released lock for {job_name}")
