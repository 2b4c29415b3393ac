"""Scheduled job lock model gating beat ticks against overlap and cadence."""

from sqlalchemy import Column, String, DateTime, Boolean, Integer
from .base import Base
from opsync.utils.timezone import utc_now


class ScheduledJobLock(Base):
    """
    Per-job lock row for beat-triggered sync jobs.

    Beat ticks every minute; the real cadence comes from sync_config.
    A tick runs only when:
    - no other run holds the lock (or the holder is stale), and
    - last_run_at is older than the configured interval
    """

    __tablename__ = "scheduled_job_locks"

    job_name = Column(String(100), primary_key=True, nullable=False)

    is_locked = Column(Boolean, default=False, nullable=False, index=True)
    locked_at = Column(DateTime, nullable=True)
    locked_by = Column(String(255), nullable=True)

    last_run_at = Column(DateTime, nullable=True, index=True)  # Start of last finished run
    last_run_duration_seconds = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return (
            f"<ScheduledJobLock(job_name={self.job_name}, "
            f"is_locked={self.is_locked}, "
            f"last_run_at={self.last_run_at})>"
        )
