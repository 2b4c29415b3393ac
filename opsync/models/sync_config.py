"""Sync configuration model (singleton row driving scheduler behavior)."""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from opsync.models.base import Base
from opsync.utils.timezone import utc_now, isoformat_or_none

SYNC_CONFIG_ID = 1

MODE_MANUAL = "manual"
MODE_INCREMENTAL = "incremental"
SYNC_MODES = (MODE_MANUAL, MODE_INCREMENTAL)


class SyncConfig(Base):
    """Operating mode and scheduling parameters for provider syncs.

    There is exactly one row (id=1). Operators change it through the config
    API/CLI; the gap detector only stamps last_gap_check_at.
    """

    __tablename__ = "sync_config"

    id = Column(Integer, primary_key=True, default=SYNC_CONFIG_ID)
    provider = Column(String(50), nullable=False, default="eitje")
    mode = Column(String(20), nullable=False, default=MODE_MANUAL)  # manual, incremental
    enabled_endpoints = Column(JSON, nullable=False, default=list)

    incremental_interval_minutes = Column(Integer, nullable=False, default=60)
    worker_interval_minutes = Column(Integer, nullable=False, default=5)

    # Hour-of-day UTC, half-open [start, end); equal values disable the window
    quiet_hours_start = Column(Integer, nullable=False, default=0)
    quiet_hours_end = Column(Integer, nullable=False, default=0)

    max_chunk_attempts = Column(Integer, nullable=False, default=3)

    last_gap_check_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return f"<SyncConfig mode={self.mode} endpoints={self.enabled_endpoints}>"

    def to_dict(self):
        """Convert to dictionary for API responses."""
        return {
            "provider": self.provider,
            "mode": self.mode,
            "enabled_endpoints": list(self.enabled_endpoints or []),
            "incremental_interval_minutes": self.incremental_interval_minutes,
            "worker_interval_minutes": self.worker_interval_minutes,
            "quiet_hours_start": self.quiet_hours_start,
            "quiet_hours_end": self.quiet_hours_end,
            "max_chunk_attempts": self.max_chunk_attempts,
            "last_gap_check_at": isoformat_or_none(self.last_gap_check_at),
            "updated_at": isoformat_or_none(self.updated_at),
        }
