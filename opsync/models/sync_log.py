"""Provider sync attempt log."""

from sqlalchemy import Column, Integer, String, DateTime, Date, Text, Index
from opsync.models.base import Base
from opsync.utils.timezone import utc_now, isoformat_or_none, format_local_datetime

LOG_PENDING = "pending"
LOG_SUCCEEDED = "succeeded"
LOG_FAILED = "failed"


class SyncLog(Base):
    """One provider API call attempt for an endpoint and date range."""

    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True)
    provider = Column(String(50), nullable=False, index=True)
    endpoint = Column(String(100), nullable=False)
    sync_mode = Column(String(20), nullable=False)  # backfill, incremental, manual
    date_range_start = Column(Date, nullable=True)
    date_range_end = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default=LOG_PENDING, index=True)
    records_fetched = Column(Integer, nullable=False, default=0)
    records_inserted = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime, default=utc_now, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (Index("idx_sync_logs_recent", "provider", "started_at"),)

    def __repr__(self):
        return f"<SyncLog {self.provider}/{self.endpoint} {self.status}>"

    def to_dict(self):
        duration = None
        if self.started_at and self.completed_at:
            duration = int((self.completed_at - self.started_at).total_seconds())
        return {
            "id": self.id,
            "provider": self.provider,
            "endpoint": self.endpoint,
            "sync_mode": self.sync_mode,
            "date_range_start": isoformat_or_none(self.date_range_start),
            "date_range_end": isoformat_or_none(self.date_range_end),
            "status": self.status,
            "records_fetched": self.records_fetched,
            "records_inserted": self.records_inserted,
            "error_message": self.error_message,
            "started_at": isoformat_or_none(self.started_at),
            "started_at_local": format_local_datetime(self.started_at),
            "completed_at": isoformat_or_none(self.completed_at),
            "duration_seconds": duration,
        }
