"""Model for tracking one backfill job across its queued chunks."""

from sqlalchemy import Column, Integer, String, DateTime, Date, Text
from opsync.models.base import Base
from opsync.utils.timezone import utc_now, isoformat_or_none

PROGRESS_PENDING = "pending"
PROGRESS_IN_PROGRESS = "in_progress"
PROGRESS_COMPLETED = "completed"
PROGRESS_FAILED = "failed"
ACTIVE_PROGRESS_STATUSES = (PROGRESS_PENDING, PROGRESS_IN_PROGRESS)


class BackfillProgress(Base):
    """Track progress of a chunked historical backfill."""

    __tablename__ = "backfill_progress"

    id = Column(Integer, primary_key=True)
    provider = Column(String(50), nullable=False, index=True, default="eitje")
    endpoint_set = Column(String(255), nullable=False)  # comma-joined endpoint names
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(
        String(20), nullable=False, default=PROGRESS_PENDING, index=True
    )  # pending, in_progress, completed, failed
    total_chunks = Column(Integer, nullable=False, default=0)
    completed_chunks = Column(Integer, nullable=False, default=0)
    records_fetched = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return f"<BackfillProgress {self.id} {self.start_date}..{self.end_date} {self.status}>"

    @property
    def endpoints(self):
        return [e for e in (self.endpoint_set or "").split(",") if e]

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_PROGRESS_STATUSES

    def to_dict(self):
        return {
            "id": self.id,
            "provider": self.provider,
            "endpoints": self.endpoints,
            "start_date": isoformat_or_none(self.start_date),
            "end_date": isoformat_or_none(self.end_date),
            "status": self.status,
            "total_chunks": self.total_chunks,
            "completed_chunks": self.completed_chunks,
            "records_fetched": self.records_fetched,
            "last_error": self.last_error,
            "created_at": isoformat_or_none(self.created_at),
            "completed_at": isoformat_or_none(self.completed_at),
        }
