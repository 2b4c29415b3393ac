"""Queued backfill chunk model."""

from sqlalchemy import Column, Integer, String, DateTime, Date, Text, JSON, ForeignKey, Index
from opsync.models.base import Base
from opsync.utils.timezone import utc_now, isoformat_or_none

CHUNK_PENDING = "pending"
CHUNK_PROCESSING = "processing"
CHUNK_DONE = "done"
CHUNK_FAILED = "failed"
OPEN_CHUNK_STATUSES = (CHUNK_PENDING, CHUNK_PROCESSING)


class BackfillQueueChunk(Base):
    """One date sub-range of a backfill, processed by a single worker tick."""

    __tablename__ = "backfill_queue"

    id = Column(Integer, primary_key=True)
    # No cascade: chunks outlive their progress row for auditing
    progress_id = Column(
        Integer, ForeignKey("backfill_progress.id"), nullable=False, index=True
    )
    chunk_start = Column(Date, nullable=False)
    chunk_end = Column(Date, nullable=False)
    endpoints = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default=CHUNK_PENDING)
    next_run_at = Column(DateTime, nullable=False, default=utc_now)
    attempts = Column(Integer, nullable=False, default=0)
    records_inserted = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        # Worker due-chunk lookup
        Index("idx_backfill_queue_due", "status", "next_run_at"),
    )

    def __repr__(self):
        return (
            f"<BackfillQueueChunk {self.id} progress={self.progress_id} "
            f"{self.chunk_start}..{self.chunk_end} {self.status}>"
        )

    def to_dict(self):
        return {
            "id": self.id,
            "progress_id": self.progress_id,
            "chunk_start": isoformat_or_none(self.chunk_start),
            "chunk_end": isoformat_or_none(self.chunk_end),
            "endpoints": list(self.endpoints or []),
            "status": self.status,
            "next_run_at": isoformat_or_none(self.next_run_at),
            "attempts": self.attempts,
            "records_inserted": self.records_inserted,
            "error_message": self.error_message,
            "completed_at": isoformat_or_none(self.completed_at),
        }
