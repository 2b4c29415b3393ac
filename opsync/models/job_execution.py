"""Job execution tracking model for monitoring scheduled sync tasks."""

from sqlalchemy import Column, Integer, String, Text, DateTime, Index, JSON
from opsync.models.base import Base
from opsync.utils.timezone import utc_now, isoformat_or_none


class JobExecution(Base):
    """Execution history of Celery Beat scheduled sync jobs."""

    __tablename__ = "job_executions"

    id = Column(Integer, primary_key=True, autoincrement=True)

    job_name = Column(
        String(255),
        nullable=False,
        index=True,
        comment="Celery Beat schedule name (e.g., 'process-backfill-queue')",
    )
    job_category = Column(String(100), nullable=False, index=True)
    task_id = Column(
        String(255),
        unique=True,
        index=True,
        comment="Celery task ID (UUID) for correlation with Celery logs",
    )

    status = Column(
        String(50),
        nullable=False,
        index=True,
        comment="Status: running, success, skipped, failed, timeout",
    )
    started_at = Column(DateTime, nullable=False, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Integer, nullable=True)

    result_data = Column(JSON, nullable=True, comment="Task return value as JSON")
    error_message = Column(Text, nullable=True)
    error_traceback = Column(Text, nullable=True)
    retry_count = Column(Integer, default=0)

    worker_name = Column(String(255), nullable=True)
    celery_queue = Column(String(100), nullable=True)
    priority = Column(String(50), default="normal")

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_job_executions_category_status", "job_category", "status"),
    )

    def __repr__(self):
        return (
            f"<JobExecution(id={self.id}, job_name='{self.job_name}', "
            f"status='{self.status}', started_at={self.started_at})>"
        )

    def to_dict(self):
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "job_name": self.job_name,
            "job_category": self.job_category,
            "task_id": self.task_id,
            "status": self.status,
            "started_at": isoformat_or_none(self.started_at),
            "completed_at": isoformat_or_none(self.completed_at),
            "duration_seconds": self.duration_seconds,
            "result_data": self.result_data,
            "error_message": self.error_message,
            "retry_count": self.retry_count,
            "priority": self.priority,
        }

    @property
    def is_successful(self) -> bool:
        return self.status in ("success", "skipped")

    @property
    def is_failed(self) -> bool:
        return self.status in ("failed", "timeout")

    @property
    def is_running(self) -> bool:
        return self.status == "running"
