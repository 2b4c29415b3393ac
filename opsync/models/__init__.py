"""Models package for the ops sync scheduler."""

# Import base first
from .base import Base

from .sync_config import SyncConfig
from .backfill_progress import BackfillProgress
from .backfill_queue import BackfillQueueChunk
from .sync_log import SyncLog
from .raw_record import RawProviderRecord
from .daily_total import DailyEndpointTotal
from .job_execution import JobExecution
from .scheduled_job_lock import ScheduledJobLock

__all__ = [
    "Base",
    "SyncConfig",
    "BackfillProgress",
    "BackfillQueueChunk",
    "SyncLog",
    "RawProviderRecord",
    "DailyEndpointTotal",
    "JobExecution",
    "ScheduledJobLock",
]
