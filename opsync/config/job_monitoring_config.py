"""Job monitoring configuration for all Celery Beat scheduled sync tasks.

Metadata per scheduled job, used by the job execution tracker for
categorization and slow-run detection.
"""

from typing import Dict
from dataclasses import dataclass


@dataclass
class JobConfig:
    """Configuration for a single scheduled job."""

    job_name: str
    category: str  # data_sync, maintenance
    priority: str  # critical, high, normal, low
    expected_duration_seconds: int  # Expected max duration (for slow job detection)
    description: str
    alert_on_failure: bool = True


# Job Categories
DATA_SYNC = "data_sync"
MAINTENANCE = "maintenance"

# Priority Levels
CRITICAL = "critical"
HIGH = "high"
NORMAL = "normal"
LOW = "low"


JOBS: Dict[str, JobConfig] = {
    "process-backfill-queue": JobConfig(
        job_name="process-backfill-queue",
        category=DATA_SYNC,
        priority=HIGH,
        expected_duration_seconds=180,  # one chunk, three endpoints
        description="Claim and process due backfill chunks",
    ),
    "incremental-sync": JobConfig(
        job_name="incremental-sync",
        category=DATA_SYNC,
        priority=CRITICAL,
        expected_duration_seconds=120,
        description="Pull yesterday..today for every enabled endpoint",
    ),
    "detect-data-gaps": JobConfig(
        job_name="detect-data-gaps",
        category=DATA_SYNC,
        priority=NORMAL,
        expected_duration_seconds=60,
        description="Report calendar days without ingested data",
        alert_on_failure=False,
    ),
    "recover-stuck-chunks": JobConfig(
        job_name="recover-stuck-chunks",
        category=MAINTENANCE,
        priority=NORMAL,
        expected_duration_seconds=30,
        description="Requeue chunks left in processing by a crashed worker",
    ),
    "cleanup-stuck-jobs": JobConfig(
        job_name="cleanup-stuck-jobs",
        category=MAINTENANCE,
        priority=LOW,
        expected_duration_seconds=30,
        description="Mark job executions stuck in running as timed out",
        alert_on_failure=False,
    ),
}


def get_job_config(job_name: str) -> JobConfig:
    """Get configuration for a specific job.

    Raises:
        KeyError: If job_name not found in JOBS
    """
    if job_name not in JOBS:
        raise KeyError(
            f"Job '{job_name}' not found in monitoring config. "
            f"Available jobs: {', '.join(JOBS.keys())}"
        )
    return JOBS[job_name]
