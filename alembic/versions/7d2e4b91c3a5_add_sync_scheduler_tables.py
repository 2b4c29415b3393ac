"""Add sync scheduler tables

Revision ID: 7d2e4b91c3a5
Revises:
Create Date: 2026-10-19 09:12:44.318204

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "7d2e4b91c3a5"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "sync_config",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False, server_default="eitje"),
        sa.Column("mode", sa.String(length=20), nullable=False, server_default="manual"),
        sa.Column("enabled_endpoints", sa.JSON(), nullable=False),
        sa.Column("incremental_interval_minutes", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("worker_interval_minutes", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("quiet_hours_start", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quiet_hours_end", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_chunk_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("last_gap_check_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "backfill_progress",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("endpoint_set", sa.String(length=255), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("total_chunks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_chunks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("records_fetched", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_backfill_progress_provider", "backfill_progress", ["provider"])
    op.create_index("ix_backfill_progress_status", "backfill_progress", ["status"])

    op.create_table(
        "backfill_queue",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("progress_id", sa.Integer(), nullable=False),
        sa.Column("chunk_start", sa.Date(), nullable=False),
        sa.Column("chunk_end", sa.Date(), nullable=False),
        sa.Column("endpoints", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("next_run_at", sa.DateTime(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("records_inserted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["progress_id"], ["backfill_progress.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_backfill_queue_progress_id", "backfill_queue", ["progress_id"])
    op.create_index("idx_backfill_queue_due", "backfill_queue", ["status", "next_run_at"])

    op.create_table(
        "sync_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("endpoint", sa.String(length=100), nullable=False),
        sa.Column("sync_mode", sa.String(length=20), nullable=False),
        sa.Column("date_range_start", sa.Date(), nullable=True),
        sa.Column("date_range_end", sa.Date(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("records_fetched", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("records_inserted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sync_logs_provider", "sync_logs", ["provider"])
    op.create_index("ix_sync_logs_status", "sync_logs", ["status"])
    op.create_index("idx_sync_logs_recent", "sync_logs", ["provider", "started_at"])

    op.create_table(
        "provider_raw_records",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("endpoint", sa.String(length=100), nullable=False),
        sa.Column("external_id", sa.String(length=100), nullable=False),
        sa.Column("record_date", sa.Date(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("provider", "endpoint", "external_id", name="uq_raw_record_external_id"),
    )
    op.create_index(
        "ix_raw_record_endpoint_date", "provider_raw_records", ["provider", "endpoint", "record_date"]
    )

    op.create_table(
        "daily_endpoint_totals",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("endpoint", sa.String(length=100), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("record_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("provider", "endpoint", "day", name="uq_daily_endpoint_total"),
    )
    op.create_index("ix_daily_endpoint_totals_day", "daily_endpoint_totals", ["day"])

    op.create_table(
        "job_executions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("job_name", sa.String(length=255), nullable=False),
        sa.Column("job_category", sa.String(length=100), nullable=False),
        sa.Column("task_id", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("result_data", sa.JSON(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("error_traceback", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=True),
        sa.Column("worker_name", sa.String(length=255), nullable=True),
        sa.Column("celery_queue", sa.String(length=100), nullable=True),
        sa.Column("priority", sa.String(length=50), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("task_id"),
    )
    op.create_index("ix_job_executions_job_name", "job_executions", ["job_name"])
    op.create_index("ix_job_executions_status", "job_executions", ["status"])
    op.create_index("ix_job_executions_started_at", "job_executions", ["started_at"])
    op.create_index("idx_job_executions_category_status", "job_executions", ["job_category", "status"])

    op.create_table(
        "scheduled_job_locks",
        sa.Column("job_name", sa.String(length=100), nullable=False),
        sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("locked_at", sa.DateTime(), nullable=True),
        sa.Column("locked_by", sa.String(length=255), nullable=True),
        sa.Column("last_run_at", sa.DateTime(), nullable=True),
        sa.Column("last_run_duration_seconds", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("job_name"),
    )
    op.create_index("ix_scheduled_job_locks_is_locked", "scheduled_job_locks", ["is_locked"])
    op.create_index("ix_scheduled_job_locks_last_run_at", "scheduled_job_locks", ["last_run_at"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("scheduled_job_locks")
    op.drop_table("job_executions")
    op.drop_table("daily_endpoint_totals")
    op.drop_table("provider_raw_records")
    op.drop_table("sync_logs")
    op.drop_table("backfill_queue")
    op.drop_table("backfill_progress")
    op.drop_table("sync_config")
