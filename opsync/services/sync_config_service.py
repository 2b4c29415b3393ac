"""Access to the sync_config singleton.

Each scheduler invocation loads the row once into an immutable
:class:`SyncConfigSnapshot` and passes it explicitly to the components it
calls, so a concurrent operator edit cannot change parameters mid-run.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.orm import Session

from opsync.integrations.eitje import SUPPORTED_ENDPOINTS
from opsync.models.sync_config import SyncConfig, SYNC_CONFIG_ID, MODE_MANUAL, MODE_INCREMENTAL
from opsync.models.validators import SyncConfigUpdateRequest
from opsync.services.sync_errors import ConfigError, InputError

logger = logging.getLogger(__name__)

DEFAULT_SYNC_CONFIG = {
    "provider": "eitje",
    "mode": MODE_MANUAL,
    "enabled_endpoints": list(SUPPORTED_ENDPOINTS),
    "incremental_interval_minutes": 60,
    "worker_interval_minutes": 5,
    "quiet_hours_start": 0,
    "quiet_hours_end": 0,
    "max_chunk_attempts": 3,
}


@dataclass(frozen=True)
class SyncConfigSnapshot:
    """Read-only view of sync_config taken at the start of an invocation."""

    provider: str
    mode: str
    enabled_endpoints: Tuple[str, ...]
    incremental_interval_minutes: int
    worker_interval_minutes: int
    quiet_hours_start: int
    quiet_hours_end: int
    max_chunk_attempts: int
    last_gap_check_at: Optional[datetime] = None

    @property
    def is_incremental(self) -> bool:
        return self.mode == MODE_INCREMENTAL

    def in_quiet_hours(self, hour: int) -> bool:
        """Whether a UTC hour falls in the half-open quiet window.

        Equal bounds mean no quiet window; start > end wraps past midnight.
        """
        start, end = self.quiet_hours_start, self.quiet_hours_end
        if start == end:
            return False
        if start < end:
            return start <= hour < end
        return hour >= start or hour < end

    @classmethod
    def from_row(cls, row: SyncConfig) -> "SyncConfigSnapshot":
        return cls(
            provider=row.provider,
            mode=row.mode,
            enabled_endpoints=tuple(row.enabled_endpoints or ()),
            incremental_interval_minutes=row.incremental_interval_minutes,
            worker_interval_minutes=row.worker_interval_minutes,
            quiet_hours_start=row.quiet_hours_start,
            quiet_hours_end=row.quiet_hours_end,
            max_chunk_attempts=row.max_chunk_attempts,
            last_gap_check_at=row.last_gap_check_at,
        )


def get_sync_config_row(db_session: Session) -> Optional[SyncConfig]:
    return db_session.get(SyncConfig, SYNC_CONFIG_ID)


def load_sync_config(db_session: Session) -> SyncConfigSnapshot:
    """Load the singleton as a snapshot.

    Raises:
        ConfigError: the row does not exist or could not be read
    """
    try:
        row = get_sync_config_row(db_session)
    except Exception as e:
        raise ConfigError(f"Could not read sync_config: {e}") from e

    if row is None:
        raise ConfigError("sync_config row is missing; run 'init-db' or POST /api/sync/config")

    if row.worker_interval_minutes is None or row.worker_interval_minutes < 1:
        raise ConfigError(f"Invalid worker_interval_minutes: {row.worker_interval_minutes}")

    return SyncConfigSnapshot.from_row(row)


def ensure_sync_config(db_session: Session) -> SyncConfig:
    """Create the singleton with defaults if it does not exist yet."""
    row = get_sync_config_row(db_session)
    if row is None:
        row = SyncConfig(id=SYNC_CONFIG_ID, **DEFAULT_SYNC_CONFIG)
        db_session.add(row)
        db_session.flush()
        logger.info("Created default sync_config row")
    return row


def get_sync_config(db_session: Session) -> Optional[Dict[str, Any]]:
    row = get_sync_config_row(db_session)
    return row.to_dict() if row else None


def update_sync_config(db_session: Session, **fields) -> Dict[str, Any]:
    """Validated operator upsert of sync settings. The caller commits.

    Raises:
        InputError: a field is unknown or out of range
    """
    try:
        update = SyncConfigUpdateRequest(**fields)
    except ValidationError as e:
        raise InputError(f"Invalid sync config: {e.errors(include_url=False, include_context=False)}") from e

    row = ensure_sync_config(db_session)
    changes = update.model_dump(exclude_none=True)
    for key, value in changes.items():
        setattr(row, key, value)
    db_session.flush()

    logger.info(f"Sync config updated: {changes}")
    return row.to_dict()


def mark_gap_check(db_session: Session, checked_at: datetime) -> None:
    """Stamp last_gap_check_at. The only non-operator write to sync_config."""
    row = get_sync_config_row(db_session)
    if row is None:
        raise ConfigError("sync_config row is missing")
    row.last_gap_check_at = checked_at
    db_session.flush()
