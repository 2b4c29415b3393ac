"""One logged provider pull: fetch an endpoint range and persist it."""

import logging
from datetime import date
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from opsync.integrations.eitje import EitjeAPIClient
from opsync.models.sync_log import SyncLog, LOG_PENDING, LOG_SUCCEEDED, LOG_FAILED
from opsync.services.ingested_data import IngestedDataStore
from opsync.services.sync_errors import ProviderError, SupersededError
from opsync.utils.timezone import utc_now

logger = logging.getLogger(__name__)


class ProviderSyncService:
    """Wraps each provider call in a sync_logs row.

    The log is committed as ``pending`` before the call so that a backfill
    started meanwhile can supersede it.
    """

    def __init__(self, db_session: Session, client: Optional[EitjeAPIClient] = None, provider: str = "eitje"):
        self.db_session = db_session
        self.provider = provider
        self._client = client
        self.store = IngestedDataStore(db_session, provider=provider)

    @property
    def client(self) -> EitjeAPIClient:
        if self._client is None:
            self._client = EitjeAPIClient()
        return self._client

    def sync(
        self, endpoint: str, start_date: date, end_date: date, mode: str = "manual"
    ) -> Dict[str, Any]:
        """
        Fetch one endpoint for [start_date, end_date] and upsert the records.

        Returns:
            Dict with records_fetched, records_inserted, records_updated, sync_log_id

        Raises:
            ProviderError: the fetch or the write failed (the log is marked failed)
            SupersededError: a newer backfill cancelled this log while it ran
        """
        log = SyncLog(
            provider=self.provider,
            endpoint=endpoint,
            sync_mode=mode,
            date_range_start=start_date,
            date_range_end=end_date,
            status=LOG_PENDING,
            started_at=utc_now(),
        )
        self.db_session.add(log)
        self.db_session.commit()

        try:
            records = self.client.fetch_records(endpoint, start_date, end_date)
            fallback_date = start_date if start_date == end_date else None
            counts = self.store.upsert_records(endpoint, records, fallback_date=fallback_date)
        except Exception as e:
            self.db_session.rollback()
            log.status = LOG_FAILED
            log.error_message = str(e)[:2000]
            log.completed_at = utc_now()
            self.db_session.commit()
            logger.error(f"❌ {self.provider} {endpoint} {start_date}..{end_date} failed: {e}")
            raise ProviderError(f"{endpoint} {start_date}..{end_date}: {e}", endpoint=endpoint) from e

        # Close the log only if no cleanup cancelled it while the fetch ran
        closed = (
            self.db_session.query(SyncLog)
            .filter(SyncLog.id == log.id, SyncLog.status == LOG_PENDING)
            .update(
                {
                    SyncLog.status: LOG_SUCCEEDED,
                    SyncLog.records_fetched: len(records),
                    SyncLog.records_inserted: counts["inserted"],
                    SyncLog.completed_at: utc_now(),
                },
                synchronize_session=False,
            )
        )
        # Fetched rows are kept either way, they are valid data regardless of the log
        self.db_session.commit()
        if closed == 0:
            raise SupersededError(f"sync log {log.id} for {endpoint} was superseded")

        logger.info(
            f"✅ {self.provider} {endpoint} {start_date}..{end_date}: "
            f"fetched={len(records)} inserted={counts['inserted']} updated={counts['updated']}"
        )
        return {
            "success": True,
            "endpoint": endpoint,
            "records_fetched": len(records),
            "records_inserted": counts["inserted"],
            "records_updated": counts["updated"],
            "sync_log_id": log.id,
        }


def get_sync_history(db_session: Session, provider: Optional[str] = None, limit: int = 50):
    """Most recent sync log entries, newest first."""
    query = db_session.query(SyncLog)
    if provider:
        query = query.filter(SyncLog.provider == provider)
    return query.order_by(SyncLog.started_at.desc(), SyncLog.id.desc()).limit(limit).all()
