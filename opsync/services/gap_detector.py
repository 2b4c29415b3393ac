"""Detects calendar dates missing from ingested provider data."""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from config.settings import settings
from opsync.services.backfill_orchestrator import BackfillOrchestrator, validate_endpoints
from opsync.services.ingested_data import IngestedDataStore
from opsync.services.sync_config_service import load_sync_config, mark_gap_check
from opsync.services.sync_errors import InputError, SyncError, error_result
from opsync.utils.timezone import utc_now, utc_today

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 10


def _date_range(start_date: date, end_date: date) -> List[date]:
    return [start_date + timedelta(days=i) for i in range((end_date - start_date).days + 1)]


class GapDetector:
    """Compares the expected calendar against dates that have ingested records.

    A date is a gap when any of the expected endpoints has no record on it.
    Detection only reports; remediation is a separate explicit call.
    """

    def __init__(self, db_session: Session, provider: Optional[str] = None, lookback_days: Optional[int] = None):
        self.db_session = db_session
        self.provider = provider or settings.sync.provider
        self.lookback_days = lookback_days or settings.sync.gap_lookback_days
        self.store = IngestedDataStore(db_session, provider=self.provider)

    def detect(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        endpoints: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        try:
            return self._detect(start_date, end_date, endpoints, now or utc_now())
        except SyncError as e:
            self.db_session.rollback()
            logger.warning(f"Gap detection failed: {e}")
            return error_result(e)
        except Exception as e:
            self.db_session.rollback()
            logger.error(f"❌ Error detecting gaps: {e}", exc_info=True)
            return error_result(e)

    def _detect(self, start_date, end_date, endpoints, now) -> Dict[str, Any]:
        if start_date and end_date and start_date > end_date:
            raise InputError(f"start_date {start_date} is after end_date {end_date}")
        endpoints = validate_endpoints(endpoints)

        config = load_sync_config(self.db_session)
        if endpoints is None:
            endpoints = list(config.enabled_endpoints)
        if not endpoints:
            raise InputError("No endpoints enabled to check for gaps")

        today = utc_today(now)
        if end_date is None:
            end_date = today - timedelta(days=1)
        if start_date is None:
            lookback_start = today - timedelta(days=self.lookback_days)
            earliest = self.store.earliest_record_date(endpoints)
            start_date = max(earliest, lookback_start) if earliest else lookback_start

        if start_date > end_date:
            missing: List[date] = []
        else:
            present = self.store.dates_with_data(endpoints, start_date, end_date)
            missing = [d for d in _date_range(start_date, end_date) if d not in present]

        mark_gap_check(self.db_session, now)
        self.db_session.commit()

        sample = [d.isoformat() for d in missing[:SAMPLE_SIZE]]
        first_missing = missing[0].isoformat() if missing else None
        last_missing = missing[-1].isoformat() if missing else None

        if missing:
            logger.warning(
                f"⚠️ Found {len(missing)} missing days for {endpoints} "
                f"between {first_missing} and {last_missing}"
            )
        else:
            logger.info(f"✅ No gaps for {endpoints} in {start_date}..{end_date}")

        return {
            "success": True,
            "gaps_found": bool(missing),
            "gap_count": len(missing),
            "first_missing_date": first_missing,
            "last_missing_date": last_missing,
            "sample": sample,
            "endpoints": endpoints,
            "checked_range": {"start": start_date.isoformat(), "end": end_date.isoformat()},
            "summary": {
                "total_missing_days": len(missing),
                "date_range": {"earliest": first_missing, "latest": last_missing},
                "gaps": sample,
            },
        }


def remediate_gaps(
    db_session: Session,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    endpoints: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Detect gaps and, if any, start one backfill spanning first..last missing date."""
    now = now or utc_now()
    detection = GapDetector(db_session).detect(start_date, end_date, endpoints, now=now)
    if not detection.get("success"):
        return detection

    if not detection["gaps_found"]:
        return {"success": True, "detection": detection, "backfill": None}

    backfill = BackfillOrchestrator(db_session).start_backfill(
        date.fromisoformat(detection["first_missing_date"]),
        date.fromisoformat(detection["last_missing_date"]),
        endpoints=detection["endpoints"],
        now=now,
    )
    result = {"success": backfill.get("success", False), "detection": detection, "backfill": backfill}
    if not result["success"]:
        result["error"] = backfill.get("error")
        result["error_type"] = backfill.get("error_type")
    return result
