"""Rolls raw provider records up into per-day totals."""

import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from opsync.models.daily_total import DailyEndpointTotal
from opsync.services.ingested_data import IngestedDataStore

logger = logging.getLogger(__name__)


def _parse_datetime(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def record_hours(payload: Dict[str, Any]) -> float:
    """Worked hours of a shift record: explicit hours, else end - start - break."""
    for key in ("hours", "total_hours"):
        value = payload.get(key)
        if value is not None:
            try:
                return float(value)
            except (TypeError, ValueError):
                break

    start = _parse_datetime(payload.get("start"))
    end = _parse_datetime(payload.get("end"))
    if start is None or end is None or end <= start:
        return 0.0

    break_minutes = payload.get("break_minutes") or 0
    try:
        break_minutes = float(break_minutes)
    except (TypeError, ValueError):
        break_minutes = 0.0

    hours = (end - start).total_seconds() / 3600 - break_minutes / 60
    return max(hours, 0.0)


class DailyAggregator:
    """Downstream processor for endpoints whose data feeds daily labor totals."""

    def __init__(self, db_session: Session, provider: str = "eitje"):
        self.db_session = db_session
        self.provider = provider
        self.store = IngestedDataStore(db_session, provider=provider)

    def process(self, endpoint: str, start_date: date, end_date: date) -> int:
        """
        Rebuild daily totals for an endpoint over [start_date, end_date].

        Returns:
            Number of day rows written
        """
        totals: Dict[date, Dict[str, float]] = defaultdict(lambda: {"count": 0, "hours": 0.0})
        for record in self.store.records_for_range(endpoint, start_date, end_date):
            bucket = totals[record.record_date]
            bucket["count"] += 1
            bucket["hours"] += record_hours(record.payload or {})

        self.db_session.query(DailyEndpointTotal).filter(
            DailyEndpointTotal.provider == self.provider,
            DailyEndpointTotal.endpoint == endpoint,
            DailyEndpointTotal.day >= start_date,
            DailyEndpointTotal.day <= end_date,
        ).delete()

        for day, bucket in sorted(totals.items()):
            self.db_session.add(
                DailyEndpointTotal(
                    provider=self.provider,
                    endpoint=endpoint,
                    day=day,
                    record_count=int(bucket["count"]),
                    total_hours=round(bucket["hours"], 2),
                )
            )
        self.db_session.flush()

        logger.info(f"Aggregated {endpoint} {start_date}..{end_date} into {len(totals)} day rows")
        return len(totals)
