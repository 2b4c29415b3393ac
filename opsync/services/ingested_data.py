"""Ingested-data store: raw record upserts and per-date presence queries."""

import hashlib
import json
import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import func
from sqlalchemy.orm import Session

from opsync.models.raw_record import RawProviderRecord

logger = logging.getLogger(__name__)

# Record fields that may carry the business date, checked in order
DATE_FIELDS = ("date", "start_date", "start", "day")

UPSERT_BATCH_SIZE = 500


def record_external_id(record: Dict[str, Any]) -> str:
    """Provider id, or a content hash for records that have none."""
    external_id = record.get("id")
    if external_id is not None:
        return str(external_id)
    digest = hashlib.sha1(
        json.dumps(record, sort_keys=True, default=str).encode()
    ).hexdigest()
    return f"sha1:{digest}"


def record_business_date(record: Dict[str, Any]) -> Optional[date]:
    for field in DATE_FIELDS:
        value = record.get(field)
        if not value:
            continue
        try:
            return date.fromisoformat(str(value)[:10])
        except ValueError:
            continue
    return None


class IngestedDataStore:
    """Raw provider records for one provider."""

    def __init__(self, db_session: Session, provider: str = "eitje"):
        self.db_session = db_session
        self.provider = provider

    def upsert_records(
        self,
        endpoint: str,
        records: Iterable[Dict[str, Any]],
        fallback_date: Optional[date] = None,
    ) -> Dict[str, int]:
        """
        Insert new records and refresh the payload of known ones.

        Args:
            endpoint: Endpoint the records came from
            records: Raw provider dicts
            fallback_date: Date used when a record carries no parseable date

        Returns:
            Dict with inserted, updated and skipped counts
        """
        by_id: Dict[str, Dict[str, Any]] = {}
        skipped = 0
        for record in records:
            record_date = record_business_date(record) or fallback_date
            if record_date is None:
                skipped += 1
                continue
            by_id[record_external_id(record)] = {"date": record_date, "payload": record}

        inserted = 0
        updated = 0
        external_ids = list(by_id.keys())

        for i in range(0, len(external_ids), UPSERT_BATCH_SIZE):
            batch = external_ids[i : i + UPSERT_BATCH_SIZE]
            existing = {
                row.external_id: row
                for row in self.db_session.query(RawProviderRecord).filter(
                    RawProviderRecord.provider == self.provider,
                    RawProviderRecord.endpoint == endpoint,
                    RawProviderRecord.external_id.in_(batch),
                )
            }

            for external_id in batch:
                item = by_id[external_id]
                row = existing.get(external_id)
                if row is None:
                    self.db_session.add(
                        RawProviderRecord(
                            provider=self.provider,
                            endpoint=endpoint,
                            external_id=external_id,
                            record_date=item["date"],
                            payload=item["payload"],
                        )
                    )
                    inserted += 1
                else:
                    row.record_date = item["date"]
                    row.payload = item["payload"]
                    updated += 1

        self.db_session.flush()

        if skipped:
            logger.warning(f"Skipped {skipped} {endpoint} records without a date")

        return {"inserted": inserted, "updated": updated, "skipped": skipped}

    def dates_with_data(
        self, endpoints: Iterable[str], start_date: date, end_date: date
    ) -> Set[date]:
        """Dates in [start_date, end_date] on which every one of the endpoints has a record."""
        endpoints = list(dict.fromkeys(endpoints))
        rows = (
            self.db_session.query(RawProviderRecord.record_date)
            .filter(
                RawProviderRecord.provider == self.provider,
                RawProviderRecord.endpoint.in_(endpoints),
                RawProviderRecord.record_date >= start_date,
                RawProviderRecord.record_date <= end_date,
            )
            .group_by(RawProviderRecord.record_date)
            .having(func.count(func.distinct(RawProviderRecord.endpoint)) == len(endpoints))
            .all()
        )
        return {row[0] for row in rows}

    def earliest_record_date(self, endpoints: Iterable[str]) -> Optional[date]:
        return (
            self.db_session.query(func.min(RawProviderRecord.record_date))
            .filter(
                RawProviderRecord.provider == self.provider,
                RawProviderRecord.endpoint.in_(list(endpoints)),
            )
            .scalar()
        )

    def records_for_range(
        self, endpoint: str, start_date: date, end_date: date
    ) -> List[RawProviderRecord]:
        return (
            self.db_session.query(RawProviderRecord)
            .filter(
                RawProviderRecord.provider == self.provider,
                RawProviderRecord.endpoint == endpoint,
                RawProviderRecord.record_date >= start_date,
                RawProviderRecord.record_date <= end_date,
            )
            .order_by(RawProviderRecord.record_date)
            .all()
        )
