"""Raw provider records as ingested, one row per provider object."""

from sqlalchemy import Column, Integer, String, DateTime, Date, JSON, Index, UniqueConstraint
from opsync.models.base import Base
from opsync.utils.timezone import utc_now


class RawProviderRecord(Base):
    """Provider payload keyed by its external id, dated for gap detection."""

    __tablename__ = "provider_raw_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider = Column(String(50), nullable=False)
    endpoint = Column(String(100), nullable=False)
    external_id = Column(String(100), nullable=False)
    record_date = Column(Date, nullable=False)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "provider", "endpoint", "external_id", name="uq_raw_record_external_id"
        ),
        Index("ix_raw_record_endpoint_date", "provider", "endpoint", "record_date"),
    )

    def __repr__(self):
        return f"<RawProviderRecord {self.endpoint}:{self.external_id} {self.record_date}>"
