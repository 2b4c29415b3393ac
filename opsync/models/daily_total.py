"""Per-day rollups derived from raw provider records."""

from sqlalchemy import Column, Integer, String, DateTime, Date, Float, UniqueConstraint
from opsync.models.base import Base
from opsync.utils.timezone import utc_now


class DailyEndpointTotal(Base):
    """Record count and hours per provider endpoint per day."""

    __tablename__ = "daily_endpoint_totals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider = Column(String(50), nullable=False)
    endpoint = Column(String(100), nullable=False)
    day = Column(Date, nullable=False, index=True)
    record_count = Column(Integer, nullable=False, default=0)
    total_hours = Column(Float, nullable=False, default=0.0)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("provider", "endpoint", "day", name="uq_daily_endpoint_total"),
    )

    def __repr__(self):
        return f"<DailyEndpointTotal {self.endpoint} {self.day} count={self.record_count}>"
