"""Splits a date range into provider-safe chunks."""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import List

from opsync.services.sync_errors import InputError

# Provider hard limit is 7 days for shift endpoints; one day of margin
SAFE_CHUNK_DAYS = 6


@dataclass(frozen=True)
class DateChunk:
    """Inclusive date sub-range."""

    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


def plan_chunks(start_date: date, end_date: date, chunk_size: int = SAFE_CHUNK_DAYS) -> List[DateChunk]:
    """Split [start_date, end_date] into ordered, contiguous chunks of at most chunk_size days.

    Raises:
        InputError: start_date is after end_date or chunk_size < 1
    """
    if chunk_size < 1:
        raise InputError(f"chunk_size must be at least 1, got {chunk_size}")
    if start_date > end_date:
        raise InputError(f"start_date {start_date} is after end_date {end_date}")

    chunks = []
    cursor = start_date
    while cursor <= end_date:
        chunk_end = min(cursor + timedelta(days=chunk_size - 1), end_date)
        chunks.append(DateChunk(start=cursor, end=chunk_end))
        cursor = chunk_end + timedelta(days=1)
    return chunks
