"""Pytest configuration and shared fixtures."""

import pytest
import os
from datetime import date, datetime
from unittest.mock import MagicMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Set test environment variables before importing app modules
os.environ["TESTING"] = "true"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["EITJE_PARTNER_USERNAME"] = "partner-user"
os.environ["EITJE_PARTNER_PASSWORD"] = "partner-pass"
os.environ["EITJE_API_USERNAME"] = "api-user"
os.environ["EITJE_API_PASSWORD"] = "api-pass"

from opsync.models import Base, BackfillProgress, BackfillQueueChunk
from opsync.services.sync_config_service import ensure_sync_config

# Fixed clock for scheduling assertions (a Monday, 10:00 UTC)
NOW = datetime(2024, 2, 5, 10, 0, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def db_engine():
    """Create in-memory database engine for testing."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture
def db_session(db_engine):
    """Create database session for testing."""
    SessionLocal = sessionmaker(bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def sync_config(db_session):
    """Default sync_config singleton (manual mode, all endpoints, 5 min worker interval)."""
    row = ensure_sync_config(db_session)
    db_session.commit()
    return row


@pytest.fixture
def mock_sync_service():
    """Provider sync service that succeeds with two new records per call."""
    mock = MagicMock()
    mock.sync.return_value = {
        "success": True,
        "records_fetched": 2,
        "records_inserted": 2,
        "records_updated": 0,
        "sync_log_id": 1,
    }
    return mock


@pytest.fixture
def mock_processor():
    mock = MagicMock()
    mock.process.return_value = 1
    return mock


def make_backfill(db_session, start, end, status="in_progress", endpoints=None, chunks=None, provider="eitje"):
    """Insert a progress row and its chunks directly, bypassing the orchestrator."""
    endpoints = endpoints or ["planning_shifts"]
    chunks = chunks or [(start, end)]
    progress = BackfillProgress(
        provider=provider,
        endpoint_set=",".join(endpoints),
        start_date=start,
        end_date=end,
        status=status,
        total_chunks=len(chunks),
    )
    db_session.add(progress)
    db_session.flush()

    rows = []
    for chunk_start, chunk_end in chunks:
        rows.append(
            BackfillQueueChunk(
                progress_id=progress.id,
                chunk_start=chunk_start,
                chunk_end=chunk_end,
                endpoints=list(endpoints),
                status="pending",
                next_run_at=NOW,
                attempts=0,
            )
        )
    db_session.add_all(rows)
    db_session.commit()
    return progress, rows


@pytest.fixture
def backfill_factory(db_session):
    def factory(start=date(2024, 1, 1), end=date(2024, 1, 6), **kwargs):
        return make_backfill(db_session, start, end, **kwargs)

    return factory
