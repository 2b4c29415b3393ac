"""Database connection management utilities."""
import logging
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session
from config.settings import settings
import os

logger = logging.getLogger(__name__)

# Global engine and session factory
_engine = None
_session_factory = None

def get_engine():
    """Get or create the global database engine."""
    global _engine
    if _engine is None:
        is_production = os.getenv('FLASK_ENV') == 'production'
        db_url = settings.agent.database_url

        if is_production and 'postgresql' in db_url:
            # Web workers and Celery workers share the same database; keep pools small
            _engine = create_engine(
                db_url,
                pool_size=3,
                max_overflow=2,
                pool_pre_ping=True,  # Verify connections before using
                pool_recycle=300,
                pool_timeout=10,
                connect_args={
                    "connect_timeout": 10,
                    "options": "-c statement_timeout=30000"  # 30 second statement timeout
                },
                echo=False
            )
            logger.info(f"Database engine initialized for production (PostgreSQL): pool_size={_engine.pool.size()}")
        else:
            engine_kwargs = {"echo": False}

            if 'sqlite' in db_url:
                # SQLite doesn't support pool_size/max_overflow parameters
                engine_kwargs["connect_args"] = {"check_same_thread": False}
                _ensure_sqlite_directory(db_url)
            else:
                engine_kwargs.update({
                    "pool_size": 5,
                    "max_overflow": 10,
                    "pool_pre_ping": True,
                    "pool_recycle": 3600
                })

            _engine = create_engine(db_url, **engine_kwargs)
            logger.info("Database engine initialized for development")
    return _engine

def _ensure_sqlite_directory(db_url):
    path = db_url.split("sqlite:///", 1)[-1]
    if path and path != ":memory:":
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

def get_session_factory():
    """Get or create the global session factory."""
    global _session_factory
    if _session_factory is None:
        engine = get_engine()
        _session_factory = scoped_session(sessionmaker(bind=engine))
    return _session_factory

def get_session():
    """Get a new database session."""
    factory = get_session_factory()
    return factory()

def close_session(session):
    """Close a database session properly."""
    try:
        session.close()
    except Exception as e:
        logger.warning(f"Error closing session: {e}")

def get_db():
    """Yield a session and close it afterwards (used as ``db = next(get_db())`` in tasks)."""
    session = get_session()
    try:
        yield session
    finally:
        close_session(session)

@contextmanager
def session_scope():
    """Provide a transactional scope around a series of operations.

    Usage:
        with session_scope() as session:
            # use session here
            # automatically commits on success, rolls back on error
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        close_session(session)

def init_database():
    """Create all tables and make sure the sync_config singleton exists."""
    try:
        engine = get_engine()

        # Import all models to ensure they're registered
        from opsync.models import Base
        from opsync.services.sync_config_service import ensure_sync_config

        Base.metadata.create_all(engine)
        logger.info("Database tables created/verified")

        with session_scope() as session:
            ensure_sync_config(session)

        return True
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        return False

def cleanup_connections():
    """Clean up database connections (useful for worker shutdown)."""
    global _engine, _session_factory

    if _session_factory is not None:
        try:
            _session_factory.remove()
            logger.info("Session factory cleaned up successfully")
        except Exception as e:
            logger.warning(f"Error cleaning up session factory: {e}")
        finally:
            _session_factory = None

    if _engine is not None:
        try:
            _engine.dispose()
            logger.info("Database engine disposed successfully")
        except Exception as e:
            logger.warning(f"Error disposing database engine: {e}")
        finally:
            _engine = None
