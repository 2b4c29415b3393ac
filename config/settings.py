"""Configuration management for the ops sync scheduler."""

import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


@dataclass
class EitjeConfig:
    """Eitje open API configuration.

    Eitje authenticates every request with a partner account plus an
    integration (api) account, all four values are sent as headers.
    """

    partner_username: Optional[str] = None
    partner_password: Optional[str] = None
    api_username: Optional[str] = None
    api_password: Optional[str] = None
    base_url: str = "https://open-api.eitje.app/open_api"
    timeout_seconds: int = 30

    @property
    def is_configured(self) -> bool:
        return all(
            [
                self.partner_username,
                self.partner_password,
                self.api_username,
                self.api_password,
            ]
        )


@dataclass
class SyncDefaults:
    """Deployment-level defaults for the sync scheduler.

    Operational parameters that change at runtime (mode, intervals, quiet
    hours) live in the sync_config table, not here.
    """

    provider: str = "eitje"
    chunk_size_days: int = 6  # Provider hard limit is 7 days for shift endpoints
    gap_lookback_days: int = 90
    gap_check_interval_hours: int = 24
    max_chunks_per_run: int = 1
    stuck_chunk_minutes: int = 30
    job_lock_stale_minutes: int = 60
    display_timezone: str = "Europe/Amsterdam"


@dataclass
class CeleryConfig:
    """Celery broker and result backend configuration."""

    broker_url: str = "redis://localhost:6379/0"
    result_backend: str = "redis://localhost:6379/1"


@dataclass
class WebConfig:
    """Web interface configuration."""

    port: int = 3030
    host: str = "127.0.0.1"
    debug: bool = False
    cors_origins: str = "http://localhost:3000"
    rate_limit_storage_uri: str = "memory://"


@dataclass
class AgentConfig:
    """Main process configuration."""

    debug_mode: bool = False
    log_level: str = "INFO"
    database_url: str = "sqlite:///database/ops_sync.db"


class Settings:
    """Main settings manager."""

    def __init__(self):
        self.eitje = self._load_eitje_config()
        self.sync = self._load_sync_defaults()
        self.celery = self._load_celery_config()
        self.agent = self._load_agent_config()
        self.web = self._load_web_config()

    @staticmethod
    def _load_eitje_config() -> EitjeConfig:
        # Credentials are optional at import time, the client raises when used without them
        return EitjeConfig(
            partner_username=os.getenv("EITJE_PARTNER_USERNAME") or None,
            partner_password=os.getenv("EITJE_PARTNER_PASSWORD") or None,
            api_username=os.getenv("EITJE_API_USERNAME") or None,
            api_password=os.getenv("EITJE_API_PASSWORD") or None,
            base_url=os.getenv(
                "EITJE_BASE_URL", "https://open-api.eitje.app/open_api"
            ),
            timeout_seconds=int(os.getenv("EITJE_TIMEOUT_SECONDS", "30")),
        )

    @staticmethod
    def _load_sync_defaults() -> SyncDefaults:
        return SyncDefaults(
            provider=os.getenv("SYNC_PROVIDER", "eitje"),
            chunk_size_days=int(os.getenv("SYNC_CHUNK_SIZE_DAYS", "6")),
            gap_lookback_days=int(os.getenv("SYNC_GAP_LOOKBACK_DAYS", "90")),
            gap_check_interval_hours=int(os.getenv("SYNC_GAP_CHECK_INTERVAL_HOURS", "24")),
            max_chunks_per_run=int(os.getenv("SYNC_MAX_CHUNKS_PER_RUN", "1")),
            stuck_chunk_minutes=int(os.getenv("SYNC_STUCK_CHUNK_MINUTES", "30")),
            job_lock_stale_minutes=int(os.getenv("SYNC_JOB_LOCK_STALE_MINUTES", "60")),
            display_timezone=os.getenv("SYNC_DISPLAY_TIMEZONE", "Europe/Amsterdam"),
        )

    @staticmethod
    def _load_celery_config() -> CeleryConfig:
        redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
        return CeleryConfig(
            broker_url=os.getenv("CELERY_BROKER_URL", redis_url),
            result_backend=os.getenv("CELERY_RESULT_BACKEND", redis_url),
        )

    @staticmethod
    def _load_agent_config() -> AgentConfig:
        return AgentConfig(
            debug_mode=os.getenv("DEBUG_MODE", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            database_url=os.getenv("DATABASE_URL", "sqlite:///database/ops_sync.db"),
        )

    @staticmethod
    def _load_web_config() -> WebConfig:
        return WebConfig(
            port=int(os.getenv("WEB_PORT", "3030")),
            host=os.getenv("WEB_HOST", "127.0.0.1"),
            debug=os.getenv("WEB_DEBUG", "false").lower() == "true",
            cors_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000"),
            rate_limit_storage_uri=os.getenv("REDIS_URL") or "memory://",
        )

    @staticmethod
    def validate_eitje_credentials() -> bool:
        """Check that all four Eitje credentials are present in the environment."""
        return Settings._load_eitje_config().is_configured


# Global settings instance
settings = Settings()
