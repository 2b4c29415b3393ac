"""Recurring short-window pull of yesterday and today."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from config.settings import settings
from opsync.integrations.eitje import ENDPOINT_CONFIG
from opsync.processors.daily_aggregator import DailyAggregator
from opsync.services.provider_sync import ProviderSyncService
from opsync.services.sync_config_service import load_sync_config
from opsync.services.sync_errors import ConfigError, error_result
from opsync.utils.timezone import utc_now, utc_today, utc_yesterday

logger = logging.getLogger(__name__)


class IncrementalSyncer:
    """Pulls [yesterday, today] for every enabled endpoint when config allows.

    Skips (successfully) when the mode is not incremental or the current UTC
    hour falls in the quiet window. Endpoints are independent; there is no
    chunking and no retry scheduling, the next tick simply tries again.
    """

    def __init__(
        self,
        db_session: Session,
        sync_service: Optional[ProviderSyncService] = None,
        processor: Optional[DailyAggregator] = None,
    ):
        self.db_session = db_session
        self.sync_service = sync_service or ProviderSyncService(db_session, provider=settings.sync.provider)
        self.processor = processor or DailyAggregator(db_session, provider=settings.sync.provider)

    def run(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utc_now()

        try:
            config = load_sync_config(self.db_session)
        except ConfigError as e:
            logger.error(f"❌ Incremental sync cannot start: {e}")
            return error_result(e)

        if not config.is_incremental:
            logger.debug(f"Incremental sync skipped: mode is {config.mode}")
            return {"success": True, "skipped": True, "reason": "mode", "mode": config.mode}

        if config.in_quiet_hours(now.hour):
            logger.info(
                f"Incremental sync skipped: {now.hour:02d}h UTC is within quiet hours "
                f"{config.quiet_hours_start:02d}-{config.quiet_hours_end:02d}"
            )
            return {"success": True, "skipped": True, "reason": "quiet_hours", "hour": now.hour}

        start_date = utc_yesterday(now)
        end_date = utc_today(now)

        results = []
        for endpoint in config.enabled_endpoints:
            try:
                sync_result = self.sync_service.sync(endpoint, start_date, end_date, mode="incremental")
                endpoint_config = ENDPOINT_CONFIG.get(endpoint)
                if endpoint_config and endpoint_config.requires_aggregation:
                    self.processor.process(endpoint, start_date, end_date)
                    self.db_session.commit()
                results.append(
                    {"endpoint": endpoint, "success": True, "inserted": sync_result["records_inserted"]}
                )
            except Exception as e:
                self.db_session.rollback()
                logger.error(f"❌ Incremental sync of {endpoint} failed: {e}")
                results.append({"endpoint": endpoint, "success": False, "error": str(e)})

        success = all(r["success"] for r in results)
        total_inserted = sum(r.get("inserted", 0) for r in results)
        logger.info(
            f"{'✅' if success else '⚠️'} Incremental sync {start_date}..{end_date}: "
            f"{total_inserted} new records across {len(results)} endpoints"
        )

        return {
            "success": success,
            "skipped": False,
            "window": {"start": start_date.isoformat(), "end": end_date.isoformat()},
            "results": results,
            "total_inserted": total_inserted,
        }
