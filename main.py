#!/usr/bin/env python3
"""Command line entry point for the ops sync scheduler."""

import argparse
import json
import logging
import sys
from datetime import date

from config.settings import settings
from opsync.utils.database import init_database, session_scope


# Setup logging
logging.basicConfig(
    level=getattr(logging, settings.agent.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}', expected YYYY-MM-DD")


def _print(result) -> int:
    print(json.dumps(result, indent=2, default=str))
    if isinstance(result, dict) and result.get("success") is False:
        return 1
    return 0


def cmd_init_db(args) -> int:
    ok = init_database()
    print("✅ Database initialized" if ok else "❌ Database initialization failed")
    return 0 if ok else 1


def cmd_backfill(args) -> int:
    from opsync.services.backfill_orchestrator import BackfillOrchestrator

    with session_scope() as db_session:
        result = BackfillOrchestrator(db_session).start_backfill(
            args.start_date, args.end_date, endpoints=args.endpoints
        )
    return _print(result)


def cmd_status(args) -> int:
    from opsync.services.backfill_orchestrator import get_backfill_status, list_backfills

    with session_scope() as db_session:
        if args.progress_id:
            result = get_backfill_status(db_session, args.progress_id)
            if result is None:
                result = {"success": False, "error": f"Backfill {args.progress_id} not found"}
        else:
            result = list_backfills(db_session, limit=args.limit)
    return _print(result)


def cmd_cleanup(args) -> int:
    from opsync.services.backfill_cleanup import cleanup_superseded

    with session_scope() as db_session:
        result = cleanup_superseded(
            db_session, current_progress_id=args.current_progress_id, provider=settings.sync.provider
        )
    return _print(result)


def cmd_reset(args) -> int:
    from opsync.services.backfill_reset import reset_schedule

    with session_scope() as db_session:
        result = reset_schedule(db_session, progress_id=args.progress_id)
    return _print(result)


def cmd_worker(args) -> int:
    from opsync.services.queue_worker import BackfillQueueWorker

    with session_scope() as db_session:
        result = BackfillQueueWorker(db_session, max_chunks_per_run=args.max_chunks).run()
    return _print(result)


def cmd_incremental(args) -> int:
    from opsync.services.incremental_sync import IncrementalSyncer

    with session_scope() as db_session:
        result = IncrementalSyncer(db_session).run()
    return _print(result)


def cmd_gaps(args) -> int:
    from opsync.services.gap_detector import GapDetector

    with session_scope() as db_session:
        result = GapDetector(db_session).detect(args.start_date, args.end_date, endpoints=args.endpoints)
    return _print(result)


def cmd_remediate(args) -> int:
    from opsync.services.gap_detector import remediate_gaps

    with session_scope() as db_session:
        result = remediate_gaps(db_session, args.start_date, args.end_date, endpoints=args.endpoints)
    return _print(result)


def cmd_config(args) -> int:
    from opsync.services.sync_config_service import get_sync_config, update_sync_config
    from opsync.services.sync_errors import SyncError, error_result

    changes = {
        key: value
        for key, value in {
            "mode": args.mode,
            "enabled_endpoints": args.endpoints,
            "incremental_interval_minutes": args.incremental_interval,
            "worker_interval_minutes": args.worker_interval,
            "quiet_hours_start": args.quiet_start,
            "quiet_hours_end": args.quiet_end,
            "max_chunk_attempts": args.max_attempts,
        }.items()
        if value is not None
    }

    try:
        with session_scope() as db_session:
            result = update_sync_config(db_session, **changes) if changes else get_sync_config(db_session)
    except SyncError as e:
        result = error_result(e)
    return _print(result)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Ops sync - provider backfill and incremental sync scheduler")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables and the default sync config").set_defaults(func=cmd_init_db)

    p = sub.add_parser("backfill", help="Start a chunked backfill")
    p.add_argument("start_date", type=_parse_date)
    p.add_argument("end_date", type=_parse_date)
    p.add_argument("--endpoints", nargs="+", help="Endpoints to sync (default: enabled endpoints)")
    p.set_defaults(func=cmd_backfill)

    p = sub.add_parser("status", help="Show one backfill or the most recent ones")
    p.add_argument("--progress-id", type=int)
    p.add_argument("--limit", type=int, default=10)
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("cleanup", help="Fail unfinished backfills except --current-progress-id")
    p.add_argument("--current-progress-id", type=int)
    p.set_defaults(func=cmd_cleanup)

    p = sub.add_parser("reset", help="Make pending chunks due now")
    p.add_argument("--progress-id", type=int)
    p.set_defaults(func=cmd_reset)

    p = sub.add_parser("worker", help="Run one queue worker tick")
    p.add_argument("--max-chunks", type=int, default=None)
    p.set_defaults(func=cmd_worker)

    sub.add_parser("incremental", help="Run the incremental sync once").set_defaults(func=cmd_incremental)

    for name, func, help_text in (
        ("gaps", cmd_gaps, "Detect missing days"),
        ("remediate", cmd_remediate, "Detect missing days and backfill them"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--start-date", type=_parse_date)
        p.add_argument("--end-date", type=_parse_date)
        p.add_argument("--endpoints", nargs="+")
        p.set_defaults(func=func)

    p = sub.add_parser("config", help="Show or update the sync config")
    p.add_argument("--mode", choices=["manual", "incremental"])
    p.add_argument("--endpoints", nargs="+")
    p.add_argument("--incremental-interval", type=int)
    p.add_argument("--worker-interval", type=int)
    p.add_argument("--quiet-start", type=int)
    p.add_argument("--quiet-end", type=int)
    p.add_argument("--max-attempts", type=int)
    p.set_defaults(func=cmd_config)

    return parser


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
