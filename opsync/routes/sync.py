"""API routes for the backfill / incremental sync scheduler."""

import logging
from functools import wraps

from flask import Blueprint, jsonify, request
from pydantic import ValidationError

from opsync.models.validators import (
    BackfillStartRequest,
    BackfillCleanupRequest,
    BackfillResetRequest,
    BackfillListQuery,
    GapRangeRequest,
    SyncHistoryQuery,
)
from opsync.services.backfill_cleanup import cleanup_superseded
from opsync.services.backfill_orchestrator import (
    BackfillOrchestrator,
    get_backfill_status,
    list_backfills,
)
from opsync.services.backfill_reset import reset_schedule
from opsync.services.gap_detector import GapDetector, remediate_gaps
from opsync.services.incremental_sync import IncrementalSyncer
from opsync.services.job_execution_tracker import get_recent_executions
from opsync.services.provider_sync import get_sync_history
from opsync.services.queue_worker import BackfillQueueWorker
from opsync.services.sync_config_service import get_sync_config, update_sync_config
from opsync.services.sync_errors import SyncError, error_result, http_status_for
from opsync.utils.database import session_scope
from config.settings import settings

logger = logging.getLogger(__name__)

sync_bp = Blueprint('sync', __name__, url_prefix='/api/sync')


def _validation_error_response(f, e: ValidationError):
    logger.warning(f"Validation error for {f.__name__}: {e}")
    return jsonify({
        "success": False,
        "error": "Invalid parameters",
        "error_type": "input_error",
        "details": e.errors(include_url=False, include_context=False)
    }), 400


def validate_json(model_class):
    """Decorator to validate the JSON body using a Pydantic model."""
    def decorator(f):
        @wraps(f)
        def wrapped(*args, **kwargs):
            try:
                payload = request.get_json(silent=True) or {}
                request.validated_params = model_class(**payload)
            except ValidationError as e:
                return _validation_error_response(f, e)
            return f(*args, **kwargs)
        return wrapped
    return decorator


def validate_query(model_class):
    """Decorator to validate query parameters using a Pydantic model."""
    def decorator(f):
        @wraps(f)
        def wrapped(*args, **kwargs):
            try:
                request.validated_params = model_class(**request.args.to_dict())
            except ValidationError as e:
                return _validation_error_response(f, e)
            return f(*args, **kwargs)
        return wrapped
    return decorator


def _internal_error(action: str, e: Exception):
    logger.error(f"Error {action}: {e}", exc_info=True)
    return jsonify({"success": False, "error": str(e), "error_type": "internal_error"}), 500


# ---------------------------------------------------------------------------
# Backfills
# ---------------------------------------------------------------------------

@sync_bp.route('/backfill', methods=['POST'])
@validate_json(BackfillStartRequest)
def start_backfill():
    """
    Plan and enqueue a chunked backfill. Supersedes any earlier unfinished backfill.

    Body:
        start_date, end_date (YYYY-MM-DD, inclusive), endpoints (optional list)
    """
    params = request.validated_params
    try:
        with session_scope() as db_session:
            result = BackfillOrchestrator(db_session).start_backfill(
                params.start_date, params.end_date, endpoints=params.endpoints
            )
        return jsonify(result), http_status_for(result, success_status=201)
    except Exception as e:
        return _internal_error("starting backfill", e)


@sync_bp.route('/backfill', methods=['GET'])
@validate_query(BackfillListQuery)
def get_backfills():
    try:
        with session_scope() as db_session:
            backfills = list_backfills(db_session, limit=request.validated_params.limit)
        return jsonify({"success": True, "backfills": backfills}), 200
    except Exception as e:
        return _internal_error("listing backfills", e)


@sync_bp.route('/backfill/<int:progress_id>', methods=['GET'])
def get_backfill(progress_id):
    try:
        with session_scope() as db_session:
            status = get_backfill_status(db_session, progress_id)
        if status is None:
            return jsonify({"success": False, "error": f"Backfill {progress_id} not found"}), 404
        return jsonify({"success": True, "backfill": status}), 200
    except Exception as e:
        return _internal_error(f"loading backfill {progress_id}", e)


@sync_bp.route('/backfill/cleanup', methods=['POST'])
@validate_json(BackfillCleanupRequest)
def cleanup_backfills():
    """Fail every unfinished backfill except current_progress_id (if given)."""
    params = request.validated_params
    try:
        with session_scope() as db_session:
            result = cleanup_superseded(
                db_session,
                current_progress_id=params.current_progress_id,
                provider=settings.sync.provider,
            )
        return jsonify(result), 200
    except Exception as e:
        return _internal_error("cleaning up backfills", e)


@sync_bp.route('/backfill/reset', methods=['POST'])
@validate_json(BackfillResetRequest)
def reset_backfill_schedule():
    """Make pending chunks due now (optionally only those of progress_id)."""
    params = request.validated_params
    try:
        with session_scope() as db_session:
            result = reset_schedule(db_session, progress_id=params.progress_id)
        return jsonify(result), 200
    except Exception as e:
        return _internal_error("resetting backfill schedule", e)


# ---------------------------------------------------------------------------
# Manual triggers
# ---------------------------------------------------------------------------

@sync_bp.route('/worker/run', methods=['POST'])
def run_worker():
    """Run one queue worker tick now."""
    try:
        with session_scope() as db_session:
            result = BackfillQueueWorker(db_session).run()
        return jsonify(result), http_status_for(result)
    except Exception as e:
        return _internal_error("running queue worker", e)


@sync_bp.route('/incremental/run', methods=['POST'])
def run_incremental():
    try:
        with session_scope() as db_session:
            result = IncrementalSyncer(db_session).run()
        return jsonify(result), http_status_for(result)
    except Exception as e:
        return _internal_error("running incremental sync", e)


@sync_bp.route('/gaps/detect', methods=['POST'])
@validate_json(GapRangeRequest)
def detect_gaps():
    params = request.validated_params
    try:
        with session_scope() as db_session:
            result = GapDetector(db_session).detect(
                params.start_date, params.end_date, endpoints=params.endpoints
            )
        return jsonify(result), http_status_for(result)
    except Exception as e:
        return _internal_error("detecting gaps", e)


@sync_bp.route('/gaps/remediate', methods=['POST'])
@validate_json(GapRangeRequest)
def remediate():
    """Detect gaps and start one backfill covering first..last missing day."""
    params = request.validated_params
    try:
        with session_scope() as db_session:
            result = remediate_gaps(
                db_session, params.start_date, params.end_date, endpoints=params.endpoints
            )
        return jsonify(result), http_status_for(result)
    except Exception as e:
        return _internal_error("remediating gaps", e)


# ---------------------------------------------------------------------------
# Config and history
# ---------------------------------------------------------------------------

@sync_bp.route('/config', methods=['GET'])
def read_config():
    try:
        with session_scope() as db_session:
            config = get_sync_config(db_session)
        if config is None:
            return jsonify({"success": False, "error": "sync_config not initialized"}), 404
        return jsonify({"success": True, "config": config}), 200
    except Exception as e:
        return _internal_error("reading sync config", e)


@sync_bp.route('/config', methods=['POST'])
def write_config():
    """Update mode, endpoints, intervals, quiet hours or max attempts."""
    payload = request.get_json(silent=True) or {}
    try:
        with session_scope() as db_session:
            config = update_sync_config(db_session, **payload)
        return jsonify({"success": True, "config": config}), 200
    except SyncError as e:
        result = error_result(e)
        return jsonify(result), http_status_for(result)
    except Exception as e:
        return _internal_error("updating sync config", e)


@sync_bp.route('/history', methods=['GET'])
@validate_query(SyncHistoryQuery)
def sync_history():
    params = request.validated_params
    try:
        with session_scope() as db_session:
            logs = [log.to_dict() for log in get_sync_history(db_session, params.provider, params.limit)]
        return jsonify({"success": True, "history": logs, "count": len(logs)}), 200
    except Exception as e:
        return _internal_error("loading sync history", e)


@sync_bp.route('/jobs', methods=['GET'])
def job_executions():
    """Recent scheduled job runs; ?failed_only=true to see failures only."""
    failed_only = request.args.get('failed_only', 'false').lower() == 'true'
    try:
        with session_scope() as db_session:
            runs = [
                run.to_dict()
                for run in get_recent_executions(
                    db_session, job_name=request.args.get('job_name'), failed_only=failed_only
                )
            ]
        return jsonify({"success": True, "executions": runs}), 200
    except Exception as e:
        return _internal_error("loading job executions", e)
