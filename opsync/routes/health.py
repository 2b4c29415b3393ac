"""Health check endpoints."""

from flask import Blueprint, jsonify
from datetime import datetime, timezone
import logging

from sqlalchemy import text

logger = logging.getLogger(__name__)

health_bp = Blueprint('health', __name__, url_prefix='/api')


@health_bp.route('/health', methods=['GET'])
def health_check():
    """Liveness probe. Exempted from rate limiting in web_interface.py."""
    return jsonify({
        'status': 'healthy',
        'timestamp': datetime.now(timezone.utc).isoformat()
    }), 200


@health_bp.route('/health/database', methods=['GET'])
def database_health_check():
    """Database connectivity plus whether the sync_config row exists."""
    try:
        from opsync.utils.database import session_scope
        from opsync.services.sync_config_service import get_sync_config

        with session_scope() as db_session:
            db_session.execute(text("SELECT 1"))
            config = get_sync_config(db_session)

        return jsonify({
            'status': 'healthy' if config else 'degraded',
            'sync_config_present': config is not None,
            'sync_mode': config['mode'] if config else None,
        }), 200 if config else 503
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return jsonify({
            'status': 'unhealthy',
            'error': str(e)
        }), 503
