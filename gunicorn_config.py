"""
Gunicorn configuration for the ops sync API.

Scheduling runs in Celery Beat, not in web workers; the web process only
serves the /api/sync endpoints.
"""

import logging
import os

logger = logging.getLogger(__name__)

# Gunicorn server settings
bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"
workers = int(os.getenv('WEB_CONCURRENCY', '2'))
timeout = 120  # Manual worker/incremental triggers call the provider synchronously
worker_class = 'sync'

# Logging
loglevel = 'info'
accesslog = '-'
errorlog = '-'


def worker_exit(server, worker):
    """Dispose pooled database connections when a worker exits."""
    try:
        from opsync.utils.database import cleanup_connections

        cleanup_connections()
    except Exception as e:
        logger.error(f"Error cleaning up connections in worker {worker.pid}: {e}")
