"""Flask application exposing the sync scheduler API."""

import logging

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from config.settings import settings
from opsync.routes.health import health_bp
from opsync.routes.sync import sync_bp
from opsync.utils.database import init_database

logging.basicConfig(
    level=getattr(logging, settings.agent.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = Flask(__name__)

cors_origins = [origin.strip() for origin in settings.web.cors_origins.split(',') if origin.strip()]
CORS(app, origins=cors_origins,
     allow_headers=['Content-Type', 'Authorization'],
     methods=['GET', 'POST', 'OPTIONS'])
logger.info(f"CORS origins: {cors_origins}")

limiter = Limiter(
    app=app,
    key_func=get_remote_address,
    default_limits=["1000 per day", "120 per hour"],
    storage_uri=settings.web.rate_limit_storage_uri,
    strategy="moving-window",
    # Fail open on storage errors
    swallow_errors=True,
    headers_enabled=True
)

# Initialize database once at startup
init_database()

app.register_blueprint(health_bp)
app.register_blueprint(sync_bp)
limiter.exempt(health_bp)


if __name__ == '__main__':
    app.run(host=settings.web.host, port=settings.web.port, debug=settings.web.debug)
