"""
scrapesync web app: the scraper monitor API behind gunicorn (see wsgi.py).
"""
import hmac
from flask import Flask, request, jsonify


def create_app():
    """Build the Flask app: logging, token guard, blueprints, platform breaker."""
    from scrapesync.logging_config import configure_logging
    from scrapesync import config

    app = Flask(__name__)

    configure_logging(app)

    # Refuse to boot against the SQLite fallback in production
    config.check_store_config()

    # ── Bearer token auth ───────────────────────────────────────────────

    OPEN_PATHS = {'/health'}

    @app.before_request
    def require_token():
        if not config.API_TOKEN:
            return  # API_TOKEN unset: local dev, no auth
        if request.path in OPEN_PATHS:
            return
        header = request.headers.get('Authorization', '')
        scheme, _, token = header.partition(' ')
        if scheme.lower() == 'bearer' and hmac.compare_digest(token.strip().encode(), config.API_TOKEN.encode()):
            return
        return jsonify({'error': 'Unauthorized'}), 401

    # Blueprints
    from scrapesync.routes.dashboard import bp as dashboard_bp
    from scrapesync.routes.monitor import bp as monitor_bp

    app.register_blueprint(dashboard_bp)
    app.register_blueprint(monitor_bp)

    # Breaker state is shared with the RQ worker through Redis
    from scrapesync.extensions import redis_client
    from scrapesync.services.circuit_breaker import init_breakers
    init_breakers(redis_client)

    # Mapped classes must be registered before the first query
    # Tables come from alembic/versions, never create_all()
    import importlib
    importlib.import_module('scrapesync.models.db_run')
    importlib.import_module('scrapesync.models.db_record')

    return app
