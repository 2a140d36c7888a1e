"""
Flask Application Factory.

This application factory wires:
- SQLite persistence via Flask-SQLAlchemy (catalog seeded on startup)
- The login rate limiter (limits) and app-wide default limits (Flask-Limiter)
- The auth API blueprint
- Login audit logging
"""
import logging
import os

from flask import Flask, jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.middleware.proxy_fix import ProxyFix

from .api import auth_bp
from .audit_logger import init_audit_logger
from .config_defaults import get_bool, get_config, get_list, require_default
from .database import init_db
from .rate_limiter import init_rate_limiter

logger = logging.getLogger(__name__)


def create_app() -> Flask:
    """
    Create and configure the Flask application.

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    # Trust proxy headers (for reverse proxy deployments)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    # =========================================================================
    # Security Configuration
    # =========================================================================

    secret_key = os.environ.get('SECRET_KEY') or require_default('SECRET_KEY')
    app.config['SECRET_KEY'] = secret_key

    # Maximum request size (1 MB; login payloads are tiny)
    app.config['MAX_CONTENT_LENGTH'] = int(os.environ.get('MAX_CONTENT_LENGTH', 1024 * 1024))

    flask_env = os.environ.get('FLASK_ENV', 'production')

    # Secure cookie - auto mode: off for local testing, on for production
    secure_setting = get_config('SESSION_COOKIE_SECURE', 'auto')
    if secure_setting == 'auto':
        app.config['SESSION_COOKIE_SECURE'] = flask_env != 'local_test'
    else:
        app.config['SESSION_COOKIE_SECURE'] = secure_setting.lower() in ('true', '1', 'yes')

    app.config['SESSION_COOKIE_HTTPONLY'] = True
    app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'

    # =========================================================================
    # Database Initialization
    # =========================================================================

    init_db(app)

    # =========================================================================
    # Rate Limiting
    # =========================================================================

    # Login attempts are counted per client IP by the login pipeline itself
    init_rate_limiter(app)

    limiter = Limiter(
        app=app,
        key_func=get_remote_address,
        default_limits=get_list('DEFAULT_RATE_LIMITS', ['200 per hour', '50 per minute']),
        storage_uri=get_config('RATE_LIMIT_STORAGE_URI', 'memory://'),
        enabled=get_bool('RATE_LIMIT_ENABLED', True),
    )
    limiter.exempt(auth_bp)

    # =========================================================================
    # Audit Logging
    # =========================================================================

    init_audit_logger(app)

    # =========================================================================
    # Register Blueprints
    # =========================================================================

    app.register_blueprint(auth_bp)

    # =========================================================================
    # Error Handlers
    # =========================================================================

    @app.errorhandler(404)
    def not_found(e):
        if request.path.startswith('/api/'):
            return jsonify({'ok': False, 'error': 'Endpoint not found'}), 404
        return "Not Found", 404

    @app.errorhandler(500)
    def internal_error(e):
        logger.exception("Internal server error")
        if request.path.startswith('/api/'):
            return jsonify({'ok': False, 'error': 'Internal server error'}), 500
        return "Internal Server Error", 500

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.route('/health')
    def health():
        """Health check endpoint."""
        return jsonify({'status': 'ok'})

    logger.info("Flask application created successfully")
    return app
