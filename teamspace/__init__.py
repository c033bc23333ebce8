"""
TeamSpace Application Factory.
Creates and configures the Flask application instance.
"""
import os
import json
import logging
import time
import uuid
from datetime import datetime, timezone

import click
from flask import Flask, request, g, jsonify

from teamspace.config import config
from teamspace.extensions import init_extensions, db


def _init_sentry(app):
    """Initialize Sentry error tracking for production."""
    dsn = app.config.get('SENTRY_DSN') or os.environ.get('SENTRY_DSN')
    if not dsn:
        app.logger.info('SENTRY_DSN not set, error tracking disabled.')
        return

    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

        sentry_sdk.init(
            dsn=dsn,
            integrations=[FlaskIntegration(), SqlalchemyIntegration()],
            traces_sample_rate=float(os.environ.get('SENTRY_TRACES_RATE', '0.1')),
            environment=os.environ.get('FLASK_ENV', 'production'),
            send_default_pii=False,
        )
        app.logger.info('Sentry error tracking initialized.')
    except ImportError:
        app.logger.warning('sentry-sdk not installed, error tracking disabled.')


def create_app(config_name=None):
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration to use (development, testing, production)

    Returns:
        Configured Flask application instance
    """
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    app = Flask(__name__)

    # Load configuration
    config_class = config[config_name]
    app.config.from_object(config_class)

    # Initialize Sentry (production only)
    if config_name == 'production':
        _init_sentry(app)

    # Call init_app if available (production validation happens here)
    if hasattr(config_class, 'init_app'):
        config_class.init_app(app)

    # Initialize extensions
    init_extensions(app)

    # Enable response compression (gzip)
    from flask_compress import Compress
    Compress(app)

    # Initialize Stripe API key
    if app.config.get('STRIPE_SECRET_KEY'):
        import stripe
        stripe.api_key = app.config['STRIPE_SECRET_KEY']

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Register CLI commands
    register_cli_commands(app)

    # Configure logging
    configure_logging(app)

    # Add security headers
    register_security_headers(app)

    # Create database tables (development only)
    if config_name == 'development':
        with app.app_context():
            db.create_all()

    return app


def register_blueprints(app):
    """Register all application blueprints."""
    from teamspace.blueprints.main import main_bp
    from teamspace.blueprints.api import api_bp
    from teamspace.blueprints.billing import billing_bp
    from teamspace.blueprints.ai import ai_bp

    app.register_blueprint(main_bp)
    # JSON API: projects, plan limits, current user
    app.register_blueprint(api_bp, url_prefix='/api')
    # Billing: checkout, webhooks, sync, cancellation, sweeper
    app.register_blueprint(billing_bp, url_prefix='/api')
    # AI assistant
    app.register_blueprint(ai_bp, url_prefix='/api/ia')


def _error_response(code, message, status, **extra):
    body = {'error': {'code': code, 'message': message}}
    body['error'].update(extra)
    return jsonify(body), status


def register_error_handlers(app):
    """Register JSON error handlers for common HTTP errors."""

    @app.errorhandler(400)
    def bad_request(error):
        return _error_response('bad_request', 'Bad request.', 400)

    @app.errorhandler(403)
    def forbidden(error):
        return _error_response('forbidden', 'Access denied.', 403)

    @app.errorhandler(404)
    def not_found(error):
        return _error_response('not_found', 'Resource not found.', 404)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return _error_response('method_not_allowed', 'Method not allowed.', 405)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        request_id = g.get('request_id', '-')
        app.logger.error('500 Internal Server Error: %s (request_id=%s)', type(error).__name__, request_id, exc_info=True)
        return _error_response('internal_error', 'Internal server error.', 500, request_id=request_id)

    @app.errorhandler(429)
    def ratelimit_error(error):
        return _error_response('rate_limit_exceeded', 'Too many requests. Try again later.', 429)


def register_cli_commands(app):
    """Register custom CLI commands."""

    @app.cli.command('init-db')
    def init_db():
        """Create all database tables."""
        db.create_all()
        print("Database tables created.")

    @app.cli.command('sweep-subscriptions')
    @click.option('--dry-run', is_flag=True, help='List expired subscriptions without finalizing them')
    def sweep_subscriptions(dry_run):
        """Finalize subscriptions whose scheduled cancellation has passed."""
        from teamspace.services.subscription_service import SubscriptionService

        if dry_run:
            expired = SubscriptionService.find_expired_subscriptions()
            print(f"[DRY RUN] {len(expired)} subscription(s) would be finalized")
            for subscription in expired:
                print(f"  - user={subscription.user_id} {subscription.provider.value}:"
                      f"{subscription.external_subscription_id} period_end={subscription.current_period_end}")
            return

        cleaned = SubscriptionService.sweep_expired_subscriptions()
        print(f"Finalized {cleaned} expired subscription(s)")


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production (cloud log aggregation)."""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'message': record.getMessage(),
            'module': record.module,
            'line': record.lineno,
        }
        # Add request_id if available
        try:
            log_entry['request_id'] = g.get('request_id', '-')
        except RuntimeError:
            pass  # Outside request context
        # Add exception info
        if record.exc_info and record.exc_info[0]:
            log_entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False)


def configure_logging(app):
    """Configure application logging.

    Production: JSON to stdout.
    Development: plain text.
    """
    if app.testing:
        return

    # Request ID middleware
    @app.before_request
    def assign_request_id():
        g.request_id = request.headers.get('X-Request-ID', str(uuid.uuid4())[:8])
        g.request_started = time.monotonic()

    @app.after_request
    def log_request(response):
        started = g.get('request_started')
        elapsed_ms = int((time.monotonic() - started) * 1000) if started else 0
        app.logger.info(
            '%s %s %s %dms',
            request.method,
            request.path,
            response.status_code,
            elapsed_ms,
        )
        response.headers['X-Request-ID'] = g.get('request_id', '-')
        return response

    # Service loggers (logging.getLogger(__name__)) share the app handlers
    package_logger = logging.getLogger('teamspace')

    if not app.debug:
        # Production: JSON to stdout
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(JSONFormatter())
        stream_handler.setLevel(logging.INFO)

        # Clear existing handlers to avoid duplicates
        app.logger.handlers.clear()
        app.logger.addHandler(stream_handler)
        app.logger.setLevel(logging.INFO)
        package_logger.handlers.clear()
        package_logger.addHandler(stream_handler)
        package_logger.setLevel(logging.INFO)
        app.logger.info('TeamSpace startup (JSON logging)')
    else:
        # Development: plain text
        app.logger.setLevel(logging.DEBUG)
        package_logger.setLevel(logging.DEBUG)
        app.logger.info('TeamSpace startup (development)')


def register_security_headers(app):
    """Register security headers for all responses."""

    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        # Prevent MIME type sniffing
        response.headers['X-Content-Type-Options'] = 'nosniff'

        # JSON API: never framed
        response.headers['X-Frame-Options'] = 'DENY'

        # Referrer policy
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'

        # HSTS - Force HTTPS (1 year, include subdomains)
        if not app.debug:
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        # Prevent cross-domain policy loading
        response.headers['X-Permitted-Cross-Domain-Policies'] = 'none'

        # API responses load nothing
        response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"

        return response
