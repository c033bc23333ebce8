"""
Main blueprint routes: health check.
"""
from flask import jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from teamspace.blueprints.main import main_bp
from teamspace.extensions import db

# Settings reported as configured/missing (never their values)
_REPORTED_SETTINGS = (
    'JWT_SECRET_KEY',
    'MP_ACCESS_TOKEN',
    'STRIPE_SECRET_KEY',
    'STRIPE_WEBHOOK_SECRET',
    'GEMINI_API_KEY',
    'CRON_SECRET',
)


@main_bp.route('/health')
def health_check():
    """Health check endpoint for the load balancer."""
    try:
        db.session.execute(db.text('SELECT 1'))
        db_status = 'healthy'
    except SQLAlchemyError as e:
        db.session.rollback()
        db_status = f'unhealthy: {type(e).__name__}'

    status = 'healthy' if db_status == 'healthy' else 'unhealthy'

    return jsonify({
        'status': status,
        'database': db_status,
        'service': 'teamspace',
        'config': {key: bool(current_app.config.get(key)) for key in _REPORTED_SETTINGS},
    }), 200 if status == 'healthy' else 503
