"""
API Blueprint: JSON endpoints authenticated with identity-provider JWTs.
"""
import os
from flask import Blueprint
from flask_cors import CORS

api_bp = Blueprint('api', __name__)

# Configure allowed origins via APP_CORS_ORIGINS env var (comma-separated)
_cors_origins = os.environ.get('APP_CORS_ORIGINS', 'http://localhost:3000')
_allowed_origins = [o.strip() for o in _cors_origins.split(',') if o.strip()]

CORS_OPTIONS = {
    "origins": _allowed_origins,
    "methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    "allow_headers": ["Authorization", "Content-Type"],
    "expose_headers": ["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
    "max_age": 600,
}

CORS(api_bp, resources={r"/*": CORS_OPTIONS})

from teamspace.blueprints.api import auth, routes, invitations  # noqa: E402, F401
