"""
JWT authentication decorators for the API.

Tokens are issued by the identity provider (HS256, shared secret);
``sub`` carries the user ID.
"""
from functools import wraps
from datetime import datetime, timedelta, timezone

import jwt
from flask import request, current_app

from teamspace.blueprints.api.helpers import api_error
from teamspace.extensions import db
from teamspace.models.user import User


def _secret():
    return current_app.config.get('JWT_SECRET_KEY') or current_app.config['SECRET_KEY']


def create_access_token(user_id, expires_minutes=60, **claims):
    """Create an HS256 token shaped like the identity provider's."""
    payload = {
        'sub': str(user_id),
        'iat': datetime.now(timezone.utc),
        'exp': datetime.now(timezone.utc) + timedelta(minutes=expires_minutes),
    }
    audience = current_app.config.get('JWT_AUDIENCE')
    if audience:
        payload['aud'] = audience
    payload.update(claims)
    return jwt.encode(payload, _secret(), algorithm='HS256')


def decode_token(token):
    """Decode and validate a JWT token. Returns payload or None."""
    audience = current_app.config.get('JWT_AUDIENCE')
    try:
        return jwt.decode(
            token,
            _secret(),
            algorithms=['HS256'],
            audience=audience,
            leeway=current_app.config.get('JWT_LEEWAY', timedelta(seconds=0)),
            options={'verify_aud': bool(audience), 'require': ['sub', 'exp']},
        )
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def get_current_api_user():
    """Extract user from Authorization header. Returns (user, error_response)."""
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return None, api_error('missing_token', 'Authorization header with Bearer token required.', 401)

    payload = decode_token(auth_header[7:])
    if payload is None:
        return None, api_error('invalid_token', 'Token is invalid or expired.', 401)

    user = db.session.get(User, str(payload['sub']))
    if user is None or not user.is_active:
        return None, api_error('user_not_found', 'User not found or deactivated.', 401)

    return user, None


def jwt_required(f):
    """Decorator: require valid JWT access token."""
    @wraps(f)
    def decorated(*args, **kwargs):
        user, error = get_current_api_user()
        if error:
            return error
        request.api_user = user
        return f(*args, **kwargs)
    return decorated


def requires_feature(feature):
    """Decorator: require a plan feature (e.g. 'ai'). Apply after jwt_required.

    Usage: @requires_feature('ai')
    """
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            from teamspace.services.entitlements import has_feature

            if not has_feature(request.api_user, feature):
                return api_error(
                    'plan_required',
                    'This feature is only available on Pro or Enterprise plans.',
                    403,
                )
            return f(*args, **kwargs)
        return decorated
    return decorator
