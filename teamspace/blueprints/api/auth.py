"""
API Authentication: current-user endpoint.

Sign-in and token refresh happen at the identity provider; this service
only verifies the bearer tokens it issues.
"""
from flask import request, jsonify

from teamspace.blueprints.api import api_bp
from teamspace.blueprints.api.decorators import jwt_required
from teamspace.blueprints.api.schemas import UserSchema


@api_bp.route('/auth/me', methods=['GET'])
@jwt_required
def api_me():
    """Get current authenticated user profile.

    Returns:
        {"data": {...user fields, plan, subscription...}}
    """
    return jsonify({
        'data': UserSchema().dump(request.api_user),
    }), 200
