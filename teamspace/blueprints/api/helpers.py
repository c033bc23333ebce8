"""
API helper functions: pagination, error formatting, response builders.
"""
from flask import request, jsonify


def paginate_query(query, schema, default_per_page=20, max_per_page=100):
    """Apply offset-based pagination to a SQLAlchemy query.

    Query params:
        page (int): Page number (1-indexed, default 1)
        per_page (int): Items per page (default 20, max 100)

    Returns:
        JSON-ready dict with data and meta.
    """
    page = max(1, request.args.get('page', 1, type=int))
    per_page = request.args.get('per_page', default_per_page, type=int)
    per_page = max(1, min(per_page, max_per_page))

    pagination = query.paginate(page=page, per_page=per_page, error_out=False)

    return {
        'data': schema.dump(pagination.items, many=True),
        'meta': {
            'total': pagination.total,
            'page': page,
            'per_page': per_page,
            'total_pages': pagination.pages or 1,
        },
    }


def api_error(code, message, status=400, details=None):
    """Build a standard API error response."""
    error_body = {
        'error': {
            'code': code,
            'message': message,
        }
    }
    if details:
        error_body['error']['details'] = details
    return jsonify(error_body), status


def api_success(data, status=200):
    """Build a standard API success response."""
    return jsonify({'data': data}), status


def json_body():
    """Request JSON as a dict ({} when missing or malformed)."""
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}
