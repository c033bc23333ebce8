"""AI blueprint: Gemini-backed assistant endpoints."""
from flask import Blueprint
from flask_cors import CORS

from teamspace.blueprints.api import CORS_OPTIONS

ai_bp = Blueprint('ai', __name__)

CORS(ai_bp, resources={r"/*": CORS_OPTIONS})

from teamspace.blueprints.ai import routes  # noqa: F401, E402
