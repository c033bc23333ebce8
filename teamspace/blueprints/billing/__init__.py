"""Billing blueprint: Mercado Pago and Stripe subscription management."""
from flask import Blueprint
from flask_cors import CORS

from teamspace.blueprints.api import CORS_OPTIONS

billing_bp = Blueprint('billing', __name__)

CORS(billing_bp, resources={r"/*": CORS_OPTIONS})

from teamspace.blueprints.billing import routes  # noqa: F401, E402
