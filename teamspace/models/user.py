"""
User model.

Users are provisioned by the identity provider; ``id`` is the JWT subject.
"""
from datetime import datetime

from teamspace.extensions import db


class User(db.Model):
    """Application user mirrored from the identity provider."""

    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # Stripe customer, created lazily at first checkout
    stripe_customer_id = db.Column(db.String(255), unique=True, nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<User {self.email}>'

    @property
    def display_name(self):
        return self.name or self.email.split('@')[0]

    # ============================================================
    # BILLING / SUBSCRIPTION HELPERS
    # ============================================================

    @property
    def is_premium(self):
        """Check if the user's subscription currently grants paid features."""
        return self.subscription is not None and self.subscription.is_active_premium

    @property
    def current_plan(self):
        """Get the user's effective plan name ('free', 'starter', 'pro', 'enterprise')."""
        if self.subscription is not None:
            return self.subscription.effective_tier.value
        return 'free'

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'plan': self.current_plan,
            'is_premium': self.is_premium,
        }
