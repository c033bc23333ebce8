"""
Subscription model for TeamSpace SaaS billing.
Tracks the user's paid plan across Mercado Pago and Stripe.
"""
import enum
from datetime import datetime

from teamspace.extensions import db
from teamspace.services.premium import evaluate_premium
from teamspace.utils.dates import isoformat_or_none


class SubscriptionStatus(str, enum.Enum):
    """Internal subscription statuses (closed vocabulary)."""
    ACTIVE = 'active'
    TRIALING = 'trialing'
    PAST_DUE = 'past_due'
    CANCELED = 'canceled'
    INCOMPLETE = 'incomplete'
    PAUSED = 'paused'


class PlanTier(str, enum.Enum):
    """Available plan tiers."""
    FREE = 'free'
    STARTER = 'starter'
    PRO = 'pro'
    ENTERPRISE = 'enterprise'


class BillingProvider(str, enum.Enum):
    """Payment providers that can own a subscription."""
    MERCADOPAGO = 'mercadopago'
    STRIPE = 'stripe'


# Statuses that allow a cancellation request
CANCELLABLE_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)

# Statuses the sweeper finalizes once the paid period is over
PREMIUM_STATUSES = (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.PAST_DUE,
)


class Subscription(db.Model):
    """User subscription for SaaS billing (one row per user)."""

    __tablename__ = 'subscriptions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.String(36),
        db.ForeignKey('users.id', ondelete='CASCADE'),
        unique=True,
        nullable=False,
        index=True,
    )

    provider = db.Column(
        db.Enum(BillingProvider, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    external_subscription_id = db.Column(
        db.String(255), unique=True, nullable=True, index=True,
    )
    provider_plan_id = db.Column(db.String(255), nullable=True)

    plan_tier = db.Column(
        db.Enum(PlanTier, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=PlanTier.FREE,
    )
    status = db.Column(
        db.Enum(SubscriptionStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=SubscriptionStatus.INCOMPLETE,
    )

    # Billing period
    current_period_start = db.Column(db.DateTime, nullable=True)
    current_period_end = db.Column(db.DateTime, nullable=True)
    cancel_at_period_end = db.Column(db.Boolean, nullable=False, default=False)
    canceled_at = db.Column(db.DateTime, nullable=True)
    ended_at = db.Column(db.DateTime, nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=True, onupdate=datetime.utcnow)

    # Relationships
    user = db.relationship('User', backref=db.backref('subscription', uselist=False))

    def __repr__(self):
        return f'<Subscription user={self.user_id} {self.provider.value}:{self.status.value}>'

    def premium_evaluation(self, now=None):
        return evaluate_premium(self.status, self.cancel_at_period_end, self.canceled_at, now)

    @property
    def is_active_premium(self):
        """Whether this subscription currently grants paid features."""
        return self.premium_evaluation().is_active_premium

    @property
    def effective_tier(self):
        """Plan tier granted right now (free when not premium)."""
        if self.is_active_premium:
            return self.plan_tier
        return PlanTier.FREE

    def to_dict(self):
        """Serialize subscription to dict."""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'provider': self.provider.value,
            'external_subscription_id': self.external_subscription_id,
            'plan_tier': self.plan_tier.value,
            'status': self.status.value,
            'is_active_premium': self.is_active_premium,
            'current_period_start': isoformat_or_none(self.current_period_start),
            'current_period_end': isoformat_or_none(self.current_period_end),
            'cancel_at_period_end': self.cancel_at_period_end,
            'canceled_at': isoformat_or_none(self.canceled_at),
            'ended_at': isoformat_or_none(self.ended_at),
        }
