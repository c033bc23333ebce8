"""
Stripe SDK seam for subscription billing.

Every Stripe call used by the application goes through this module so
that errors come out as StripeBillingError and tests can patch one place.
"""
import logging
from typing import Optional

import stripe
from flask import current_app

from teamspace.extensions import db

logger = logging.getLogger(__name__)


class StripeBillingError(Exception):
    """Raised when a Stripe API call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    @property
    def is_client_error(self) -> bool:
        return self.status_code is not None and 400 <= self.status_code < 500


class WebhookSignatureError(ValueError):
    """Raised when a Stripe webhook payload fails signature verification."""


def _wrap(error: 'stripe.error.StripeError', action: str) -> StripeBillingError:
    message = getattr(error, 'user_message', None) or str(error) or 'Stripe error'
    logger.error(f"Stripe {action} failed: {message}")
    return StripeBillingError(message, status_code=getattr(error, 'http_status', None))


def get_or_create_customer(user) -> str:
    """Get or create a Stripe customer for the user.

    Args:
        user: User to get/create customer for

    Returns:
        Stripe customer ID (persisted on the user)
    """
    if user.stripe_customer_id:
        return user.stripe_customer_id

    try:
        customer = stripe.Customer.create(
            email=user.email,
            name=user.display_name,
            metadata={'user_id': str(user.id)},
        )
    except stripe.error.StripeError as e:
        raise _wrap(e, 'customer creation')

    user.stripe_customer_id = customer.id
    db.session.commit()
    return customer.id


def create_checkout_session(customer_id: str, price_id: str, user_id: str) -> str:
    """Create a subscription Checkout Session and return its URL."""
    app_url = current_app.config['APP_URL']
    try:
        session = stripe.checkout.Session.create(
            customer=customer_id,
            payment_method_types=['card'],
            line_items=[{'price': price_id, 'quantity': 1}],
            mode='subscription',
            success_url=f'{app_url}/dashboard?session_id={{CHECKOUT_SESSION_ID}}',
            cancel_url=f'{app_url}/dashboard',
            client_reference_id=user_id,
            metadata={'user_id': user_id},
        )
    except stripe.error.StripeError as e:
        raise _wrap(e, 'checkout session creation')
    return session.url


def retrieve_checkout_session(session_id: str):
    """Retrieve a Checkout Session with its subscription expanded."""
    try:
        return stripe.checkout.Session.retrieve(session_id, expand=['subscription'])
    except stripe.error.StripeError as e:
        raise _wrap(e, 'checkout session retrieval')


def retrieve_subscription(subscription_id: str):
    try:
        return stripe.Subscription.retrieve(subscription_id)
    except stripe.error.StripeError as e:
        raise _wrap(e, 'subscription retrieval')


def schedule_cancellation(subscription_id: str):
    """Cancel a subscription at the end of its current period."""
    try:
        return stripe.Subscription.modify(subscription_id, cancel_at_period_end=True)
    except stripe.error.StripeError as e:
        raise _wrap(e, 'subscription cancellation')


def construct_event(payload: bytes, sig_header: Optional[str]):
    """Verify and parse a webhook payload.

    Raises:
        WebhookSignatureError: Missing header or invalid signature
    """
    if not sig_header:
        raise WebhookSignatureError('Missing Stripe-Signature header')

    webhook_secret = current_app.config.get('STRIPE_WEBHOOK_SECRET') or ''
    try:
        return stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
    except stripe.error.SignatureVerificationError:
        raise WebhookSignatureError('Invalid webhook signature')
    except ValueError:
        raise WebhookSignatureError('Invalid webhook payload')
