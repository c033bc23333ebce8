"""
Subscription service for TeamSpace SaaS billing.

Reconciles local subscription rows with Mercado Pago preapprovals and
Stripe subscriptions: checkout, webhooks, manual sync, cancellation and
the expired-subscription sweeper.

Write paths use different upsert keys. Webhooks upsert by
``external_subscription_id``; manual syncs and checkout upsert by
``user_id``. ``user_id`` is unique, so a webhook for a new external ID of a
user who already holds a row under another external ID is not applied: it
is logged and answered as ignored (``external_id_mismatch``), and the
user's row keeps its current provider state until a manual sync, which is
keyed by user, moves it onto the new external ID.
"""
import calendar
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from teamspace.extensions import db
from teamspace.models.subscription import (
    Subscription, SubscriptionStatus, PlanTier, BillingProvider,
    CANCELLABLE_STATUSES, PREMIUM_STATUSES,
)
from teamspace.models.user import User
from teamspace.services import mercadopago_client, stripe_billing
from teamspace.services.mercadopago_client import MercadoPagoError
from teamspace.services.stripe_billing import StripeBillingError
from teamspace.utils.dates import utcnow, parse_provider_datetime, isoformat_or_none

logger = logging.getLogger(__name__)

PREAPPROVAL_TOPIC = 'subscription_preapproval'
PAYMENT_TOPIC = 'payment'

# External references shorter than this cannot be a user ID
MIN_EXTERNAL_REFERENCE_LENGTH = 10
NO_REFERENCE = 'NO_REF'

MERCADOPAGO_STATUS_MAP = {
    'authorized': 'active',
    'pending': 'incomplete',
    'paused': 'paused',
    'cancelled': 'canceled',
}

STRIPE_STATUS_MAP = {
    'unpaid': 'past_due',
    'incomplete_expired': 'canceled',
}

# Most specific tier first
TIER_PRECEDENCE = (PlanTier.ENTERPRISE, PlanTier.PRO, PlanTier.STARTER)
PAID_TIERS = tuple(t.value for t in TIER_PRECEDENCE)

MERCADOPAGO_STATUS_LABELS = {
    'authorized': 'Active',
    'pending': 'Pending payment',
    'paused': 'Paused',
    'cancelled': 'Cancelled',
}


# ============================================================
# ERRORS
# ============================================================

class BillingError(Exception):
    """Base class for billing failures surfaced to API callers."""

    status_code = 500
    code = 'billing_error'

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class SubscriptionNotFound(BillingError):
    status_code = 404
    code = 'subscription_not_found'


class InvalidPlanTier(BillingError):
    status_code = 400
    code = 'invalid_plan'


class SubscriptionOwnershipError(BillingError):
    """The provider object belongs to another user or customer."""
    status_code = 403
    code = 'ownership_mismatch'


class UnknownStatusError(BillingError):
    """A provider status could not be translated into the internal vocabulary."""
    code = 'unknown_status'

    def __init__(self, raw_status):
        self.raw_status = raw_status
        super().__init__(f'Unknown subscription status: {raw_status!r}')


class ExternalIdMismatch(BillingError):
    """The user already has a row bound to a different external subscription."""
    status_code = 409
    code = 'external_id_mismatch'

    def __init__(self, user_id, current_id, incoming_id):
        self.current_id = current_id
        self.incoming_id = incoming_id
        super().__init__(
            f'User {user_id} is bound to {current_id}, not {incoming_id}'
        )


class ProviderError(BillingError):
    """A payment provider rejected the call or was unreachable."""
    code = 'provider_error'

    @classmethod
    def from_provider(cls, error):
        # Provider 4xx passes through, everything else is an upstream failure
        status = error.status_code if error.is_client_error else 500
        return cls(error.message, status_code=status)


# ============================================================
# PURE MAPPING
# ============================================================

def map_provider_status(raw: Optional[str]) -> Optional[str]:
    """Translate a Mercado Pago status; unknown values pass through unchanged."""
    return MERCADOPAGO_STATUS_MAP.get(raw, raw)


def map_stripe_status(raw: Optional[str]) -> Optional[str]:
    return STRIPE_STATUS_MAP.get(raw, raw)


def coerce_status(value) -> SubscriptionStatus:
    """Return the internal status enum or raise UnknownStatusError."""
    if isinstance(value, SubscriptionStatus):
        return value
    try:
        return SubscriptionStatus(value)
    except ValueError:
        raise UnknownStatusError(value)


def map_plan_tier(plan_id: Optional[str], tier_ids: Mapping[str, list]) -> PlanTier:
    """Match a provider plan/price ID against the configured per-tier ID lists.

    Args:
        plan_id: Provider plan identifier (may be None)
        tier_ids: Mapping of tier name to list of provider IDs

    Returns:
        Matching PlanTier, FREE when absent or unmatched
    """
    if not plan_id:
        return PlanTier.FREE
    for tier in TIER_PRECEDENCE:
        if plan_id in (tier_ids.get(tier.value) or ()):
            return tier
    return PlanTier.FREE


def add_one_month(value: datetime) -> datetime:
    """Same day next month, clamped to the month's last day."""
    year = value.year + value.month // 12
    month = value.month % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def is_valid_external_reference(reference: Optional[str]) -> bool:
    if not reference or reference == NO_REFERENCE:
        return False
    return len(reference) >= MIN_EXTERNAL_REFERENCE_LENGTH


@dataclass(frozen=True)
class ProviderSnapshot:
    """Provider-side state of a subscription, translated to internal terms."""
    provider: BillingProvider
    external_subscription_id: str
    raw_status: Optional[str]
    status: Optional[str]
    provider_plan_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    external_reference: Optional[str] = None
    customer_id: Optional[str] = None


def snapshot_from_preapproval(payload: Mapping) -> ProviderSnapshot:
    """Parse a Mercado Pago preapproval payload."""
    raw_status = payload.get('status')
    return ProviderSnapshot(
        provider=BillingProvider.MERCADOPAGO,
        external_subscription_id=str(payload.get('id')),
        raw_status=raw_status,
        status=map_provider_status(raw_status),
        provider_plan_id=payload.get('preapproval_plan_id'),
        current_period_start=parse_provider_datetime(payload.get('date_created')),
        current_period_end=parse_provider_datetime(payload.get('next_payment_date')),
        external_reference=payload.get('external_reference'),
    )


def _object_id(value) -> Optional[str]:
    # Stripe fields are either an ID string or an expanded object
    if value is None or isinstance(value, str):
        return value
    return value.get('id')


def snapshot_from_stripe(subscription) -> ProviderSnapshot:
    """Parse a Stripe Subscription object (or equivalent dict)."""
    items = (subscription.get('items') or {}).get('data') or []
    first_item = items[0] if items else {}
    price_id = _object_id(first_item.get('price'))

    # Newer API versions moved period bounds onto subscription items
    period_start = subscription.get('current_period_start') or first_item.get('current_period_start')
    period_end = subscription.get('current_period_end') or first_item.get('current_period_end')

    raw_status = subscription.get('status')
    return ProviderSnapshot(
        provider=BillingProvider.STRIPE,
        external_subscription_id=subscription.get('id'),
        raw_status=raw_status,
        status=map_stripe_status(raw_status),
        provider_plan_id=price_id,
        current_period_start=parse_provider_datetime(period_start),
        current_period_end=parse_provider_datetime(period_end),
        cancel_at_period_end=bool(subscription.get('cancel_at_period_end')),
        canceled_at=parse_provider_datetime(subscription.get('canceled_at')),
        ended_at=parse_provider_datetime(subscription.get('ended_at')),
        customer_id=_object_id(subscription.get('customer')),
    )


def extract_mercadopago_notification(query: Mapping, body) -> Tuple[Optional[str], Optional[str]]:
    """Pull (topic, resource_id) out of a Mercado Pago notification.

    Query string fields are read first (``topic``/``type``, ``id``/``data.id``);
    a JSON body overrides them. In the body ``data.id`` wins over ``id``.
    """
    topic = query.get('topic') or query.get('type')
    resource_id = query.get('id') or query.get('data.id')

    if isinstance(body, Mapping):
        if body.get('type'):
            topic = body['type']
        elif body.get('topic'):
            topic = body['topic']
        data = body.get('data')
        if isinstance(data, Mapping) and data.get('id'):
            resource_id = data['id']
        elif body.get('id') and not isinstance(data, Mapping):
            resource_id = body['id']

    return topic, (str(resource_id) if resource_id else None)


def _tier_ids(provider: BillingProvider) -> Mapping[str, list]:
    if provider == BillingProvider.STRIPE:
        return current_app.config.get('STRIPE_PRICE_IDS') or {}
    return current_app.config.get('MP_PLAN_IDS') or {}


class SubscriptionService:
    """Service for reconciling subscriptions with the payment providers."""

    # ============================================================
    # CHECKOUT
    # ============================================================

    @staticmethod
    def _checkout_tier(tier: Optional[str], provider: BillingProvider) -> Tuple[str, str]:
        tier = (tier or PlanTier.PRO.value).lower()
        if tier not in PAID_TIERS:
            raise InvalidPlanTier(f'Unknown plan tier: {tier}')
        ids = _tier_ids(provider).get(tier) or []
        if not ids:
            raise InvalidPlanTier(f'No {provider.value} plan configured for tier: {tier}')
        return tier, ids[0]

    @staticmethod
    def start_mercadopago_checkout(user: User, tier: Optional[str] = None) -> dict:
        """Create a pending Mercado Pago preapproval for the user.

        The local row is written before the user pays so the webhook always
        finds it. An active premium row is left alone: the user keeps the
        current plan, the webhook for the new preapproval is ignored as an
        external ID mismatch, and the upgrade lands when the return URL calls
        the manual sync.

        Args:
            user: User starting checkout
            tier: starter, pro or enterprise (default pro)

        Returns:
            Dict with preapproval id, provider status and init_point

        Raises:
            InvalidPlanTier: Unknown or unconfigured tier
            ProviderError: Mercado Pago rejected the request
        """
        tier, plan_id = SubscriptionService._checkout_tier(tier, BillingProvider.MERCADOPAGO)

        try:
            preapproval = mercadopago_client.create_preapproval(
                plan_id=plan_id,
                payer_email=user.email,
                external_reference=user.id,
                back_url=f"{current_app.config['APP_URL']}/dashboard",
                reason=f'TeamSpace {tier.capitalize()}',
            )
        except MercadoPagoError as e:
            raise ProviderError.from_provider(e)

        subscription = user.subscription
        if subscription is None or not subscription.is_active_premium:
            if subscription is None:
                subscription = Subscription(user_id=user.id)
                db.session.add(subscription)
            subscription.provider = BillingProvider.MERCADOPAGO
            subscription.external_subscription_id = str(preapproval.get('id'))
            subscription.provider_plan_id = plan_id
            subscription.plan_tier = PlanTier(tier)
            subscription.status = SubscriptionStatus.INCOMPLETE
            subscription.cancel_at_period_end = False
            subscription.canceled_at = None
            subscription.ended_at = None
            db.session.commit()

        current_app.logger.info(f'Mercado Pago checkout started for user {user.id} ({tier})')
        return {
            'id': preapproval.get('id'),
            'status': preapproval.get('status'),
            'init_point': preapproval.get('init_point'),
        }

    @staticmethod
    def start_stripe_checkout(user: User, tier: Optional[str] = None) -> str:
        """Create a Stripe Checkout Session for the tier.

        Returns:
            Checkout session URL to redirect to
        """
        tier, price_id = SubscriptionService._checkout_tier(tier, BillingProvider.STRIPE)
        try:
            customer_id = stripe_billing.get_or_create_customer(user)
            url = stripe_billing.create_checkout_session(customer_id, price_id, user.id)
        except StripeBillingError as e:
            raise ProviderError.from_provider(e)
        current_app.logger.info(f'Stripe checkout started for user {user.id} ({tier})')
        return url

    # ============================================================
    # UPSERTS
    # ============================================================

    @staticmethod
    def _apply_snapshot(subscription: Subscription, snapshot: ProviderSnapshot,
                        status: SubscriptionStatus) -> None:
        subscription.provider = snapshot.provider
        subscription.external_subscription_id = snapshot.external_subscription_id
        subscription.provider_plan_id = snapshot.provider_plan_id
        subscription.plan_tier = map_plan_tier(snapshot.provider_plan_id, _tier_ids(snapshot.provider))
        subscription.status = status
        if snapshot.current_period_start:
            subscription.current_period_start = snapshot.current_period_start
        if snapshot.current_period_end:
            subscription.current_period_end = snapshot.current_period_end

    @staticmethod
    def upsert_by_external_id(user_id: str, snapshot: ProviderSnapshot) -> Subscription:
        """Insert or update the row keyed by external subscription ID (webhook path).

        Raises:
            UnknownStatusError: Status outside the internal vocabulary
            ExternalIdMismatch: The user already has a row for another external ID
        """
        status = coerce_status(snapshot.status)
        subscription = Subscription.query.filter_by(
            external_subscription_id=snapshot.external_subscription_id
        ).first()
        if subscription is None:
            current = Subscription.query.filter_by(user_id=user_id).first()
            if current is not None:
                raise ExternalIdMismatch(user_id, current.external_subscription_id,
                                         snapshot.external_subscription_id)
            subscription = Subscription(user_id=user_id)
            db.session.add(subscription)
        subscription.user_id = user_id
        SubscriptionService._apply_snapshot(subscription, snapshot, status)
        db.session.commit()
        return subscription

    @staticmethod
    def upsert_by_user(user: User, snapshot: ProviderSnapshot, now: Optional[datetime] = None) -> Subscription:
        """Insert or update the user's row from an authoritative provider read (sync path).

        Period end defaults to one month from now when the provider omits it.
        Cancellation fields follow the provider: Mercado Pago has no scheduled
        cancellation, Stripe reports its own flags.
        """
        now = now or utcnow()
        status = coerce_status(snapshot.status)

        subscription = Subscription.query.filter_by(user_id=user.id).first()
        if subscription is None:
            subscription = Subscription(user_id=user.id)
            db.session.add(subscription)

        SubscriptionService._apply_snapshot(subscription, snapshot, status)
        if not snapshot.current_period_end:
            subscription.current_period_end = add_one_month(now)

        if snapshot.provider == BillingProvider.MERCADOPAGO:
            subscription.cancel_at_period_end = False
            subscription.canceled_at = now if snapshot.raw_status == 'cancelled' else None
            if status != SubscriptionStatus.CANCELED:
                subscription.ended_at = None
        else:
            subscription.cancel_at_period_end = snapshot.cancel_at_period_end
            subscription.canceled_at = snapshot.canceled_at
            subscription.ended_at = snapshot.ended_at

        db.session.commit()
        return subscription

    # ============================================================
    # WEBHOOKS
    # ============================================================

    @staticmethod
    def handle_mercadopago_notification(topic: Optional[str], resource_id: Optional[str]) -> dict:
        """Process a Mercado Pago notification.

        The notification only signals a change: the preapproval is re-fetched
        from Mercado Pago and that response is what gets stored.

        Returns:
            ``{'status': 'ok'}`` or ``{'status': 'ignored', 'reason': ...}``

        Raises:
            MercadoPagoError: Provider fetch failed (caller answers 500)
            SQLAlchemyError: Database write failed (caller answers 500)
        """
        if not resource_id:
            return {'status': 'ignored', 'reason': 'no id provided'}

        if topic == PAYMENT_TOPIC:
            current_app.logger.info(f'Mercado Pago payment notification received: {resource_id}')
            return {'status': 'ok'}

        if topic != PREAPPROVAL_TOPIC:
            return {'status': 'ignored', 'reason': 'unsupported topic'}

        snapshot = snapshot_from_preapproval(mercadopago_client.get_preapproval(resource_id))

        reference = snapshot.external_reference
        if not is_valid_external_reference(reference):
            current_app.logger.warning(
                f'Preapproval {resource_id} has no valid external reference ({reference!r}), ignoring'
            )
            return {'status': 'ignored', 'reason': 'invalid_user_id'}

        if db.session.get(User, reference) is None:
            current_app.logger.warning(f'Preapproval {resource_id} references unknown user {reference}')
            return {'status': 'ignored', 'reason': 'unknown_user'}

        try:
            SubscriptionService.upsert_by_external_id(reference, snapshot)
        except UnknownStatusError as e:
            current_app.logger.warning(f'Preapproval {resource_id}: {e.message}, ignoring')
            return {'status': 'ignored', 'reason': 'unknown_status'}
        except ExternalIdMismatch as e:
            current_app.logger.warning(f'Preapproval {resource_id}: {e.message}, ignoring until manual sync')
            return {'status': 'ignored', 'reason': 'external_id_mismatch'}
        except SQLAlchemyError:
            db.session.rollback()
            raise

        current_app.logger.info(
            f'Subscription {resource_id} upserted for user {reference} ({snapshot.status})'
        )
        return {'status': 'ok'}

    @staticmethod
    def handle_stripe_webhook(payload: bytes, sig_header: Optional[str]) -> dict:
        """Handle an incoming Stripe webhook event.

        Args:
            payload: Raw request body
            sig_header: Stripe-Signature header value

        Returns:
            Dict with event type and processing status

        Raises:
            WebhookSignatureError: If signature verification fails
        """
        event = stripe_billing.construct_event(payload, sig_header)
        event_type = event['type']
        data = event['data']['object']
        result = {'status': 'ok', 'event_type': event_type}

        if event_type in ('customer.subscription.created', 'customer.subscription.updated'):
            result.update(SubscriptionService._handle_stripe_subscription_changed(data))
        elif event_type == 'customer.subscription.deleted':
            result.update(SubscriptionService._handle_stripe_subscription_deleted(data))
        elif event_type == 'invoice.paid':
            current_app.logger.info(f"Stripe invoice paid for customer {_object_id(data.get('customer'))}")
        elif event_type == 'invoice.payment_failed':
            current_app.logger.warning(
                f"Stripe payment failed for customer {_object_id(data.get('customer'))}"
            )
        else:
            result.update({'status': 'ignored', 'reason': 'unhandled event'})

        return result

    @staticmethod
    def _user_for_customer(customer_id: Optional[str]) -> Optional[User]:
        if not customer_id:
            return None
        return User.query.filter_by(stripe_customer_id=customer_id).first()

    @staticmethod
    def _handle_stripe_subscription_changed(sub_data) -> dict:
        """Process customer.subscription.created/updated events."""
        subscription = stripe_billing.retrieve_subscription(sub_data['id'])
        snapshot = snapshot_from_stripe(subscription)

        user = SubscriptionService._user_for_customer(snapshot.customer_id)
        if not user:
            current_app.logger.warning(f'Stripe subscription for unknown customer {snapshot.customer_id}')
            return {'status': 'ignored', 'reason': 'unknown_customer'}

        try:
            SubscriptionService.upsert_by_user(user, snapshot)
        except UnknownStatusError as e:
            current_app.logger.warning(f'Stripe subscription {snapshot.external_subscription_id}: {e.message}')
            return {'status': 'ignored', 'reason': 'unknown_status'}
        except SQLAlchemyError:
            db.session.rollback()
            raise

        current_app.logger.info(f'Stripe subscription {snapshot.status} for user {user.id}')
        return {}

    @staticmethod
    def _handle_stripe_subscription_deleted(sub_data) -> dict:
        """Process customer.subscription.deleted event."""
        user = SubscriptionService._user_for_customer(_object_id(sub_data.get('customer')))
        if not user or not user.subscription:
            return {'status': 'ignored', 'reason': 'unknown_customer'}

        user.subscription.status = SubscriptionStatus.CANCELED
        user.subscription.ended_at = utcnow()
        db.session.commit()
        current_app.logger.info(f'Stripe subscription ended for user {user.id}')
        return {}

    # ============================================================
    # MANUAL SYNC
    # ============================================================

    @staticmethod
    def sync_mercadopago_preapproval(user: User, preapproval_id: str) -> Subscription:
        """Re-fetch a preapproval and store it on the user's row.

        Closes the gap between the checkout redirect and the webhook.

        Raises:
            ProviderError: Mercado Pago fetch failed
            SubscriptionOwnershipError: Preapproval references another user
            UnknownStatusError: Status outside the internal vocabulary
        """
        try:
            payload = mercadopago_client.get_preapproval(preapproval_id)
        except MercadoPagoError as e:
            raise ProviderError.from_provider(e)

        snapshot = snapshot_from_preapproval(payload)
        reference = snapshot.external_reference
        if is_valid_external_reference(reference) and reference != user.id:
            raise SubscriptionOwnershipError('Preapproval belongs to another user')

        subscription = SubscriptionService.upsert_by_user(user, snapshot)
        current_app.logger.info(f'Preapproval {preapproval_id} synced for user {user.id} ({subscription.status.value})')
        return subscription

    @staticmethod
    def sync_stripe_session(user: User, session_id: str) -> Subscription:
        """Re-fetch a Checkout Session's subscription and store it on the user's row.

        Raises:
            ProviderError: Stripe retrieval failed
            BillingError: Session has no subscription (400)
            SubscriptionOwnershipError: Session customer differs from the user's
        """
        try:
            session = stripe_billing.retrieve_checkout_session(session_id)
            subscription = session.get('subscription')
            if isinstance(subscription, str):
                subscription = stripe_billing.retrieve_subscription(subscription)
        except StripeBillingError as e:
            raise ProviderError.from_provider(e)

        if not subscription:
            raise BillingError('Checkout session has no subscription', status_code=400)

        customer_id = _object_id(session.get('customer'))
        if user.stripe_customer_id and customer_id and user.stripe_customer_id != customer_id:
            raise SubscriptionOwnershipError('Checkout session belongs to another customer')
        if not user.stripe_customer_id and customer_id:
            user.stripe_customer_id = customer_id

        result = SubscriptionService.upsert_by_user(user, snapshot_from_stripe(subscription))
        current_app.logger.info(f'Stripe session {session_id} synced for user {user.id}')
        return result

    # ============================================================
    # CANCELLATION
    # ============================================================

    @staticmethod
    def cancel_subscription(user: User, provider: BillingProvider) -> Subscription:
        """Cancel the user's subscription with the provider, then locally.

        Status is left unchanged; only ``cancel_at_period_end`` and
        ``canceled_at`` are written. Nothing is written if the provider
        call fails.

        Raises:
            SubscriptionNotFound: No active/trialing row for this provider
            ProviderError: Provider call failed
        """
        subscription = Subscription.query.filter(
            Subscription.user_id == user.id,
            Subscription.provider == provider,
            Subscription.status.in_(CANCELLABLE_STATUSES),
            Subscription.external_subscription_id.isnot(None),
        ).first()
        if subscription is None:
            raise SubscriptionNotFound('No active subscription found')

        external_id = subscription.external_subscription_id
        try:
            if provider == BillingProvider.MERCADOPAGO:
                mercadopago_client.cancel_preapproval(external_id)
            else:
                stripe_billing.schedule_cancellation(external_id)
        except (MercadoPagoError, StripeBillingError) as e:
            current_app.logger.error(f'Provider cancellation failed for {external_id}: {e.message}')
            raise ProviderError.from_provider(e)

        subscription.cancel_at_period_end = True
        subscription.canceled_at = utcnow()
        db.session.commit()

        current_app.logger.info(f'Subscription {external_id} cancellation scheduled for user {user.id}')
        return subscription

    # ============================================================
    # SWEEPER
    # ============================================================

    @staticmethod
    def _expired_query(now: datetime):
        return Subscription.query.filter(
            Subscription.status.in_(PREMIUM_STATUSES),
            Subscription.cancel_at_period_end.is_(True),
            Subscription.current_period_end < now,
            Subscription.ended_at.is_(None),
        )

    @staticmethod
    def find_expired_subscriptions(now: Optional[datetime] = None) -> list:
        """Subscriptions whose scheduled cancellation has passed but are not finalized."""
        now = now or utcnow()
        return SubscriptionService._expired_query(now).order_by(Subscription.current_period_end).all()

    @staticmethod
    def sweep_expired_subscriptions(now: Optional[datetime] = None) -> int:
        """Finalize expired subscriptions.

        Args:
            now: Reference time (defaults to current UTC time)

        Returns:
            Number of rows finalized
        """
        now = now or utcnow()
        expired = SubscriptionService.find_expired_subscriptions(now)
        if not expired:
            return 0

        for subscription in expired:
            subscription.status = SubscriptionStatus.CANCELED
            subscription.ended_at = now
        db.session.commit()

        current_app.logger.info(f'Finalized {len(expired)} expired subscription(s)')
        return len(expired)

    # ============================================================
    # DETAILS
    # ============================================================

    @staticmethod
    def get_mercadopago_details(user: User, now: Optional[datetime] = None) -> dict:
        """Provider-fresh view of the user's Mercado Pago subscription.

        Falls back to the stored row (``source: database``) when Mercado Pago
        cannot be reached.
        """
        subscription = user.subscription
        if (subscription is None
                or subscription.provider != BillingProvider.MERCADOPAGO
                or not subscription.external_subscription_id):
            return {'has_subscription': False, 'source': None, 'details': None}

        now = now or utcnow()
        try:
            preapproval = mercadopago_client.get_preapproval(subscription.external_subscription_id)
        except MercadoPagoError as e:
            current_app.logger.error(f'Could not fetch preapproval {subscription.external_subscription_id}: {e.message}')
            return {
                'has_subscription': True,
                'internal_plan': subscription.plan_tier.value,
                'source': 'database',
                'details': {
                    'id': subscription.external_subscription_id,
                    'status': subscription.status.value,
                    'current_period_start': isoformat_or_none(subscription.current_period_start),
                    'current_period_end': isoformat_or_none(subscription.current_period_end),
                    'cancel_at_period_end': subscription.cancel_at_period_end,
                },
                'error': 'Could not fetch up-to-date information from Mercado Pago',
            }

        raw_status = preapproval.get('status')
        auto_recurring = preapproval.get('auto_recurring') or {}
        summarized = preapproval.get('summarized') or {}
        next_payment = parse_provider_datetime(preapproval.get('next_payment_date'))
        end_date = parse_provider_datetime(auto_recurring.get('end_date'))

        def days_until(moment):
            if moment is None:
                return None
            return math.ceil((moment - now).total_seconds() / 86400)

        tier = map_plan_tier(preapproval.get('preapproval_plan_id'), _tier_ids(BillingProvider.MERCADOPAGO))
        free_trial = auto_recurring.get('free_trial') or {}

        return {
            'has_subscription': True,
            'internal_plan': tier.value,
            'source': 'mercadopago',
            'details': {
                'id': preapproval.get('id'),
                'status': raw_status,
                'status_label': MERCADOPAGO_STATUS_LABELS.get(raw_status, 'Unknown'),
                'reason': preapproval.get('reason'),
                'date_created': preapproval.get('date_created'),
                'next_payment_date': preapproval.get('next_payment_date'),
                'start_date': auto_recurring.get('start_date'),
                'end_date': auto_recurring.get('end_date'),
                'amount': auto_recurring.get('transaction_amount'),
                'currency': auto_recurring.get('currency_id'),
                'frequency': auto_recurring.get('frequency'),
                'frequency_type': auto_recurring.get('frequency_type'),
                'has_free_trial': bool(free_trial),
                'free_trial_days': free_trial.get('first_invoice_offset') or 0,
                'charged_quantity': summarized.get('charged_quantity') or 0,
                'pending_charge_quantity': summarized.get('pending_charge_quantity') or 0,
                'total_charged_amount': summarized.get('charged_amount') or 0,
                'last_charged_date': summarized.get('last_charged_date'),
                'payment_method_id': preapproval.get('payment_method_id'),
                'days_until_next_payment': days_until(next_payment),
                'days_until_end': days_until(end_date),
                'is_expired': raw_status == 'cancelled' or (end_date is not None and end_date < now),
            },
        }
