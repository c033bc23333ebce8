"""
Billing routes: checkout, webhooks, manual sync, cancellation,
subscription details, plan catalog, premium diagnostic and the
expired-subscription sweeper.

Webhook responses use ``{"status": ...}`` bodies; the status code tells
the provider whether to retry (500) or stop (200).
"""
import hmac

from flask import request, jsonify, current_app
from marshmallow import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from teamspace.blueprints.api.decorators import jwt_required
from teamspace.blueprints.api.helpers import api_error, api_success, json_body
from teamspace.blueprints.api.schemas import CheckoutRequestSchema, SubscriptionSchema
from teamspace.blueprints.billing import billing_bp
from teamspace.extensions import cache, db, limiter
from teamspace.models.subscription import BillingProvider
from teamspace.services import mercadopago_client
from teamspace.services.mercadopago_client import MercadoPagoError
from teamspace.services.premium import evaluate_premium
from teamspace.services.stripe_billing import StripeBillingError, WebhookSignatureError
from teamspace.services.subscription_service import (
    SubscriptionService, BillingError, extract_mercadopago_notification,
    map_plan_tier,
)
from teamspace.utils.dates import utcnow

PLAN_CATALOG_CACHE_KEY = 'mercadopago:plans'


def _billing_error(e: BillingError):
    return api_error(e.code, e.message, e.status_code)


def _load_checkout_tier():
    """Returns (tier, error_response)."""
    try:
        data = CheckoutRequestSchema().load(json_body())
    except ValidationError as err:
        return None, api_error('validation_error', 'Invalid checkout request.', 400, details=err.messages)
    return data['tier'], None


# ── Checkout ────────────────────────────────────────────────

@billing_bp.route('/checkout/mercadopago', methods=['POST'])
@limiter.limit('10 per minute')
@jwt_required
def mercadopago_checkout():
    """Start a Mercado Pago subscription. Body: {"tier": "pro"}."""
    tier, error = _load_checkout_tier()
    if error:
        return error
    try:
        result = SubscriptionService.start_mercadopago_checkout(request.api_user, tier)
    except BillingError as e:
        return _billing_error(e)
    return api_success(result)


@billing_bp.route('/stripe/checkout', methods=['POST'])
@limiter.limit('10 per minute')
@jwt_required
def stripe_checkout():
    """Start a Stripe Checkout Session. Body: {"tier": "pro"}."""
    tier, error = _load_checkout_tier()
    if error:
        return error
    try:
        url = SubscriptionService.start_stripe_checkout(request.api_user, tier)
    except BillingError as e:
        return _billing_error(e)
    return api_success({'url': url})


# ── Webhooks ────────────────────────────────────────────────

@billing_bp.route('/webhooks/mercadopago', methods=['POST'])
@limiter.limit('100 per minute')
def mercadopago_webhook():
    """Handle Mercado Pago notifications.

    Irrelevant or malformed payloads answer 200 so Mercado Pago stops
    retrying; provider or database failures answer 500 so it retries.
    """
    topic, resource_id = extract_mercadopago_notification(request.args, request.get_json(force=True, silent=True))
    current_app.logger.info(f'Mercado Pago webhook received: topic={topic} id={resource_id}')

    try:
        result = SubscriptionService.handle_mercadopago_notification(topic, resource_id)
    except (MercadoPagoError, SQLAlchemyError) as e:
        db.session.rollback()
        current_app.logger.error(f'Mercado Pago webhook processing error ({resource_id}): {e}')
        return jsonify({'status': 'error', 'error': 'Webhook processing failed'}), 500

    return jsonify(result), 200


@billing_bp.route('/stripe/webhook', methods=['POST'])
@limiter.limit('100 per minute')
def stripe_webhook():
    """Handle Stripe webhook events (verified via Stripe signature)."""
    payload = request.get_data()
    sig_header = request.headers.get('Stripe-Signature')

    try:
        result = SubscriptionService.handle_stripe_webhook(payload, sig_header)
    except WebhookSignatureError as e:
        current_app.logger.warning(f'Webhook signature verification failed: {e}')
        return jsonify({'status': 'error', 'error': str(e)}), 400
    except (StripeBillingError, BillingError, SQLAlchemyError) as e:
        db.session.rollback()
        current_app.logger.error(f'Stripe webhook processing error: {e}')
        return jsonify({'status': 'error', 'error': 'Webhook processing failed'}), 500

    current_app.logger.info(f"Stripe webhook processed: {result['event_type']} ({result['status']})")
    return jsonify(result), 200


# ── Manual sync ─────────────────────────────────────────────

@billing_bp.route('/mercadopago/sync-preapproval', methods=['GET'])
@jwt_required
def mercadopago_sync():
    """Re-read a preapproval from Mercado Pago after the checkout redirect."""
    preapproval_id = request.args.get('preapproval_id')
    if not preapproval_id:
        return api_error('validation_error', 'preapproval_id is required.', 400)

    try:
        subscription = SubscriptionService.sync_mercadopago_preapproval(request.api_user, preapproval_id)
    except BillingError as e:
        db.session.rollback()
        return _billing_error(e)
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f'Preapproval sync failed for {preapproval_id}: {e}')
        return api_error('sync_failed', 'Could not store the subscription.', 500)

    return api_success(SubscriptionSchema().dump(subscription))


@billing_bp.route('/stripe/sync-session', methods=['GET'])
@jwt_required
def stripe_sync():
    """Re-read a Checkout Session's subscription from Stripe."""
    session_id = request.args.get('session_id')
    if not session_id:
        return api_error('validation_error', 'session_id is required.', 400)

    try:
        subscription = SubscriptionService.sync_stripe_session(request.api_user, session_id)
    except BillingError as e:
        db.session.rollback()
        return _billing_error(e)
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f'Stripe session sync failed for {session_id}: {e}')
        return api_error('sync_failed', 'Could not store the subscription.', 500)

    return api_success(SubscriptionSchema().dump(subscription))


# ── Cancellation ────────────────────────────────────────────

def _cancel(provider):
    try:
        subscription = SubscriptionService.cancel_subscription(request.api_user, provider)
    except BillingError as e:
        return _billing_error(e)

    return api_success({
        'message': 'Subscription cancellation scheduled.',
        'subscription': SubscriptionSchema().dump(subscription),
    })


@billing_bp.route('/mercadopago/cancel-subscription', methods=['POST'])
@limiter.limit('5 per minute')
@jwt_required
def mercadopago_cancel():
    """Cancel the user's Mercado Pago subscription."""
    return _cancel(BillingProvider.MERCADOPAGO)


@billing_bp.route('/stripe/cancel-subscription', methods=['POST'])
@limiter.limit('5 per minute')
@jwt_required
def stripe_cancel():
    """Cancel the user's Stripe subscription at period end."""
    return _cancel(BillingProvider.STRIPE)


# ── Details & catalog ───────────────────────────────────────

@billing_bp.route('/mercadopago/subscription-details', methods=['GET'])
@jwt_required
def mercadopago_subscription_details():
    """Provider-fresh subscription details (falls back to the stored row)."""
    return api_success(SubscriptionService.get_mercadopago_details(request.api_user))


def _plan_summary(plan):
    return {
        'id': plan.get('id'),
        'reason': plan.get('reason'),
        'status': plan.get('status'),
        'tier': map_plan_tier(plan.get('id'), current_app.config.get('MP_PLAN_IDS') or {}).value,
        'auto_recurring': plan.get('auto_recurring'),
        'init_point': plan.get('init_point'),
        'external_reference': plan.get('external_reference'),
    }


@billing_bp.route('/mercadopago/plan', methods=['GET'])
@limiter.limit('30 per minute')
def mercadopago_plans():
    """List active Mercado Pago plans (cached)."""
    plans = cache.get(PLAN_CATALOG_CACHE_KEY)
    if plans is None:
        try:
            results = mercadopago_client.search_plans().get('results') or []
        except MercadoPagoError as e:
            current_app.logger.error(f'Plan catalog fetch failed: {e.message}')
            return api_error('provider_error', 'Could not load plans.', 500)
        plans = [_plan_summary(plan) for plan in results]
        cache.set(PLAN_CATALOG_CACHE_KEY, plans, timeout=current_app.config['PLAN_CATALOG_CACHE_SECONDS'])
    return api_success(plans)


@billing_bp.route('/mercadopago/plan/<plan_id>', methods=['GET'])
@limiter.limit('30 per minute')
def mercadopago_plan(plan_id):
    """Get a single Mercado Pago plan."""
    try:
        plan = mercadopago_client.get_plan(plan_id)
    except MercadoPagoError as e:
        if e.status_code == 404:
            return api_error('not_found', 'Plan not found.', 404)
        current_app.logger.error(f'Plan fetch failed for {plan_id}: {e.message}')
        return api_error('provider_error', 'Could not load plan.', 500)
    return api_success(_plan_summary(plan))


# ── Premium diagnostic ──────────────────────────────────────

@billing_bp.route('/subscription/premium-status', methods=['GET'])
@jwt_required
def premium_status():
    """Explain the premium decision for the current user."""
    user = request.api_user
    subscription = user.subscription
    now = utcnow()

    if subscription is None:
        return api_success({
            'user_id': user.id,
            'subscription': None,
            'evaluation': None,
            'is_active_premium': False,
            'effective_tier': 'free',
            'now': now.isoformat(),
        })

    evaluation = evaluate_premium(
        subscription.status, subscription.cancel_at_period_end, subscription.canceled_at, now,
    )
    return api_success({
        'user_id': user.id,
        'subscription': SubscriptionSchema().dump(subscription),
        'evaluation': evaluation.to_dict(),
        'is_active_premium': evaluation.is_active_premium,
        'effective_tier': subscription.plan_tier.value if evaluation.is_active_premium else 'free',
        'now': now.isoformat(),
    })


# ── Sweeper ─────────────────────────────────────────────────

def _cron_authorized():
    secret = current_app.config.get('CRON_SECRET')
    if not secret:
        return False
    auth_header = request.headers.get('Authorization', '')
    provided = auth_header[7:] if auth_header.startswith('Bearer ') else request.headers.get('X-Cron-Secret', '')
    return hmac.compare_digest(provided.encode(), secret.encode())


@billing_bp.route('/mercadopago/cleanup-expired', methods=['GET'])
def cleanup_expired_preview():
    """List subscriptions the sweeper would finalize."""
    if not _cron_authorized():
        return api_error('unauthorized', 'Invalid cron secret.', 401)

    expired = SubscriptionService.find_expired_subscriptions()
    return api_success({
        'count': len(expired),
        'subscriptions': SubscriptionSchema(many=True).dump(expired),
    })


@billing_bp.route('/mercadopago/cleanup-expired', methods=['POST'])
def cleanup_expired():
    """Finalize subscriptions whose scheduled cancellation has passed."""
    if not _cron_authorized():
        return api_error('unauthorized', 'Invalid cron secret.', 401)

    try:
        cleaned = SubscriptionService.sweep_expired_subscriptions()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f'Expired subscription sweep failed: {e}')
        return api_error('sweep_failed', 'Could not finalize expired subscriptions.', 500)

    return api_success({'cleaned_count': cleaned})
