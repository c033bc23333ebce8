# =============================================================================
# TeamSpace - Premium Evaluation Tests
# =============================================================================
#
# The premium rule is pure: status, cancel flag and canceled_at in, one
# decision out. Model properties must agree with the function.
# =============================================================================

from datetime import datetime, timedelta

import pytest

from teamspace.extensions import db
from teamspace.models.subscription import SubscriptionStatus, PlanTier
from teamspace.services.premium import evaluate_premium, is_active_premium, PREMIUM_STATUSES
from tests.conftest import make_user, make_subscription

NOW = datetime(2026, 3, 15, 12, 0, 0)
PAST = NOW - timedelta(days=1)
FUTURE = NOW + timedelta(days=1)


class TestEvaluatePremium:
    """Truth table for evaluate_premium."""

    @pytest.mark.parametrize('status', ['active', 'trialing', 'past_due'])
    def test_premium_statuses_without_cancellation(self, status):
        assert is_active_premium(status, False, None, NOW) is True

    @pytest.mark.parametrize('status', ['canceled', 'incomplete', 'paused'])
    def test_non_premium_statuses_without_cancellation(self, status):
        assert is_active_premium(status, False, None, NOW) is False

    def test_accepts_enum_members(self):
        assert is_active_premium(SubscriptionStatus.ACTIVE, False, None, NOW) is True
        assert is_active_premium(SubscriptionStatus.PAUSED, False, None, NOW) is False

    def test_none_status_is_not_premium(self):
        assert is_active_premium(None, False, None, NOW) is False

    def test_scheduled_cancellation_keeps_canceled_status_premium_until_canceled_at(self):
        """cancel_at_period_end rescues a non-premium status while canceled_at is ahead."""
        assert is_active_premium('canceled', True, FUTURE, NOW) is True

    def test_scheduled_cancellation_without_canceled_at(self):
        assert is_active_premium('canceled', True, None, NOW) is True

    def test_canceled_at_in_past_ends_access(self):
        """The grace boundary is canceled_at, not the period end."""
        assert is_active_premium('active', True, PAST, NOW) is False
        assert is_active_premium('active', False, PAST, NOW) is False

    def test_canceled_at_equal_to_now_ends_access(self):
        assert is_active_premium('active', True, NOW, NOW) is False

    def test_cancel_flag_must_be_true_not_truthy(self):
        evaluation = evaluate_premium('canceled', 1, None, NOW)
        assert evaluation.is_cancel_programmed is False
        assert evaluation.is_active_premium is False

    def test_evaluation_breakdown(self):
        evaluation = evaluate_premium('past_due', True, FUTURE, NOW)
        assert evaluation.to_dict() == {
            'is_premium_status': True,
            'is_cancel_programmed': True,
            'is_grace_period_valid': True,
            'is_active_premium': True,
        }

    def test_evaluation_is_frozen(self):
        evaluation = evaluate_premium('active', False, None, NOW)
        with pytest.raises(AttributeError):
            evaluation.is_premium_status = False

    def test_defaults_to_current_time(self):
        assert is_active_premium('active', True, datetime.utcnow() + timedelta(hours=1)) is True

    def test_premium_status_vocabulary(self):
        assert PREMIUM_STATUSES == {'active', 'trialing', 'past_due'}


class TestSubscriptionPremiumProperties:
    """Model properties delegate to the same rule."""

    def test_active_subscription_grants_tier(self, app):
        user = make_user('model@example.com')
        subscription = make_subscription(user, plan_tier=PlanTier.ENTERPRISE)
        assert subscription.is_active_premium is True
        assert subscription.effective_tier == PlanTier.ENTERPRISE
        assert user.is_premium is True
        assert user.current_plan == 'enterprise'

    def test_paused_subscription_is_free(self, app):
        user = make_user('paused@example.com')
        subscription = make_subscription(user, status=SubscriptionStatus.PAUSED)
        assert subscription.is_active_premium is False
        assert subscription.effective_tier == PlanTier.FREE
        assert user.current_plan == 'free'

    def test_requested_cancellation_ends_access_immediately(self, app):
        user = make_user('cancel@example.com')
        subscription = make_subscription(user)
        subscription.cancel_at_period_end = True
        subscription.canceled_at = datetime.utcnow() - timedelta(seconds=1)
        db.session.commit()
        assert subscription.is_active_premium is False
        assert user.current_plan == 'free'

    def test_user_without_subscription_is_free(self, app):
        user = make_user('nosub@example.com')
        assert user.subscription is None
        assert user.is_premium is False
        assert user.current_plan == 'free'

    def test_to_dict_includes_evaluation(self, app):
        user = make_user('dict@example.com')
        subscription = make_subscription(user)
        data = subscription.to_dict()
        assert data['status'] == 'active'
        assert data['plan_tier'] == 'pro'
        assert data['provider'] == 'mercadopago'
        assert data['is_active_premium'] is True
        assert data['canceled_at'] is None
