# =============================================================================
# TeamSpace - Provider Mapping Tests
# =============================================================================
#
# Pure translation from provider payloads into internal terms: statuses,
# plan tiers, notification parsing and snapshots.
# =============================================================================

from datetime import datetime

import pytest

from teamspace.models.subscription import SubscriptionStatus, PlanTier, BillingProvider
from teamspace.services.subscription_service import (
    map_provider_status, map_stripe_status, coerce_status, map_plan_tier,
    add_one_month, is_valid_external_reference, extract_mercadopago_notification,
    snapshot_from_preapproval, snapshot_from_stripe,
    UnknownStatusError, ProviderError,
)
from teamspace.services.mercadopago_client import MercadoPagoError

TIER_IDS = {
    'starter': ['plan_starter'],
    'pro': ['plan_pro_monthly', 'plan_pro_yearly'],
    'enterprise': ['plan_enterprise'],
}


class TestStatusMapping:

    @pytest.mark.parametrize('raw,expected', [
        ('authorized', 'active'),
        ('pending', 'incomplete'),
        ('paused', 'paused'),
        ('cancelled', 'canceled'),
    ])
    def test_mercadopago_statuses(self, raw, expected):
        assert map_provider_status(raw) == expected

    def test_unknown_mercadopago_status_passes_through(self):
        assert map_provider_status('finished') == 'finished'

    @pytest.mark.parametrize('raw,expected', [
        ('active', 'active'),
        ('trialing', 'trialing'),
        ('past_due', 'past_due'),
        ('unpaid', 'past_due'),
        ('canceled', 'canceled'),
        ('incomplete', 'incomplete'),
        ('incomplete_expired', 'canceled'),
        ('paused', 'paused'),
    ])
    def test_stripe_statuses(self, raw, expected):
        assert map_stripe_status(raw) == expected

    def test_coerce_known_status(self):
        assert coerce_status('past_due') == SubscriptionStatus.PAST_DUE
        assert coerce_status(SubscriptionStatus.ACTIVE) == SubscriptionStatus.ACTIVE

    def test_coerce_unknown_status_raises(self):
        with pytest.raises(UnknownStatusError) as exc_info:
            coerce_status('finished')
        assert exc_info.value.raw_status == 'finished'
        assert exc_info.value.status_code == 500


class TestPlanTierMapping:

    def test_each_tier(self):
        assert map_plan_tier('plan_starter', TIER_IDS) == PlanTier.STARTER
        assert map_plan_tier('plan_pro_yearly', TIER_IDS) == PlanTier.PRO
        assert map_plan_tier('plan_enterprise', TIER_IDS) == PlanTier.ENTERPRISE

    def test_missing_or_unknown_plan_is_free(self):
        assert map_plan_tier(None, TIER_IDS) == PlanTier.FREE
        assert map_plan_tier('', TIER_IDS) == PlanTier.FREE
        assert map_plan_tier('plan_legacy', TIER_IDS) == PlanTier.FREE

    def test_enterprise_wins_over_pro(self):
        """An ID listed under several tiers resolves to the most specific one."""
        overlapping = {'pro': ['shared'], 'enterprise': ['shared']}
        assert map_plan_tier('shared', overlapping) == PlanTier.ENTERPRISE

    def test_empty_configuration(self):
        assert map_plan_tier('plan_pro_monthly', {}) == PlanTier.FREE


class TestHelpers:

    @pytest.mark.parametrize('value,expected', [
        (datetime(2026, 1, 15, 8, 30), datetime(2026, 2, 15, 8, 30)),
        (datetime(2026, 1, 31), datetime(2026, 2, 28)),
        (datetime(2028, 1, 31), datetime(2028, 2, 29)),
        (datetime(2026, 12, 10), datetime(2027, 1, 10)),
        (datetime(2026, 11, 30), datetime(2026, 12, 30)),
    ])
    def test_add_one_month(self, value, expected):
        assert add_one_month(value) == expected

    @pytest.mark.parametrize('reference,expected', [
        (None, False),
        ('', False),
        ('NO_REF', False),
        ('short', False),
        ('123456789', False),
        ('1234567890', True),
        ('5b0c6a3e-8c1f-4f7e-9d55-2f4c1f0e9a11', True),
    ])
    def test_external_reference_validity(self, reference, expected):
        assert is_valid_external_reference(reference) is expected

    def test_provider_error_passes_client_status(self):
        error = ProviderError.from_provider(MercadoPagoError('bad request', status_code=400))
        assert error.status_code == 400
        assert error.message == 'bad request'

    def test_provider_error_maps_server_failures_to_500(self):
        assert ProviderError.from_provider(MercadoPagoError('down', status_code=503)).status_code == 500
        assert ProviderError.from_provider(MercadoPagoError('unreachable')).status_code == 500


class TestExtractNotification:

    def test_query_only(self):
        assert extract_mercadopago_notification(
            {'topic': 'subscription_preapproval', 'id': 'abc'}, None
        ) == ('subscription_preapproval', 'abc')

    def test_query_type_and_data_id(self):
        assert extract_mercadopago_notification(
            {'type': 'payment', 'data.id': '99'}, None
        ) == ('payment', '99')

    def test_body_overrides_query(self):
        topic, resource_id = extract_mercadopago_notification(
            {'topic': 'payment', 'id': 'from-query'},
            {'type': 'subscription_preapproval', 'data': {'id': 'from-body'}},
        )
        assert topic == 'subscription_preapproval'
        assert resource_id == 'from-body'

    def test_body_data_id_wins_over_body_id(self):
        _, resource_id = extract_mercadopago_notification(
            {}, {'type': 'subscription_preapproval', 'id': 12345, 'data': {'id': 'preapproval-1'}}
        )
        assert resource_id == 'preapproval-1'

    def test_body_id_used_without_data_object(self):
        topic, resource_id = extract_mercadopago_notification(
            {}, {'topic': 'subscription_preapproval', 'id': 777}
        )
        assert topic == 'subscription_preapproval'
        assert resource_id == '777'

    def test_nothing_provided(self):
        assert extract_mercadopago_notification({}, None) == (None, None)

    def test_non_object_body_is_ignored(self):
        assert extract_mercadopago_notification({'id': 'q'}, ['unexpected']) == (None, 'q')


class TestSnapshots:

    def test_snapshot_from_preapproval(self):
        snapshot = snapshot_from_preapproval({
            'id': 'preapproval-1',
            'status': 'authorized',
            'preapproval_plan_id': 'plan_pro_monthly',
            'date_created': '2026-03-01T10:00:00.000-03:00',
            'next_payment_date': '2026-04-01T10:00:00.000-03:00',
            'external_reference': 'user-uuid-0001',
        })
        assert snapshot.provider == BillingProvider.MERCADOPAGO
        assert snapshot.external_subscription_id == 'preapproval-1'
        assert snapshot.raw_status == 'authorized'
        assert snapshot.status == 'active'
        assert snapshot.provider_plan_id == 'plan_pro_monthly'
        assert snapshot.current_period_start == datetime(2026, 3, 1, 13, 0)
        assert snapshot.current_period_end == datetime(2026, 4, 1, 13, 0)
        assert snapshot.external_reference == 'user-uuid-0001'
        assert snapshot.cancel_at_period_end is False

    def test_snapshot_from_preapproval_without_dates(self):
        snapshot = snapshot_from_preapproval({'id': 42, 'status': 'pending'})
        assert snapshot.external_subscription_id == '42'
        assert snapshot.status == 'incomplete'
        assert snapshot.current_period_start is None
        assert snapshot.current_period_end is None

    def test_snapshot_from_stripe(self):
        snapshot = snapshot_from_stripe({
            'id': 'sub_123',
            'status': 'unpaid',
            'customer': 'cus_1',
            'current_period_start': 1772366400,
            'current_period_end': 1775044800,
            'cancel_at_period_end': True,
            'canceled_at': 1772452800,
            'ended_at': None,
            'items': {'data': [{'price': {'id': 'price_pro'}}]},
        })
        assert snapshot.provider == BillingProvider.STRIPE
        assert snapshot.status == 'past_due'
        assert snapshot.raw_status == 'unpaid'
        assert snapshot.provider_plan_id == 'price_pro'
        assert snapshot.customer_id == 'cus_1'
        assert snapshot.current_period_start == datetime(2026, 3, 1, 12, 0)
        assert snapshot.cancel_at_period_end is True
        assert snapshot.canceled_at == datetime(2026, 3, 2, 12, 0)
        assert snapshot.ended_at is None

    def test_snapshot_from_stripe_reads_item_periods(self):
        """Period bounds fall back to the first subscription item."""
        snapshot = snapshot_from_stripe({
            'id': 'sub_456',
            'status': 'active',
            'customer': {'id': 'cus_2'},
            'items': {'data': [{
                'price': 'price_starter',
                'current_period_start': 1772366400,
                'current_period_end': 1775044800,
            }]},
        })
        assert snapshot.provider_plan_id == 'price_starter'
        assert snapshot.customer_id == 'cus_2'
        assert snapshot.current_period_end == datetime(2026, 4, 1, 12, 0)

    def test_snapshot_from_stripe_without_items(self):
        snapshot = snapshot_from_stripe({'id': 'sub_789', 'status': 'incomplete'})
        assert snapshot.provider_plan_id is None
        assert snapshot.current_period_end is None
