"""
Pricing engine tests: per-pound rates, the minimum order, bag prices and
overweight fees, membership terms
"""
import pytest
from datetime import datetime, timezone
from decimal import Decimal

from laundry.errors import ValidationError
from laundry.services import pricing


class TestPerPoundPricing:
    """Test per-pound pricing at standard and member rates"""

    def test_standard_rate(self):
        price = pricing.compute_per_pound_price(20)
        assert price.rate_per_pound == 225
        assert price.subtotal == 4500
        assert price.total == 4500
        assert price.minimum_applied is False
        assert price.savings == 0

    def test_member_rate_and_savings(self):
        price = pricing.compute_per_pound_price(30, is_member=True)
        assert price.rate_per_pound == 175
        assert price.subtotal == 5250
        assert price.total == 5250
        assert price.savings == 1500

    def test_minimum_order_applies(self):
        price = pricing.compute_per_pound_price(10)
        assert price.subtotal == 2250
        assert price.total == 3500
        assert price.minimum_applied is True

    def test_minimum_order_applies_to_members(self):
        price = pricing.compute_per_pound_price(20, is_member=True)
        assert price.subtotal == 3500
        assert price.total == 3500
        assert price.minimum_applied is False

        price = pricing.compute_per_pound_price(12, is_member=True)
        assert price.subtotal == 2100
        assert price.total == 3500
        assert price.minimum_applied is True

    def test_fractional_weight_rounds_half_up(self):
        # 20.5 lb * 225 = 4612.5
        assert pricing.compute_per_pound_price(20.5).subtotal == 4613

    @pytest.mark.parametrize('weight', [0, -3, 'twelve', None, True, float('nan'), float('inf')])
    def test_invalid_weight_rejected(self, weight):
        with pytest.raises(ValidationError):
            pricing.compute_per_pound_price(weight)


class TestBagPricing:
    """Test fixed bag prices and overweight fees"""

    def test_bag_prices(self):
        assert pricing.compute_bag_price('small') == 3500
        assert pricing.compute_bag_price('medium') == 5500
        assert pricing.compute_bag_price('large') == 8500

    def test_unknown_bag_size(self):
        with pytest.raises(ValidationError) as exc:
            pricing.compute_bag_price('jumbo')
        assert exc.value.payload['validBagSizes'] == ['small', 'medium', 'large']

    def test_within_limit_is_not_overweight(self):
        result = pricing.compute_overweight('medium', 35)
        assert result.overweight is False
        assert result.fee == 0
        assert result.weight_limit == 35

    def test_fee_per_started_five_pounds(self):
        assert pricing.compute_overweight('medium', 36).fee == 500
        assert pricing.compute_overweight('medium', 40).fee == 500
        assert pricing.compute_overweight('medium', 40.5).fee == 1000
        assert pricing.compute_overweight('large', 62).fee == 1500

    def test_overage_reported(self):
        result = pricing.compute_overweight('small', 27.25)
        assert result.overweight is True
        assert result.overage_lb == 7.25
        assert result.actual_weight == 27.25
        assert result.fee == 1000

    def test_bag_total(self):
        total = pricing.compute_bag_total('small', 27)
        assert total.base_price == 3500
        assert total.overweight.fee == 1000
        assert total.total == 4500

        assert pricing.compute_bag_total('large').total == 8500


class TestPricingModels:
    """Test pricing model names from the booking front end"""

    def test_front_end_names_normalized(self):
        assert pricing.normalize_pricing_model('per_pound') == 'per_lb'
        assert pricing.normalize_pricing_model('small_bag') == 'bag_small'
        assert pricing.normalize_pricing_model('medium_bag') == 'bag_medium'
        assert pricing.normalize_pricing_model('bag_large') == 'bag_large'

    def test_unknown_model_rejected(self):
        with pytest.raises(ValidationError):
            pricing.normalize_pricing_model('subscription')
        with pytest.raises(ValidationError):
            pricing.normalize_pricing_model(None)

    def test_bag_size_for(self):
        assert pricing.bag_size_for('bag_medium') == 'medium'
        with pytest.raises(ValidationError):
            pricing.bag_size_for('per_lb')


class TestMembershipTerm:
    """Test six month membership dates"""

    def test_expiration_six_months_later(self):
        start = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)
        assert pricing.membership_expiration(start) == datetime(2026, 7, 15, 12, 0, tzinfo=timezone.utc)

    def test_expiration_clamps_to_month_end(self):
        start = datetime(2026, 8, 31, tzinfo=timezone.utc)
        assert pricing.membership_expiration(start) == datetime(2027, 2, 28, tzinfo=timezone.utc)

    def test_days_remaining(self):
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert pricing.days_remaining(datetime(2026, 3, 11, tzinfo=timezone.utc), now) == 10
        assert pricing.days_remaining(datetime(2026, 2, 1, tzinfo=timezone.utc), now) == 0

    def test_format_cents(self):
        assert pricing.format_cents(4999) == '$49.99'
        assert pricing.format_cents(123456) == '$1,234.56'


SWEEP_WEIGHTS = [k / 10 for k in range(1, 601)]


class TestPricingProperties:
    """Sweep 0.1 to 60 lb in 0.1 lb steps"""

    @pytest.mark.parametrize('is_member', [False, True])
    def test_total_never_decreases_with_weight(self, is_member):
        totals = [pricing.compute_per_pound_price(w, is_member).total for w in SWEEP_WEIGHTS]
        for lighter, heavier in zip(totals, totals[1:]):
            assert heavier >= lighter

    @pytest.mark.parametrize('is_member', [False, True])
    def test_minimum_floor(self, is_member):
        rate = pricing.MEMBER_RATE_CENTS if is_member else pricing.STANDARD_RATE_CENTS
        for w in SWEEP_WEIGHTS:
            price = pricing.compute_per_pound_price(w, is_member)
            assert price.total >= pricing.MINIMUM_ORDER_CENTS
            if Decimal(str(w)) * rate < pricing.MINIMUM_ORDER_CENTS:
                assert price.total == pricing.MINIMUM_ORDER_CENTS, w
                assert price.minimum_applied is True, w
            else:
                assert price.total == price.subtotal, w
                assert price.minimum_applied is False, w

    def test_members_never_pay_more(self):
        for w in SWEEP_WEIGHTS:
            member = pricing.compute_per_pound_price(w, is_member=True)
            standard = pricing.compute_per_pound_price(w, is_member=False)
            assert member.total <= standard.total, w
            assert member.subtotal < standard.subtotal, w
            assert member.savings > 0, w
            if standard.total > pricing.MINIMUM_ORDER_CENTS:
                assert member.total < standard.total, w
