"""
Unit tests for the pricing engine: resolvers, calculator and redemption.
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from storefront.exceptions import (
    CouponExhaustedError, CouponExpiredError, CouponNotFoundError, DiscountValidationError,
    InvalidItemFormatError, MinimumOrderNotMetError, ProductNotFoundError,
)
from storefront.models import Coupon, Discount
from storefront.services.pricing_service import (
    FULL_PRICING, KEEP_PRICING, PLAIN_PRICING,
    calculate_order_pricing, choose_repricing_strategy, evaluate_coupon, normalize_items,
    redeem_pricing, resolve_automatic_discounts, resolve_coupon, price_lines,
)
from storefront.utils.dates import utcnow


class TestNormalizeItems:
    """Tests for line item validation."""

    def test_accepts_product_and_quantity(self):
        assert normalize_items([{'product': 1, 'quantity': 2}, {'product': '7', 'quantity': 1}]) == [(1, 2), (7, 1)]

    @pytest.mark.parametrize('items', [
        None,
        [],
        [{'product': 1}],
        [{'quantity': 1}],
        [{'product': 1, 'quantity': 0}],
        [{'product': 1, 'quantity': -3}],
        [{'product': 1, 'quantity': 1.5}],
        [{'product': 'abc', 'quantity': 1}],
        ['not-a-dict'],
    ])
    def test_rejects_malformed_items(self, items):
        with pytest.raises(InvalidItemFormatError) as exc:
            normalize_items(items)
        assert exc.value.kind == 'InvalidItemFormat'


class TestCalculator:
    """Tests for calculate_order_pricing."""

    def test_reference_example_with_fixed_coupon(self, session, tenant1, product_tenant1, pricing_settings, make_coupon):
        """$100 x 2, 5% tax, $10 shipping, SAVE10 fixed $10 -> 210."""
        make_coupon(code='SAVE10', discount_type='fixed', discount_value=Decimal('10'),
                    minimum_order_amount=Decimal('0'))

        breakdown = calculate_order_pricing(
            session, tenant1.id, [{'product': product_tenant1.id, 'quantity': 2}], 'SAVE10'
        )

        assert breakdown.subtotal == Decimal('200.00')
        assert breakdown.tax_amount == Decimal('10.00')
        assert breakdown.shipping_cost == Decimal('10.00')
        assert breakdown.pre_discount_total == Decimal('220.00')
        assert breakdown.coupon_discount == Decimal('10.00')
        assert breakdown.automatic_discounts == []
        assert breakdown.final_total == Decimal('210.00')
        assert breakdown.applied_coupon.code == 'SAVE10'

    def test_minimum_order_message_names_the_amount(self, session, tenant1, product_tenant1, pricing_settings, make_coupon):
        make_coupon(code='BIGSPEND', minimum_order_amount=Decimal('500'))

        with pytest.raises(MinimumOrderNotMetError) as exc:
            calculate_order_pricing(
                session, tenant1.id, [{'product': product_tenant1.id, 'quantity': 2}], 'BIGSPEND'
            )

        assert '$500' in exc.value.message
        assert exc.value.message == 'Minimum order amount of $500 required for this coupon'
        assert exc.value.kind == 'MinimumOrderNotMet'

    def test_no_discounts_final_equals_sum(self, session, tenant1, product_tenant1, cheap_product, pricing_settings):
        breakdown = calculate_order_pricing(session, tenant1.id, [
            {'product': product_tenant1.id, 'quantity': 1},
            {'product': cheap_product.id, 'quantity': 3},
        ])

        assert breakdown.subtotal == Decimal('130.00')
        assert breakdown.tax_amount == Decimal('6.50')
        assert breakdown.discount_amount == Decimal('0')
        assert breakdown.final_total == breakdown.subtotal + breakdown.tax_amount + breakdown.shipping_cost

    def test_missing_settings_default_to_zero(self, session, tenant1, product_tenant1):
        breakdown = calculate_order_pricing(session, tenant1.id, [{'product': product_tenant1.id, 'quantity': 1}])

        assert breakdown.tax_rate == Decimal('0')
        assert breakdown.shipping_cost == Decimal('0')
        assert breakdown.final_total == Decimal('100.00')

    def test_unknown_product(self, session, tenant1, product_tenant1):
        with pytest.raises(ProductNotFoundError) as exc:
            calculate_order_pricing(session, tenant1.id, [
                {'product': product_tenant1.id, 'quantity': 1},
                {'product': 999999, 'quantity': 1},
            ])
        assert exc.value.product_id == 999999
        assert exc.value.kind == 'ProductNotFound'

    def test_inactive_product_is_not_found(self, session, tenant1, product_tenant1):
        product_tenant1.active = False
        session.commit()

        with pytest.raises(ProductNotFoundError):
            calculate_order_pricing(session, tenant1.id, [{'product': product_tenant1.id, 'quantity': 1}])

    def test_coupon_then_automatic_discount_on_post_coupon_amount(
            self, session, tenant1, product_tenant1, pricing_settings, make_coupon, make_discount):
        make_coupon(code='SAVE10')
        make_discount(name='Ten percent', discount_type='percentage', value=Decimal('10'))

        breakdown = calculate_order_pricing(
            session, tenant1.id, [{'product': product_tenant1.id, 'quantity': 2}], 'save10'
        )

        assert breakdown.amount_after_coupon == Decimal('210.00')
        assert [d.name for d in breakdown.automatic_discounts] == ['Ten percent']
        assert breakdown.total_automatic_discount == Decimal('21.00')
        assert breakdown.discount_amount == Decimal('31.00')
        assert breakdown.final_total == Decimal('189.00')

    def test_preview_turns_invalid_coupon_into_warning(self, session, tenant1, product_tenant1, pricing_settings):
        breakdown = calculate_order_pricing(
            session, tenant1.id, [{'product': product_tenant1.id, 'quantity': 2}], 'NOPE', preview=True
        )

        assert breakdown.coupon_discount == Decimal('0')
        assert breakdown.applied_coupon is None
        assert breakdown.warnings == [{'kind': 'CouponNotFound', 'message': 'Invalid or inactive coupon code'}]
        assert breakdown.final_total == Decimal('220.00')

    def test_commit_path_raises_for_invalid_coupon(self, session, tenant1, product_tenant1):
        with pytest.raises(CouponNotFoundError):
            calculate_order_pricing(session, tenant1.id, [{'product': product_tenant1.id, 'quantity': 1}], 'NOPE')

    def test_automatic_discounts_can_be_disabled(self, session, tenant1, product_tenant1, make_discount):
        make_discount(value=Decimal('50'))

        breakdown = calculate_order_pricing(
            session, tenant1.id, [{'product': product_tenant1.id, 'quantity': 1}],
            apply_automatic_discounts=False
        )

        assert breakdown.automatic_discounts == []
        assert breakdown.final_total == Decimal('100.00')

    def test_stacked_discounts_are_not_floored_at_zero(self, session, tenant1, product_tenant1, make_discount):
        make_discount(name='First', discount_type='fixed', value=Decimal('80'))
        make_discount(name='Second', discount_type='fixed', value=Decimal('80'))

        breakdown = calculate_order_pricing(session, tenant1.id, [{'product': product_tenant1.id, 'quantity': 1}])

        assert [d.discount_amount for d in breakdown.automatic_discounts] == [Decimal('80.00'), Decimal('80.00')]
        assert breakdown.final_total == Decimal('-60.00')

    def test_calculation_does_not_touch_usage(self, session, tenant1, product_tenant1, make_coupon, make_discount):
        coupon = make_coupon(code='LIMITED', usage_limit=1)
        discount = make_discount(usage_limit=1)

        for _ in range(2):
            calculate_order_pricing(
                session, tenant1.id, [{'product': product_tenant1.id, 'quantity': 1}], 'LIMITED', preview=True
            )

        session.expire_all()
        assert session.get(Coupon, coupon.id).used_count == 0
        assert session.get(Discount, discount.id).used_count == 0


class TestCouponResolver:
    """Tests for the coupon rules."""

    def test_percentage_clamped_to_maximum(self, session, tenant1, make_coupon):
        coupon = make_coupon(code='HALF', discount_type='percentage', discount_value=Decimal('50'),
                             maximum_discount=Decimal('25'))

        applied = evaluate_coupon(coupon, Decimal('220.00'), utcnow())

        assert applied.discount_amount == Decimal('25.00')

    def test_percentage_without_cap(self, session, tenant1, make_coupon):
        coupon = make_coupon(code='TEN', discount_type='percentage', discount_value=Decimal('10'))

        applied = evaluate_coupon(coupon, Decimal('220.00'), utcnow())

        assert applied.discount_amount == Decimal('22.00')

    def test_fixed_clamped_to_amount(self, session, tenant1, make_coupon):
        coupon = make_coupon(code='BIG', discount_value=Decimal('300'))

        applied = evaluate_coupon(coupon, Decimal('220.00'), utcnow())

        assert applied.discount_amount == Decimal('220.00')

    def test_exhausted_coupon_fails(self, session, tenant1, make_coupon):
        coupon = make_coupon(code='USEDUP', usage_limit=5, used_count=5)

        with pytest.raises(CouponExhaustedError):
            evaluate_coupon(coupon, Decimal('220.00'), utcnow())

    def test_coupon_already_redeemed_by_order(self, session, tenant1, make_coupon):
        coupon = make_coupon(code='LAST', usage_limit=1, used_count=1, is_active=False)

        with pytest.raises(CouponNotFoundError):
            resolve_coupon(session, tenant1.id, 'last', Decimal('100.00'))

        applied = resolve_coupon(session, tenant1.id, 'last', Decimal('100.00'), redeemed_coupon_id=coupon.id)
        assert applied.discount_amount == Decimal('10.00')

    def test_zero_usage_limit_is_unlimited(self, session, tenant1, make_coupon):
        coupon = make_coupon(code='FOREVER', usage_limit=0, used_count=1000)

        assert evaluate_coupon(coupon, Decimal('220.00'), utcnow()).discount_amount == Decimal('10.00')

    def test_expired_and_not_yet_valid(self, session, tenant1, make_coupon):
        now = utcnow()
        expired = make_coupon(code='OLD', valid_from=now - timedelta(days=10), valid_until=now - timedelta(days=1))
        future = make_coupon(code='SOON', valid_from=now + timedelta(days=1), valid_until=now + timedelta(days=10))

        with pytest.raises(CouponExpiredError):
            evaluate_coupon(expired, Decimal('100'), now)
        with pytest.raises(CouponExpiredError):
            evaluate_coupon(future, Decimal('100'), now)

    def test_inactive_coupon_not_found(self, session, tenant1, make_coupon):
        coupon = make_coupon(code='OFF', is_active=False)

        with pytest.raises(CouponNotFoundError):
            evaluate_coupon(coupon, Decimal('100'), utcnow())

    def test_lookup_is_case_insensitive_and_trimmed(self, session, tenant1, make_coupon):
        make_coupon(code='SAVE10')

        applied = resolve_coupon(session, tenant1.id, '  save10 ', Decimal('100'))

        assert applied.code == 'SAVE10'

    def test_lookup_is_tenant_scoped(self, session, tenant1, tenant2, make_coupon):
        make_coupon(code='SAVE10')

        with pytest.raises(CouponNotFoundError):
            resolve_coupon(session, tenant2.id, 'SAVE10', Decimal('100'))


class TestAutomaticDiscountResolver:
    """Tests for automatic discount qualification."""

    def _lines(self, session, tenant_id, items):
        return price_lines(session, tenant_id, items)

    def test_bulk_threshold(self, session, tenant1, cheap_product, make_discount):
        make_discount(name='Bulk', discount_type='bulk', value=Decimal('0'),
                      bulk_threshold=10, bulk_percent=Decimal('20'))

        nine = self._lines(session, tenant1.id, [{'product': cheap_product.id, 'quantity': 9}])
        ten = self._lines(session, tenant1.id, [{'product': cheap_product.id, 'quantity': 10}])

        assert resolve_automatic_discounts(session, tenant1.id, Decimal('90.00'), nine) == []
        applied = resolve_automatic_discounts(session, tenant1.id, Decimal('100.00'), ten)
        assert [d.discount_amount for d in applied] == [Decimal('20.00')]

    def test_bulk_counts_quantity_across_lines(self, session, tenant1, cheap_product, product_tenant1, make_discount):
        make_discount(discount_type='bulk', value=Decimal('0'), bulk_threshold=10, bulk_percent=Decimal('10'))

        lines = self._lines(session, tenant1.id, [
            {'product': cheap_product.id, 'quantity': 6},
            {'product': product_tenant1.id, 'quantity': 4},
        ])

        assert len(resolve_automatic_discounts(session, tenant1.id, Decimal('460.00'), lines)) == 1

    def test_minimum_order_amount_skips(self, session, tenant1, product_tenant1, make_discount):
        make_discount(minimum_order_amount=Decimal('150'))
        lines = self._lines(session, tenant1.id, [{'product': product_tenant1.id, 'quantity': 1}])

        assert resolve_automatic_discounts(session, tenant1.id, Decimal('100.00'), lines) == []
        assert len(resolve_automatic_discounts(session, tenant1.id, Decimal('150.00'), lines)) == 1

    def test_scope_matches_any_category_or_product(self, session, tenant1, product_tenant1, cheap_product,
                                                   category_tenant1, make_discount):
        by_category = make_discount(name='By category', applicable_category_ids=[category_tenant1.id])
        by_product = make_discount(name='By product', applicable_product_ids=[cheap_product.id])
        make_discount(name='Elsewhere', applicable_product_ids=[987654])

        lines = self._lines(session, tenant1.id, [{'product': product_tenant1.id, 'quantity': 1}])
        names = [d.name for d in resolve_automatic_discounts(session, tenant1.id, Decimal('100.00'), lines)]
        assert names == [by_category.name]

        lines = self._lines(session, tenant1.id, [
            {'product': product_tenant1.id, 'quantity': 1},
            {'product': cheap_product.id, 'quantity': 1},
        ])
        names = [d.name for d in resolve_automatic_discounts(session, tenant1.id, Decimal('110.00'), lines)]
        assert names == [by_category.name, by_product.name]

    def test_maximum_discount_and_amount_clamp(self, session, tenant1, product_tenant1, make_discount):
        make_discount(name='Capped', value=Decimal('50'), maximum_discount=Decimal('15'))
        make_discount(name='Huge', discount_type='fixed', value=Decimal('500'))

        lines = self._lines(session, tenant1.id, [{'product': product_tenant1.id, 'quantity': 1}])
        applied = resolve_automatic_discounts(session, tenant1.id, Decimal('100.00'), lines)

        assert [(d.name, d.discount_amount) for d in applied] == [
            ('Capped', Decimal('15.00')),
            ('Huge', Decimal('100.00')),
        ]

    def test_buy_x_get_y_never_applies(self, session, tenant1, product_tenant1, make_discount):
        make_discount(discount_type='buy_x_get_y', value=Decimal('0'), buy_quantity=2, get_quantity=1)
        lines = self._lines(session, tenant1.id, [{'product': product_tenant1.id, 'quantity': 5}])

        assert resolve_automatic_discounts(session, tenant1.id, Decimal('500.00'), lines) == []

    def test_inactive_expired_and_exhausted_are_ignored(self, session, tenant1, product_tenant1, make_discount):
        now = utcnow()
        make_discount(name='Off', is_active=False)
        make_discount(name='Expired', valid_from=now - timedelta(days=5), valid_until=now - timedelta(days=1))
        make_discount(name='Used up', usage_limit=3, used_count=3)
        make_discount(name='Live')

        lines = self._lines(session, tenant1.id, [{'product': product_tenant1.id, 'quantity': 1}])
        names = [d.name for d in resolve_automatic_discounts(session, tenant1.id, Decimal('100.00'), lines)]

        assert names == ['Live']


class TestRedemption:
    """Tests for redeem_pricing (commit-path usage counters)."""

    def _price(self, session, tenant_id, product_id, code=None):
        return calculate_order_pricing(session, tenant_id, [{'product': product_id, 'quantity': 1}], code)

    def test_increments_and_disables_at_cap(self, session, tenant1, product_tenant1, make_coupon, make_discount):
        coupon = make_coupon(code='ONCE', usage_limit=1)
        discount = make_discount(usage_limit=2, used_count=1)

        breakdown = self._price(session, tenant1.id, product_tenant1.id, 'ONCE')
        redeem_pricing(session, tenant1.id, breakdown)
        session.commit()

        session.expire_all()
        coupon = session.get(Coupon, coupon.id)
        discount = session.get(Discount, discount.id)
        assert (coupon.used_count, coupon.is_active) == (1, False)
        assert (discount.used_count, discount.is_active) == (2, False)

    def test_unlimited_coupon_stays_active(self, session, tenant1, product_tenant1, make_coupon):
        coupon = make_coupon(code='OPEN', usage_limit=0)

        breakdown = self._price(session, tenant1.id, product_tenant1.id, 'OPEN')
        redeem_pricing(session, tenant1.id, breakdown)
        session.commit()

        session.expire_all()
        coupon = session.get(Coupon, coupon.id)
        assert (coupon.used_count, coupon.is_active) == (1, True)

    def test_coupon_exhausted_between_pricing_and_redemption(self, session, tenant1, product_tenant1, make_coupon):
        coupon = make_coupon(code='LAST', usage_limit=1)
        breakdown = self._price(session, tenant1.id, product_tenant1.id, 'LAST')

        # A concurrent checkout takes the last use
        session.query(Coupon).filter(Coupon.id == coupon.id).update({'used_count': 1, 'is_active': False})
        session.commit()

        with pytest.raises(CouponExhaustedError):
            redeem_pricing(session, tenant1.id, breakdown)
        session.rollback()

    def test_discount_exhausted_between_pricing_and_redemption(self, session, tenant1, product_tenant1, make_discount):
        discount = make_discount(name='Flash sale', usage_limit=1)
        breakdown = self._price(session, tenant1.id, product_tenant1.id)

        session.query(Discount).filter(Discount.id == discount.id).update({'used_count': 1})
        session.commit()

        with pytest.raises(DiscountValidationError) as exc:
            redeem_pricing(session, tenant1.id, breakdown)
        session.rollback()
        assert exc.value.kind == 'DiscountValidationFailed'
        assert 'Flash sale' in exc.value.message


class TestRepricingStrategy:
    """Tests for choose_repricing_strategy."""

    @pytest.mark.parametrize('status', ['confirmed', 'delivered'])
    def test_fulfilled_orders_keep_pricing(self, status):
        assert choose_repricing_strategy(status, had_discounts=True, coupon_code='NEW') == KEEP_PRICING
        assert choose_repricing_strategy(status, had_discounts=False) == KEEP_PRICING

    @pytest.mark.parametrize('status', ['pending', 'processing'])
    def test_plain_orders_stay_plain(self, status):
        assert choose_repricing_strategy(status, had_discounts=False) == PLAIN_PRICING
        assert choose_repricing_strategy(status, had_discounts=False, coupon_code='  ') == PLAIN_PRICING

    @pytest.mark.parametrize('status', ['pending', 'processing'])
    def test_discounted_or_new_coupon_reprices_fully(self, status):
        assert choose_repricing_strategy(status, had_discounts=True) == FULL_PRICING
        assert choose_repricing_strategy(status, had_discounts=False, coupon_code='SAVE10') == FULL_PRICING
