"""
Critical integration tests for tenant isolation.
These tests ensure that pricing data is properly isolated between tenants.
"""

from datetime import timedelta
from decimal import Decimal

from storefront.models import Coupon, Discount, Order, Product
from storefront.services import order_service
from storefront.services.pricing_service import calculate_order_pricing
from storefront.services.settings_service import get_pricing_settings, update_pricing_settings
from storefront.utils.dates import utcnow


class TestProductIsolation:
    """Products of another tenant cannot be priced."""

    def test_tenant1_cannot_see_tenant2_products(self, session, product_tenant1, product_tenant2):
        tenant1_products = session.query(Product).filter(
            Product.tenant_id == product_tenant1.tenant_id
        ).all()

        assert [p.id for p in tenant1_products] == [product_tenant1.id]

    def test_cannot_order_other_tenants_product(self, tenant2_client, product_tenant1):
        response = tenant2_client.post('/orders', json={'items': [{'product': product_tenant1.id, 'quantity': 1}]})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'ProductNotFound'


class TestCouponIsolation:
    """Coupons are looked up inside the caller's tenant only."""

    def test_same_code_in_two_tenants(self, session, tenant1, tenant2, product_tenant1, product_tenant2, make_coupon):
        make_coupon(code='SHARED', discount_value=Decimal('10'))
        now = utcnow()
        session.add(Coupon(
            tenant_id=tenant2.id, code='SHARED', name='Tenant 2 coupon', discount_type='fixed',
            discount_value=Decimal('50'), valid_from=now - timedelta(days=1), valid_until=now + timedelta(days=1)
        ))
        session.commit()

        t1 = calculate_order_pricing(session, tenant1.id, [{'product': product_tenant1.id, 'quantity': 1}], 'SHARED')
        t2 = calculate_order_pricing(session, tenant2.id, [{'product': product_tenant2.id, 'quantity': 1}], 'SHARED')

        assert t1.coupon_discount == Decimal('10.00')
        assert t2.coupon_discount == Decimal('50.00')

    def test_other_tenant_cannot_read_coupon(self, tenant2_client, make_coupon):
        coupon = make_coupon(code='PRIVATE')

        assert tenant2_client.get(f'/coupons/{coupon.id}').status_code == 404
        assert tenant2_client.put(f'/coupons/{coupon.id}', json={'name': 'Hijacked'}).status_code == 404
        assert tenant2_client.get('/coupons').get_json() == []

    def test_other_tenant_cannot_validate_code(self, tenant2_client, make_coupon):
        make_coupon(code='PRIVATE')

        response = tenant2_client.post('/coupons/validate', json={'code': 'PRIVATE', 'orderAmount': 100})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'CouponNotFound'


class TestDiscountIsolation:
    """Automatic discounts only apply inside their tenant."""

    def test_discount_does_not_leak(self, session, tenant2, product_tenant2, make_discount):
        make_discount(name='Tenant 1 only', value=Decimal('50'))

        breakdown = calculate_order_pricing(session, tenant2.id, [{'product': product_tenant2.id, 'quantity': 1}])

        assert breakdown.automatic_discounts == []
        assert breakdown.final_total == Decimal('200.00')

    def test_other_tenant_cannot_delete_discount(self, session, tenant2_client, make_discount):
        discount = make_discount()

        assert tenant2_client.delete(f'/discounts/{discount.id}').status_code == 404
        assert session.get(Discount, discount.id) is not None


class TestOrderAndSettingsIsolation:
    """Orders and pricing settings are tenant-scoped."""

    def test_orders_are_isolated(self, session, tenant1, user1, product_tenant1, tenant2_client):
        order = order_service.create_order(session, tenant1.id, user1.id, {
            'items': [{'product': product_tenant1.id, 'quantity': 1}]
        })

        assert tenant2_client.get(f'/orders/{order.id}').status_code == 404
        assert tenant2_client.get('/orders/all').get_json() == []
        assert tenant2_client.patch(f'/orders/{order.id}/status', json={'status': 'delivered'}).status_code == 404
        assert session.get(Order, order.id).status == 'pending'

    def test_pricing_settings_are_isolated(self, session, tenant1, tenant2):
        update_pricing_settings(session, tenant1.id, {'tax_rate': '0.2', 'shipping_cost': '7'})

        assert get_pricing_settings(session, tenant2.id).tax_rate == Decimal('0')
        assert get_pricing_settings(session, tenant1.id).tax_rate == Decimal('0.2')
