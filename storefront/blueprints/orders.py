"""Orders blueprint - price preview, checkout, edits and lifecycle (JSON)."""
from flask import Blueprint, request, g, jsonify, current_app
from storefront.database import get_session
from storefront.exceptions import BusinessLogicError, PricingError
from storefront.middleware import require_login, require_tenant, require_admin, is_tenant_admin
from storefront.services import order_service
from storefront.services.pricing_service import calculate_order_pricing
from storefront.blueprints.metrics import (
    orders_created_total, pricing_calculations_total, coupon_rejections_total
)

orders_bp = Blueprint('orders', __name__, url_prefix='/orders')

COUPON_ERROR_KINDS = ('CouponNotFound', 'CouponExpired', 'CouponExhausted', 'MinimumOrderNotMet')


def _json_body():
    return request.get_json(silent=True) or {}


def _record_coupon_rejection(error):
    if error.kind in COUPON_ERROR_KINDS:
        coupon_rejections_total.labels(kind=error.kind).inc()


@orders_bp.route('/calculate', methods=['POST'])
@require_login
@require_tenant
def calculate():
    """
    Price preview. Never moves usage counters.

    Body: {items: [{product, quantity}], couponCode?, preserveOriginalPricing?}
    An invalid coupon is reported in `warnings` instead of failing the request.
    """
    session = get_session()
    data = _json_body()

    preserve = data.get('preserveOriginalPricing', False)
    if not isinstance(preserve, bool):
        raise BusinessLogicError('preserveOriginalPricing must be a boolean')

    pricing_calculations_total.labels(mode='preview').inc()
    breakdown = calculate_order_pricing(
        session, g.tenant_id, data.get('items'), data.get('couponCode'),
        preview=True,
        apply_automatic_discounts=not preserve,
    )
    for warning in breakdown.warnings:
        coupon_rejections_total.labels(kind=warning['kind']).inc()

    return jsonify(breakdown.to_api())


@orders_bp.route('', methods=['POST'])
@require_login
@require_tenant
def create():
    """Checkout: price with strict coupon rules, persist, redeem usage and clear the cart."""
    session = get_session()
    data = _json_body()

    pricing_calculations_total.labels(mode='commit').inc()
    try:
        order = order_service.create_order(session, g.tenant_id, g.user_id, data)
    except PricingError as e:
        _record_coupon_rejection(e)
        raise

    orders_created_total.inc()
    return jsonify(order.to_dict()), 201


@orders_bp.route('', methods=['GET'])
@require_login
@require_tenant
def list_mine():
    """Orders of the current user, newest first."""
    session = get_session()
    orders = order_service.list_user_orders(session, g.tenant_id, g.user_id)
    return jsonify([o.to_dict() for o in orders])


@orders_bp.route('/all', methods=['GET'])
@require_login
@require_tenant
@require_admin
def list_all():
    session = get_session()
    orders = order_service.list_orders(session, g.tenant_id, status=request.args.get('status'))
    return jsonify([o.to_dict() for o in orders])


@orders_bp.route('/<int:order_id>', methods=['GET'])
@require_login
@require_tenant
def detail(order_id):
    session = get_session()
    order = order_service.get_user_order(session, order_id, g.tenant_id, g.user_id, is_admin=is_tenant_admin())
    return jsonify(order.to_dict())


@orders_bp.route('/<int:order_id>', methods=['PUT'])
@require_login
@require_tenant
def update(order_id):
    """Replace the order's items; pricing follows the order's status and discount history."""
    session = get_session()
    data = _json_body()

    pricing_calculations_total.labels(mode='reprice').inc()
    try:
        order = order_service.update_order_items(
            session, order_id, g.tenant_id, g.user_id, data, is_admin=is_tenant_admin()
        )
    except PricingError as e:
        _record_coupon_rejection(e)
        raise

    return jsonify(order.to_dict())


@orders_bp.route('/<int:order_id>/status', methods=['PATCH'])
@require_login
@require_tenant
@require_admin
def update_status(order_id):
    session = get_session()
    data = _json_body()
    order = order_service.update_order_status(session, order_id, g.tenant_id, data.get('status'))
    return jsonify(order.to_dict())


@orders_bp.route('/<int:order_id>/cancel', methods=['POST'])
@require_login
@require_tenant
def cancel(order_id):
    session = get_session()
    data = _json_body()
    order = order_service.cancel_order(session, order_id, g.tenant_id, g.user_id, data.get('reason'))
    current_app.logger.info(f"Order {order.id} cancelled: {order.cancellation_reason}")
    return jsonify({
        'message': 'Order cancelled successfully',
        'order': order.to_dict(),
    })
