"""
Order service with transactional logic - Multi-Tenant.
Handles order creation, item edits with repricing, status changes and cancellation.
"""
import logging
from typing import Any, Dict, List, Optional

from storefront.exceptions import BusinessLogicError, NotFoundError, UnauthorizedError
from storefront.models import Order, OrderLine, OrderStatus
from storefront.services import cart_service
from storefront.services.pricing_service import (
    FULL_PRICING, KEEP_PRICING, PricedLine, PricingBreakdown,
    calculate_order_pricing, choose_repricing_strategy, price_lines, redeem_coupon, redeem_pricing,
)
from storefront.utils.dates import utcnow

logger = logging.getLogger(__name__)

DEFAULT_SHIPPING_DETAILS = {
    'type': 'take-in',
    'address': 'Store Pickup',
}
DEFAULT_PAYMENT_DETAILS = {
    'method': 'COD',
    'status': 'pending',
}

EDITABLE_STATUSES = ('pending', 'processing', 'confirmed', 'delivered')
CANCELLABLE_STATUSES = ('pending', 'confirmed')


def _build_lines(lines: List[PricedLine]) -> List[OrderLine]:
    return [
        OrderLine(
            product_id=line.product_id,
            product_name=line.product_name,
            quantity=line.quantity,
            unit_price=line.unit_price,
            line_total=line.line_total,
        )
        for line in lines
    ]


def _apply_breakdown(order: Order, breakdown: PricingBreakdown) -> None:
    order.pricing = breakdown.to_pricing_snapshot()
    order.applied_coupon = breakdown.applied_coupon.to_snapshot() if breakdown.applied_coupon else None
    order.automatic_discounts = [d.to_snapshot() for d in breakdown.automatic_discounts]
    order.total_amount = breakdown.final_total


def create_order(session, tenant_id: int, user_id: int, data: Dict[str, Any]) -> Order:
    """
    Price and persist an order in a single transaction.

    Steps: price (strict coupon) -> create order and lines -> redeem coupon
    and discount usage -> clear the user's cart -> commit. Any failure rolls
    back everything, so no partial order and no stray counter increment.
    """
    if not tenant_id:
        raise BusinessLogicError('tenant_id is required')

    try:
        breakdown = calculate_order_pricing(
            session, tenant_id, data.get('items'), data.get('couponCode')
        )

        order = Order(
            tenant_id=tenant_id,
            user_id=user_id,
            status=OrderStatus.PENDING.value,
            shipping_details=data.get('shippingDetails') or dict(DEFAULT_SHIPPING_DETAILS),
            payment_details=data.get('paymentDetails') or dict(DEFAULT_PAYMENT_DETAILS),
        )
        _apply_breakdown(order, breakdown)
        order.lines = _build_lines(breakdown.lines)
        session.add(order)
        session.flush()

        redeem_pricing(session, tenant_id, breakdown)
        cart_service.clear_cart(session, tenant_id, user_id, commit=False)

        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(
        f"Order {order.id} created for tenant {tenant_id}: subtotal={breakdown.subtotal} "
        f"discount={breakdown.discount_amount} total={breakdown.final_total}"
    )
    return order


def get_order(session, order_id: int, tenant_id: int) -> Order:
    order = session.query(Order).filter(
        Order.id == order_id,
        Order.tenant_id == tenant_id
    ).first()
    if not order:
        raise NotFoundError('Order not found')
    return order


def get_user_order(session, order_id: int, tenant_id: int, user_id: int, is_admin: bool = False) -> Order:
    """Fetch an order visible to the user (own orders, or any order for tenant admins)."""
    order = get_order(session, order_id, tenant_id)
    if order.user_id != user_id and not is_admin:
        raise NotFoundError('Order not found')
    return order


def list_user_orders(session, tenant_id: int, user_id: int) -> List[Order]:
    return session.query(Order).filter(
        Order.tenant_id == tenant_id,
        Order.user_id == user_id
    ).order_by(Order.created_at.desc(), Order.id.desc()).all()


def list_orders(session, tenant_id: int, status: Optional[str] = None) -> List[Order]:
    query = session.query(Order).filter(Order.tenant_id == tenant_id)
    if status:
        query = query.filter(Order.status == status)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()


def update_order_items(session, order_id: int, tenant_id: int, user_id: int,
                       data: Dict[str, Any], is_admin: bool = False) -> Order:
    """
    Replace an order's items and reprice it.

    - confirmed/delivered: lines only, stored pricing is left untouched
    - pending/processing without any past discount and no new coupon:
      subtotal/tax/shipping recomputed, no automatic discounts
    - otherwise: full repricing with strict coupon checks

    Without a `couponCode` key the order keeps its current coupon; an empty
    code removes it. The order's own coupon is re-evaluated without the
    active/usage-cap checks and is not redeemed again. A different coupon
    is redeemed once inside the edit transaction. Automatic discount
    counters never move on edits.
    """
    order = get_order(session, order_id, tenant_id)

    if order.user_id != user_id and not is_admin:
        raise UnauthorizedError('You can only edit your own orders')

    if order.status not in EDITABLE_STATUSES:
        raise BusinessLogicError('Order cannot be updated at this stage')

    items = data.get('items')
    previous = order.applied_coupon or {}
    coupon_code = data['couponCode'] if 'couponCode' in data else previous.get('code')
    strategy = choose_repricing_strategy(order.status, order.has_discounts, coupon_code)

    try:
        if strategy == KEEP_PRICING:
            lines = price_lines(session, tenant_id, items)
        else:
            breakdown = calculate_order_pricing(
                session, tenant_id, items, coupon_code,
                apply_automatic_discounts=(strategy == FULL_PRICING),
                redeemed_coupon_id=previous.get('couponId'),
            )
            lines = breakdown.lines
            applied = breakdown.applied_coupon
            if applied is not None and applied.coupon_id != previous.get('couponId'):
                redeem_coupon(session, tenant_id, applied)
            _apply_breakdown(order, breakdown)

        order.lines = _build_lines(lines)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Order {order.id} items updated (tenant {tenant_id}, repricing={strategy})")
    return order


def update_order_status(session, order_id: int, tenant_id: int, status: str) -> Order:
    """Set an order's status (tenant admins)."""
    valid = [s.value for s in OrderStatus]
    if status not in valid:
        raise BusinessLogicError(f"Invalid status. Must be one of: {', '.join(valid)}")

    order = get_order(session, order_id, tenant_id)
    previous = order.status
    order.status = status
    if status == OrderStatus.CANCELLED.value and order.cancelled_at is None:
        order.cancelled_at = utcnow()
    session.commit()

    logger.info(f"Order {order.id} status {previous} -> {status} (tenant {tenant_id})")
    return order


def cancel_order(session, order_id: int, tenant_id: int, user_id: int, reason: Optional[str]) -> Order:
    """Cancel one of the user's own orders while it is still pending or confirmed."""
    reason = (reason or '').strip()
    if not reason:
        raise BusinessLogicError('Cancellation reason is required')

    order = get_order(session, order_id, tenant_id)
    if order.user_id != user_id:
        raise NotFoundError('Order not found')

    if order.status not in CANCELLABLE_STATUSES:
        raise BusinessLogicError('Order cannot be cancelled at this stage')

    order.status = OrderStatus.CANCELLED.value
    order.cancellation_reason = reason
    order.cancelled_at = utcnow()
    session.commit()

    logger.info(f"Order {order.id} cancelled by user {user_id} (tenant {tenant_id})")
    return order
