"""Coupon management service (tenant-scoped)."""
import logging
from typing import Any, Dict, List

from sqlalchemy.exc import IntegrityError

from storefront.exceptions import BusinessLogicError, NotFoundError, PricingError
from storefront.models import Coupon, CouponType
from storefront.services.pricing_service import evaluate_coupon, find_coupon, normalize_code
from storefront.utils.dates import parse_datetime, utcnow
from storefront.utils.money import quantize, to_decimal

logger = logging.getLogger(__name__)

COUPON_FIELDS = (
    'code', 'name', 'description', 'discountType', 'discountValue', 'minimumOrderAmount',
    'maximumDiscount', 'validFrom', 'validUntil', 'usageLimit', 'isActive',
)


def list_coupons(session, tenant_id: int) -> List[Coupon]:
    return session.query(Coupon).filter(
        Coupon.tenant_id == tenant_id
    ).order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()


def list_active_coupons(session, tenant_id: int) -> List[Coupon]:
    now = utcnow()
    return session.query(Coupon).filter(
        Coupon.tenant_id == tenant_id,
        Coupon.is_active == True,
        Coupon.valid_from <= now,
        Coupon.valid_until >= now
    ).order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()


def get_coupon(session, coupon_id: int, tenant_id: int) -> Coupon:
    coupon = session.query(Coupon).filter(
        Coupon.id == coupon_id,
        Coupon.tenant_id == tenant_id
    ).first()
    if not coupon:
        raise NotFoundError('Coupon not found')
    return coupon


def _apply_fields(coupon: Coupon, data: Dict[str, Any]) -> None:
    """Copy camelCase payload fields onto the model, converting types."""
    for key in ('name', 'description'):
        if data.get(key) is not None and not isinstance(data[key], str):
            raise BusinessLogicError(f'{key} must be a string')

    try:
        if 'code' in data:
            coupon.code = normalize_code(data['code'])
        if 'name' in data:
            coupon.name = (data['name'] or '').strip()
        if 'description' in data:
            coupon.description = data['description']
        if 'discountType' in data:
            coupon.discount_type = data['discountType']
        if 'discountValue' in data:
            coupon.discount_value = to_decimal(data['discountValue'], None)
        if 'minimumOrderAmount' in data:
            coupon.minimum_order_amount = to_decimal(data['minimumOrderAmount'], None)
        if 'maximumDiscount' in data:
            coupon.maximum_discount = to_decimal(data['maximumDiscount'], None)
        if 'validFrom' in data:
            coupon.valid_from = parse_datetime(data['validFrom'])
        if 'validUntil' in data:
            coupon.valid_until = parse_datetime(data['validUntil'])
        if 'usageLimit' in data:
            coupon.usage_limit = int(data['usageLimit']) if data['usageLimit'] not in (None, '') else None
        if 'isActive' in data:
            coupon.is_active = bool(data['isActive'])
    except (TypeError, ValueError) as e:
        raise BusinessLogicError(f'Invalid coupon data: {e}')


def validate_coupon_rules(coupon: Coupon) -> None:
    """Rules every stored coupon must satisfy."""
    if not coupon.code:
        raise BusinessLogicError('Coupon code is required')
    if len(coupon.code) > 20:
        raise BusinessLogicError('Coupon code cannot exceed 20 characters')
    if not coupon.name:
        raise BusinessLogicError('Coupon name is required')

    valid_types = [t.value for t in CouponType]
    if coupon.discount_type not in valid_types:
        raise BusinessLogicError('Discount type must be either percentage or fixed')

    value = coupon.discount_value
    if value is None:
        raise BusinessLogicError('Discount value is required')
    if coupon.discount_type == CouponType.PERCENTAGE.value and not (0 < value <= 100):
        raise BusinessLogicError('Percentage discount must be between 0 and 100')
    if coupon.discount_type == CouponType.FIXED.value and value <= 0:
        raise BusinessLogicError('Fixed discount must be greater than 0')

    if coupon.minimum_order_amount is not None and coupon.minimum_order_amount < 0:
        raise BusinessLogicError('Minimum order amount cannot be negative')
    if coupon.maximum_discount is not None and coupon.maximum_discount <= 0:
        raise BusinessLogicError('Maximum discount must be greater than 0')
    if coupon.usage_limit is not None and coupon.usage_limit < 0:
        raise BusinessLogicError('Usage limit must be 0 (unlimited) or at least 1')

    if coupon.valid_from is None or coupon.valid_until is None:
        raise BusinessLogicError('Valid from and valid until dates are required')
    if coupon.valid_from > coupon.valid_until:
        raise BusinessLogicError('Valid from date must be before or equal to valid until date')


def _ensure_unique_code(session, tenant_id: int, code: str, exclude_id=None) -> None:
    query = session.query(Coupon.id).filter(
        Coupon.tenant_id == tenant_id,
        Coupon.code == code
    )
    if exclude_id is not None:
        query = query.filter(Coupon.id != exclude_id)
    if query.first():
        raise BusinessLogicError('Coupon code already exists')


def create_coupon(session, tenant_id: int, data: Dict[str, Any]) -> Coupon:
    coupon = Coupon(tenant_id=tenant_id, used_count=0, is_active=True)
    _apply_fields(coupon, {k: v for k, v in data.items() if k in COUPON_FIELDS})
    if coupon.valid_from is None:
        coupon.valid_from = utcnow()

    validate_coupon_rules(coupon)
    _ensure_unique_code(session, tenant_id, coupon.code)

    try:
        session.add(coupon)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError('Coupon code already exists')

    logger.info(f"Coupon '{coupon.code}' created for tenant {tenant_id}")
    return coupon


def update_coupon(session, coupon_id: int, tenant_id: int, data: Dict[str, Any]) -> Coupon:
    coupon = get_coupon(session, coupon_id, tenant_id)
    try:
        _apply_fields(coupon, {k: v for k, v in data.items() if k in COUPON_FIELDS})
        validate_coupon_rules(coupon)
        _ensure_unique_code(session, tenant_id, coupon.code, exclude_id=coupon.id)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError('Coupon code already exists')
    except Exception:
        session.rollback()
        raise

    logger.info(f"Coupon {coupon.id} updated (tenant {tenant_id})")
    return coupon


def delete_coupon(session, coupon_id: int, tenant_id: int) -> None:
    coupon = get_coupon(session, coupon_id, tenant_id)
    session.delete(coupon)
    session.commit()
    logger.info(f"Coupon {coupon_id} deleted (tenant {tenant_id})")


def validate_coupon_code(session, tenant_id: int, code, order_amount) -> Dict[str, Any]:
    """
    Check a code against an order amount without redeeming it.

    Returns {valid, coupon, discount, finalAmount}; rule failures raise the
    matching PricingError.
    """
    if not normalize_code(code) or order_amount in (None, ''):
        raise BusinessLogicError('Coupon code and order amount are required')
    try:
        amount = quantize(order_amount)
    except ValueError:
        raise BusinessLogicError('Order amount must be a number')
    if amount <= 0:
        raise BusinessLogicError('Order amount must be greater than 0')

    coupon = find_coupon(session, tenant_id, code)
    try:
        applied = evaluate_coupon(coupon, amount, utcnow())
    except PricingError as e:
        logger.info(f"Coupon '{normalize_code(code)}' failed validation for tenant {tenant_id}: {e.kind}")
        raise

    return {
        'valid': True,
        'coupon': coupon.to_dict(),
        'discount': float(applied.discount_amount),
        'finalAmount': float(amount - applied.discount_amount),
    }
