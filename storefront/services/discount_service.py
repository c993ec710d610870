"""Automatic discount management service (tenant-scoped)."""
import logging
from typing import Any, Dict, List

from storefront.exceptions import BusinessLogicError, NotFoundError
from storefront.models import Discount, DiscountType
from storefront.services.pricing_service import price_lines, resolve_automatic_discounts
from storefront.utils.dates import parse_datetime, utcnow
from storefront.utils.money import ZERO, quantize, to_decimal

logger = logging.getLogger(__name__)

# payload key -> column
_TEXT_FIELDS = {
    'name': 'name',
    'description': 'description',
    'type': 'discount_type',
}
_AMOUNT_FIELDS = {
    'value': 'value',
    'minimumOrderAmount': 'minimum_order_amount',
    'maximumDiscount': 'maximum_discount',
}
_CONDITION_FIELDS = {
    'bulkThreshold': ('bulk_threshold', int),
    'bulkDiscount': ('bulk_percent', to_decimal),
    'buyQuantity': ('buy_quantity', int),
    'getQuantity': ('get_quantity', int),
}


def list_discounts(session, tenant_id: int) -> List[Discount]:
    return session.query(Discount).filter(
        Discount.tenant_id == tenant_id
    ).order_by(Discount.created_at.desc(), Discount.id.desc()).all()


def list_active_discounts(session, tenant_id: int) -> List[Discount]:
    """Active, in-window and not exhausted, ordered by id (evaluation order)."""
    now = utcnow()
    discounts = session.query(Discount).filter(
        Discount.tenant_id == tenant_id,
        Discount.is_active == True,
        Discount.valid_from <= now,
        Discount.valid_until >= now
    ).order_by(Discount.id).all()
    return [d for d in discounts if not d.is_exhausted]


def get_discount(session, discount_id: int, tenant_id: int) -> Discount:
    discount = session.query(Discount).filter(
        Discount.id == discount_id,
        Discount.tenant_id == tenant_id
    ).first()
    if not discount:
        raise NotFoundError('Discount not found')
    return discount


def _id_list(values, label):
    if values is None:
        return []
    if not isinstance(values, list):
        raise BusinessLogicError(f'{label} must be a list of ids')
    try:
        return [int(v) for v in values]
    except (TypeError, ValueError):
        raise BusinessLogicError(f'Invalid {label[:-1].lower()} ID provided')


def _apply_fields(discount: Discount, data: Dict[str, Any]) -> None:
    for key, column in _TEXT_FIELDS.items():
        if key in data:
            if data[key] is not None and not isinstance(data[key], str):
                raise BusinessLogicError(f'{key} must be a string')
            setattr(discount, column, data[key])
    if 'isActive' in data:
        discount.is_active = bool(data['isActive'])

    try:
        for key, column in _AMOUNT_FIELDS.items():
            if key in data:
                setattr(discount, column, to_decimal(data[key], None))
        if 'validFrom' in data:
            discount.valid_from = parse_datetime(data['validFrom'])
        if 'validUntil' in data:
            discount.valid_until = parse_datetime(data['validUntil'])
        if 'usageLimit' in data:
            discount.usage_limit = int(data['usageLimit']) if data['usageLimit'] not in (None, '') else None

        conditions = data.get('conditions') or {}
        for key, (column, convert) in _CONDITION_FIELDS.items():
            if key in conditions:
                raw = conditions[key]
                setattr(discount, column, convert(raw) if raw not in (None, '') else None)
    except (TypeError, ValueError) as e:
        raise BusinessLogicError(f'Invalid discount data: {e}')

    if 'applicableCategories' in data:
        discount.applicable_category_ids = _id_list(data['applicableCategories'], 'Categories')
    if 'applicableProducts' in data:
        discount.applicable_product_ids = _id_list(data['applicableProducts'], 'Products')


def validate_discount_rules(discount: Discount) -> None:
    """Per-kind rules for a stored discount."""
    if not (discount.name or '').strip():
        raise BusinessLogicError('Discount name is required')

    kinds = [t.value for t in DiscountType]
    if discount.discount_type not in kinds:
        raise BusinessLogicError('Discount type must be percentage, fixed, bulk, or buy_x_get_y')

    value = discount.value if discount.value is not None else ZERO
    if value < 0:
        raise BusinessLogicError('Discount value cannot be negative')
    if discount.discount_type == DiscountType.PERCENTAGE.value and not (0 < value <= 100):
        raise BusinessLogicError('Invalid discount value for the selected type')
    if discount.discount_type == DiscountType.FIXED.value and value <= 0:
        raise BusinessLogicError('Invalid discount value for the selected type')

    if discount.discount_type == DiscountType.BULK.value:
        if not discount.bulk_threshold or discount.bulk_threshold <= 0:
            raise BusinessLogicError('Bulk threshold must be greater than 0 for bulk discounts')
        if discount.bulk_percent is None or not (0 < discount.bulk_percent <= 100):
            raise BusinessLogicError('Bulk discount must be between 1-100% for bulk discounts')

    if discount.discount_type == DiscountType.BUY_X_GET_Y.value:
        if not discount.buy_quantity or discount.buy_quantity <= 0:
            raise BusinessLogicError('Buy quantity must be greater than 0 for buy_x_get_y discounts')
        if not discount.get_quantity or discount.get_quantity <= 0:
            raise BusinessLogicError('Get quantity must be greater than 0 for buy_x_get_y discounts')

    if discount.minimum_order_amount is not None and discount.minimum_order_amount < 0:
        raise BusinessLogicError('Minimum order amount cannot be negative')
    if discount.maximum_discount is not None and discount.maximum_discount <= 0:
        raise BusinessLogicError('Maximum discount must be greater than 0')
    if discount.usage_limit is not None and discount.usage_limit < 0:
        raise BusinessLogicError('Usage limit must be 0 (unlimited) or at least 1')

    if discount.valid_from is None or discount.valid_until is None:
        raise BusinessLogicError('Valid from and valid until dates are required')
    if discount.valid_from > discount.valid_until:
        raise BusinessLogicError('Valid from date must be before or equal to valid until date')


def create_discount(session, tenant_id: int, data: Dict[str, Any]) -> Discount:
    discount = Discount(
        tenant_id=tenant_id,
        used_count=0,
        is_active=True,
        value=ZERO,
        applicable_category_ids=[],
        applicable_product_ids=[],
    )
    _apply_fields(discount, data)
    if discount.valid_from is None:
        discount.valid_from = utcnow()
    if discount.value is None:
        discount.value = ZERO

    validate_discount_rules(discount)

    session.add(discount)
    session.commit()
    logger.info(f"Discount '{discount.name}' ({discount.discount_type}) created for tenant {tenant_id}")
    return discount


def update_discount(session, discount_id: int, tenant_id: int, data: Dict[str, Any]) -> Discount:
    discount = get_discount(session, discount_id, tenant_id)
    try:
        _apply_fields(discount, data)
        if discount.value is None:
            discount.value = ZERO
        validate_discount_rules(discount)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Discount {discount.id} updated (tenant {tenant_id})")
    return discount


def delete_discount(session, discount_id: int, tenant_id: int) -> None:
    discount = get_discount(session, discount_id, tenant_id)
    session.delete(discount)
    session.commit()
    logger.info(f"Discount {discount_id} deleted (tenant {tenant_id})")


def applicable_discounts(session, tenant_id: int, items, order_amount) -> Dict[str, Any]:
    """
    Preview which automatic discounts an order would receive.

    `items` are `[{product, quantity}]`; products are resolved for their
    categories, and `order_amount` is the amount the discounts apply to.
    """
    try:
        amount = quantize(order_amount)
    except ValueError:
        raise BusinessLogicError('Order amount must be a number')
    if amount <= 0:
        raise BusinessLogicError('Order amount must be greater than 0')

    lines = price_lines(session, tenant_id, items)
    applied = resolve_automatic_discounts(session, tenant_id, amount, lines)

    total = sum((d.discount_amount for d in applied), ZERO)
    return {
        'applicableDiscounts': [d.to_api() for d in applied],
        'totalDiscount': float(total),
        'finalAmount': float(amount - total),
    }
