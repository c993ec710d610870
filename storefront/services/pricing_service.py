"""
Order pricing engine - Multi-Tenant.

One computation serves both the price preview (POST /orders/calculate) and
order persistence, so the quoted price and the charged price only diverge
when an order deliberately keeps its original pricing.

Sequence:
    subtotal -> tax -> shipping -> coupon (on subtotal + tax + shipping)
    -> automatic discounts (on the post-coupon amount) -> final total

Resolvers are pure; usage counters only move in `redeem_pricing`, which is
called once per created order inside the order's transaction.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import and_, case, or_, update

from storefront.exceptions import (
    CouponExhaustedError, CouponExpiredError, CouponNotFoundError, DiscountValidationError,
    InvalidItemFormatError, MinimumOrderNotMetError, PricingError, ProductNotFoundError,
)
from storefront.models import Coupon, CouponType, Discount, Product
from storefront.services.settings_service import PricingSettings, get_pricing_settings
from storefront.utils.dates import as_naive_utc, utcnow
from storefront.utils.money import ZERO, quantize, to_decimal

logger = logging.getLogger(__name__)

HUNDRED = Decimal('100')

# Repricing strategies for edits of existing orders
KEEP_PRICING = 'keep'
PLAIN_PRICING = 'plain'
FULL_PRICING = 'full'


# =====================================================
# RESULT TYPES
# =====================================================

@dataclass(frozen=True)
class PricedLine:
    """A line item with the unit price captured at evaluation time."""
    product_id: int
    quantity: int
    unit_price: Decimal
    product_name: Optional[str] = None
    category_id: Optional[int] = None

    @property
    def line_total(self) -> Decimal:
        return quantize(self.unit_price * self.quantity)


@dataclass(frozen=True)
class AppliedCoupon:
    coupon_id: int
    code: str
    discount_amount: Decimal

    def to_snapshot(self) -> Dict[str, Any]:
        return {'couponId': self.coupon_id, 'code': self.code, 'discountAmount': str(self.discount_amount)}

    def to_api(self) -> Dict[str, Any]:
        return {'couponId': self.coupon_id, 'code': self.code, 'discountAmount': float(self.discount_amount)}


@dataclass(frozen=True)
class AppliedDiscount:
    discount_id: int
    name: str
    discount_type: str
    value: Decimal
    discount_amount: Decimal

    def to_snapshot(self) -> Dict[str, Any]:
        return {
            'discountId': self.discount_id,
            'name': self.name,
            'type': self.discount_type,
            'value': str(self.value),
            'discountAmount': str(self.discount_amount),
        }

    def to_api(self) -> Dict[str, Any]:
        return {
            'discount': {
                'id': self.discount_id,
                'name': self.name,
                'type': self.discount_type,
                'value': float(self.value),
            },
            'discountAmount': float(self.discount_amount),
        }


@dataclass
class PricingBreakdown:
    """
    Result of pricing a set of lines.

    final_total == subtotal + tax_amount + shipping_cost - discount_amount.
    Each discount is clamped to the amount it applies to; the total itself
    is not floored at zero.
    """
    lines: List[PricedLine]
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    pre_discount_total: Decimal
    coupon_discount: Decimal = ZERO
    amount_after_coupon: Decimal = ZERO
    automatic_discounts: List[AppliedDiscount] = field(default_factory=list)
    total_automatic_discount: Decimal = ZERO
    discount_amount: Decimal = ZERO
    final_total: Decimal = ZERO
    applied_coupon: Optional[AppliedCoupon] = None
    warnings: List[Dict[str, str]] = field(default_factory=list)
    currency: str = 'USD'

    def to_api(self) -> Dict[str, Any]:
        """Render for the HTTP contract (camelCase, amounts as numbers)."""
        return {
            'subtotal': float(self.subtotal),
            'taxRate': float(self.tax_rate),
            'taxAmount': float(self.tax_amount),
            'shippingCost': float(self.shipping_cost),
            'preDiscountTotal': float(self.pre_discount_total),
            'couponDiscount': float(self.coupon_discount),
            'amountAfterCoupon': float(self.amount_after_coupon),
            'automaticDiscounts': [d.to_api() for d in self.automatic_discounts],
            'totalAutomaticDiscount': float(self.total_automatic_discount),
            'discountAmount': float(self.discount_amount),
            'finalTotal': float(self.final_total),
            'appliedCoupon': self.applied_coupon.to_api() if self.applied_coupon else None,
            'warnings': list(self.warnings),
            'currency': self.currency,
        }

    def to_pricing_snapshot(self) -> Dict[str, Any]:
        """The `pricing` block stored on an order (amounts as exact strings)."""
        return {
            'subtotal': str(self.subtotal),
            'taxRate': str(self.tax_rate),
            'taxAmount': str(self.tax_amount),
            'shippingCost': str(self.shipping_cost),
            'couponDiscount': str(self.coupon_discount),
            'totalAutomaticDiscount': str(self.total_automatic_discount),
            'discountAmount': str(self.discount_amount),
            'discountCode': self.applied_coupon.code if self.applied_coupon else '',
            'totalAmount': str(self.final_total),
            'currency': self.currency,
        }


# =====================================================
# LINE ITEMS
# =====================================================

def normalize_items(items) -> List[Tuple[int, int]]:
    """
    Validate raw `[{product, quantity}]` payloads.

    Returns (product_id, quantity) pairs in request order.
    Raises InvalidItemFormatError for anything else.
    """
    if not isinstance(items, list) or not items:
        raise InvalidItemFormatError('Order must contain at least one item')

    normalized = []
    for item in items:
        if not isinstance(item, dict):
            raise InvalidItemFormatError()

        product_id = _as_positive_int(item.get('product', item.get('product_id')))
        quantity = _as_positive_int(item.get('quantity'))
        if product_id is None or quantity is None:
            raise InvalidItemFormatError()

        normalized.append((product_id, quantity))
    return normalized


def _as_positive_int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number >= 1 else None


def lookup_products(session, tenant_id: int, product_ids: Iterable[int]) -> Dict[int, Product]:
    """
    Resolve product ids to active products of the tenant.

    Raises ProductNotFoundError naming the first id (in request order) that
    does not resolve.
    """
    wanted = list(dict.fromkeys(product_ids))
    products = session.query(Product).filter(
        Product.id.in_(wanted),
        Product.tenant_id == tenant_id,
        Product.active == True
    ).all()
    products_dict = {p.id: p for p in products}

    for product_id in wanted:
        if product_id not in products_dict:
            raise ProductNotFoundError(product_id)
    return products_dict


def price_lines(session, tenant_id: int, items) -> List[PricedLine]:
    """Validate items and capture each product's current unit price."""
    normalized = normalize_items(items)
    products = lookup_products(session, tenant_id, [pid for pid, _ in normalized])

    return [
        PricedLine(
            product_id=pid,
            quantity=qty,
            unit_price=quantize(products[pid].price),
            product_name=products[pid].name,
            category_id=products[pid].category_id,
        )
        for pid, qty in normalized
    ]


# =====================================================
# COUPON RESOLVER
# =====================================================

def normalize_code(code) -> str:
    return str(code or '').strip().upper()


def evaluate_coupon(coupon: Optional[Coupon], amount: Decimal, now: datetime,
                    already_redeemed: bool = False) -> AppliedCoupon:
    """
    Check a coupon against `amount` (subtotal + tax + shipping) and compute its discount.

    Pure: never touches usage counters. Raises the PricingError naming the
    first rule that fails. With already_redeemed=True (the order being edited
    holds this coupon) the active and usage-cap checks are skipped, since
    that order's own redemption may be what disabled the coupon.
    """
    if coupon is None or not (coupon.is_active or already_redeemed):
        raise CouponNotFoundError()

    if not coupon.is_within_window(now):
        raise CouponExpiredError()

    if coupon.is_exhausted and not already_redeemed:
        raise CouponExhaustedError()

    minimum = coupon.minimum_order_amount
    if minimum is not None and amount < to_decimal(minimum):
        raise MinimumOrderNotMetError(minimum)

    value = to_decimal(coupon.discount_value)
    if coupon.discount_type == CouponType.PERCENTAGE.value:
        discount = amount * value / HUNDRED
        if coupon.maximum_discount is not None:
            discount = min(discount, to_decimal(coupon.maximum_discount))
    else:
        discount = value

    discount = quantize(min(discount, amount))
    return AppliedCoupon(coupon_id=coupon.id, code=coupon.code, discount_amount=discount)


def find_coupon(session, tenant_id: int, code) -> Optional[Coupon]:
    normalized = normalize_code(code)
    if not normalized:
        return None
    return session.query(Coupon).filter(
        Coupon.tenant_id == tenant_id,
        Coupon.code == normalized
    ).first()


def resolve_coupon(session, tenant_id: int, code, amount: Decimal, now: Optional[datetime] = None,
                   redeemed_coupon_id: Optional[int] = None) -> AppliedCoupon:
    """
    Look up a coupon by code (case-insensitive) within the tenant and evaluate it.

    `redeemed_coupon_id` names the coupon an edited order already paid for.
    """
    now = as_naive_utc(now) if now else utcnow()
    coupon = find_coupon(session, tenant_id, code)
    already_redeemed = (
        coupon is not None and redeemed_coupon_id is not None and coupon.id == redeemed_coupon_id
    )
    return evaluate_coupon(coupon, amount, now, already_redeemed=already_redeemed)


# =====================================================
# AUTOMATIC DISCOUNT RESOLVER
# =====================================================

def _id_set(values) -> set:
    ids = set()
    for value in values or []:
        try:
            ids.add(int(value))
        except (TypeError, ValueError):
            continue
    return ids


def matches_scope(discount: Discount, lines: Sequence[PricedLine]) -> bool:
    """Unscoped discounts match everything; scoped ones need one matching line (OR)."""
    if not discount.is_scoped:
        return True

    categories = _id_set(discount.applicable_category_ids)
    products = _id_set(discount.applicable_product_ids)
    return any(
        line.product_id in products or (line.category_id is not None and line.category_id in categories)
        for line in lines
    )


def evaluate_discount(discount: Discount, amount: Decimal, lines: Sequence[PricedLine],
                      now: datetime) -> Optional[AppliedDiscount]:
    """
    Compute one automatic discount against the post-coupon `amount`.

    Returns None when the discount does not qualify or comes to zero.
    """
    if not discount.is_active or discount.is_exhausted or not discount.is_within_window(now):
        return None

    minimum = discount.minimum_order_amount
    if minimum is not None and to_decimal(minimum) > amount:
        return None

    if not matches_scope(discount, lines):
        return None

    total_quantity = sum(line.quantity for line in lines)
    raw = discount.rule.raw_amount(amount, total_quantity)

    if discount.maximum_discount is not None:
        raw = min(raw, to_decimal(discount.maximum_discount))

    discount_amount = quantize(max(min(raw, amount), ZERO))
    if discount_amount <= 0:
        return None

    return AppliedDiscount(
        discount_id=discount.id,
        name=discount.name,
        discount_type=discount.discount_type,
        value=to_decimal(discount.value),
        discount_amount=discount_amount,
    )


def active_discounts(session, tenant_id: int, now: datetime) -> List[Discount]:
    """Active, in-window discounts of the tenant ordered by id."""
    return session.query(Discount).filter(
        Discount.tenant_id == tenant_id,
        Discount.is_active == True,
        Discount.valid_from <= now,
        Discount.valid_until >= now
    ).order_by(Discount.id).all()


def resolve_automatic_discounts(session, tenant_id: int, amount: Decimal, lines: Sequence[PricedLine],
                                now: Optional[datetime] = None) -> List[AppliedDiscount]:
    """Every qualifying automatic discount (full stacking), each computed independently on `amount`."""
    now = as_naive_utc(now) if now else utcnow()

    applied = []
    for discount in active_discounts(session, tenant_id, now):
        result = evaluate_discount(discount, amount, lines, now)
        if result is not None:
            applied.append(result)
    return applied


# =====================================================
# ORDER PRICE CALCULATOR
# =====================================================

def build_breakdown(lines: List[PricedLine], settings: PricingSettings) -> PricingBreakdown:
    """Undiscounted breakdown: subtotal, tax and shipping only."""
    subtotal = quantize(sum((line.line_total for line in lines), ZERO))
    tax_amount = quantize(subtotal * settings.tax_rate)
    shipping_cost = quantize(settings.shipping_cost)
    pre_discount_total = subtotal + tax_amount + shipping_cost

    return PricingBreakdown(
        lines=lines,
        subtotal=subtotal,
        tax_rate=settings.tax_rate,
        tax_amount=tax_amount,
        shipping_cost=shipping_cost,
        pre_discount_total=pre_discount_total,
        amount_after_coupon=pre_discount_total,
        final_total=pre_discount_total,
        currency=settings.currency,
    )


def calculate_order_pricing(session, tenant_id: int, items, coupon_code=None, *,
                            preview: bool = False,
                            apply_automatic_discounts: bool = True,
                            now: Optional[datetime] = None,
                            settings: Optional[PricingSettings] = None,
                            redeemed_coupon_id: Optional[int] = None) -> PricingBreakdown:
    """
    Price `items` (`[{product, quantity}]`) for a tenant.

    Args:
        coupon_code: optional manual coupon. On the commit path any coupon
            failure is raised; with preview=True it becomes a warning and a
            zero coupon discount.
        apply_automatic_discounts: False keeps the breakdown free of
            automatic discounts (plain repricing of legacy orders).
        redeemed_coupon_id: coupon already redeemed by the order being
            repriced; it is not rejected for being disabled or used up.

    Never writes to the database.
    """
    now = as_naive_utc(now) if now else utcnow()
    lines = price_lines(session, tenant_id, items)
    settings = settings or get_pricing_settings(session, tenant_id)

    breakdown = build_breakdown(lines, settings)

    if normalize_code(coupon_code):
        try:
            breakdown.applied_coupon = resolve_coupon(
                session, tenant_id, coupon_code, breakdown.pre_discount_total, now,
                redeemed_coupon_id=redeemed_coupon_id,
            )
            breakdown.coupon_discount = breakdown.applied_coupon.discount_amount
        except PricingError as e:
            logger.warning(
                f"Coupon '{normalize_code(coupon_code)}' rejected for tenant {tenant_id}: {e.kind} - {e.message}"
            )
            if not preview:
                raise
            breakdown.warnings.append({'kind': e.kind, 'message': e.message})

    breakdown.amount_after_coupon = breakdown.pre_discount_total - breakdown.coupon_discount

    if apply_automatic_discounts:
        breakdown.automatic_discounts = resolve_automatic_discounts(
            session, tenant_id, breakdown.amount_after_coupon, lines, now
        )
    breakdown.total_automatic_discount = sum(
        (d.discount_amount for d in breakdown.automatic_discounts), ZERO
    )

    breakdown.discount_amount = breakdown.coupon_discount + breakdown.total_automatic_discount
    breakdown.final_total = breakdown.amount_after_coupon - breakdown.total_automatic_discount
    return breakdown


def _increment_usage(session, model, row_id: int, tenant_id: int) -> bool:
    """
    Atomically add one use to a coupon or discount row.

    The row must still be active and below its cap; the same statement
    deactivates it when this use reaches the cap. Returns False when no row
    qualified (cap reached or row deactivated concurrently).
    """
    has_cap = and_(model.usage_limit.isnot(None), model.usage_limit > 0)
    stmt = (
        update(model)
        .where(
            model.id == row_id,
            model.tenant_id == tenant_id,
            model.is_active == True,
            or_(~has_cap, model.used_count < model.usage_limit)
        )
        .values(
            used_count=model.used_count + 1,
            is_active=case(
                (and_(has_cap, model.used_count + 1 >= model.usage_limit), False),
                else_=True
            )
        )
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    return result.rowcount == 1


def _redeem_coupon(session, tenant_id: int, coupon: AppliedCoupon) -> None:
    if not _increment_usage(session, Coupon, coupon.coupon_id, tenant_id):
        logger.warning(f"Coupon '{coupon.code}' exhausted before redemption (tenant {tenant_id})")
        raise CouponExhaustedError()
    logger.info(f"Coupon '{coupon.code}' redeemed (tenant {tenant_id})")


def _expire_counters(session) -> None:
    # Counters were changed behind the identity map
    for obj in list(session.identity_map.values()):
        if isinstance(obj, (Coupon, Discount)):
            session.expire(obj, ['used_count', 'is_active'])


def redeem_coupon(session, tenant_id: int, coupon: AppliedCoupon) -> None:
    """
    One use of a coupon newly attached to an existing order.

    Same contract as `redeem_pricing`: no commit, CouponExhaustedError when
    the coupon stopped qualifying.
    """
    _redeem_coupon(session, tenant_id, coupon)
    _expire_counters(session)


def redeem_pricing(session, tenant_id: int, breakdown: PricingBreakdown) -> None:
    """
    Commit-path side effect: one use for the applied coupon and for every applied discount.

    Runs inside the caller's transaction and does not commit. A row that
    stopped qualifying since pricing raises CouponExhaustedError (coupon) or
    DiscountValidationError (discount); the caller must roll back.
    """
    if breakdown.applied_coupon is not None:
        _redeem_coupon(session, tenant_id, breakdown.applied_coupon)

    for applied in breakdown.automatic_discounts:
        if not _increment_usage(session, Discount, applied.discount_id, tenant_id):
            logger.warning(f"Discount '{applied.name}' no longer available at redemption (tenant {tenant_id})")
            raise DiscountValidationError(applied.name)
        logger.info(f"Discount '{applied.name}' redeemed (tenant {tenant_id})")

    _expire_counters(session)


# =====================================================
# LEGACY PRICING PRESERVATION
# =====================================================

def choose_repricing_strategy(status: str, had_discounts: bool, coupon_code=None) -> str:
    """
    Decide how an edited order is repriced.

    - confirmed/delivered: KEEP_PRICING (lines change, pricing does not)
    - pending/processing, never discounted, no new coupon: PLAIN_PRICING
    - otherwise: FULL_PRICING
    """
    if status in ('confirmed', 'delivered'):
        return KEEP_PRICING
    if not had_discounts and not normalize_code(coupon_code):
        return PLAIN_PRICING
    return FULL_PRICING
