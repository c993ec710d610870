"""
Per-kind parameters of an automatic discount.

A Discount row stores every kind's columns side by side; `build_rule`
turns a row into exactly one of these variants so the resolver only sees
the fields its kind needs.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from storefront.utils.money import ZERO, to_decimal

HUNDRED = Decimal('100')


@dataclass(frozen=True)
class PercentageRule:
    percent: Decimal

    def raw_amount(self, base: Decimal, total_quantity: int) -> Decimal:
        return base * self.percent / HUNDRED


@dataclass(frozen=True)
class FixedRule:
    amount: Decimal

    def raw_amount(self, base: Decimal, total_quantity: int) -> Decimal:
        return self.amount


@dataclass(frozen=True)
class BulkRule:
    threshold: Optional[int]
    percent: Decimal

    def qualifies(self, total_quantity: int) -> bool:
        # No threshold configured means the rule never triggers.
        return bool(self.threshold) and total_quantity >= self.threshold

    def raw_amount(self, base: Decimal, total_quantity: int) -> Decimal:
        if not self.qualifies(total_quantity):
            return ZERO
        return base * self.percent / HUNDRED


@dataclass(frozen=True)
class BuyXGetYRule:
    """Reserved kind: stored and validated, never yields an amount."""
    buy_quantity: int
    get_quantity: int

    def raw_amount(self, base: Decimal, total_quantity: int) -> Decimal:
        return ZERO


DiscountRule = Union[PercentageRule, FixedRule, BulkRule, BuyXGetYRule]


def build_rule(discount_type, value=None, bulk_threshold=None, bulk_percent=None,
               buy_quantity=None, get_quantity=None) -> DiscountRule:
    """Build the rule variant for a discount kind. Raises ValueError on unknown kinds."""
    if discount_type == 'percentage':
        return PercentageRule(percent=to_decimal(value))
    if discount_type == 'fixed':
        return FixedRule(amount=to_decimal(value))
    if discount_type == 'bulk':
        return BulkRule(
            threshold=int(bulk_threshold) if bulk_threshold else None,
            percent=to_decimal(bulk_percent),
        )
    if discount_type == 'buy_x_get_y':
        return BuyXGetYRule(buy_quantity=int(buy_quantity or 0), get_quantity=int(get_quantity or 0))
    raise ValueError(f'Unknown discount type: {discount_type!r}')
