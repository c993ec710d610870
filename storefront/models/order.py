"""Order model."""
import enum
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK
from storefront.utils.money import as_float, to_decimal


class OrderStatus(str, enum.Enum):
    """Order status enum."""
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    PROCESSING = 'processing'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'


# Amount keys inside the stored JSON snapshots (kept as strings to stay exact)
_PRICING_AMOUNT_KEYS = (
    'subtotal', 'taxRate', 'taxAmount', 'shippingCost', 'couponDiscount',
    'totalAutomaticDiscount', 'discountAmount', 'totalAmount',
)


class Order(Base):
    """
    Order placed by a user within a tenant.

    `pricing`, `applied_coupon` and `automatic_discounts` are snapshots taken
    when the order was priced; later edits to coupons or discounts never
    change them.
    """

    __tablename__ = 'orders'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)

    shipping_details = Column(JSON, nullable=True)
    payment_details = Column(JSON, nullable=True)

    pricing = Column(JSON, nullable=False)
    applied_coupon = Column(JSON, nullable=True)
    automatic_discounts = Column(JSON, nullable=False, default=list)
    total_amount = Column(Numeric(12, 2), nullable=False)

    cancellation_reason = Column(String(500), nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')
    user = relationship('AppUser')
    lines = relationship('OrderLine', back_populates='order', cascade='all, delete-orphan',
                         order_by='OrderLine.id')

    @property
    def has_discounts(self):
        """Whether any coupon or automatic discount was part of the stored pricing."""
        if self.applied_coupon or self.automatic_discounts:
            return True
        pricing = self.pricing or {}
        return bool(pricing.get('discountCode')) or to_decimal(pricing.get('discountAmount')) > 0

    def to_dict(self, include_lines=True):
        data = {
            'id': self.id,
            'user': self.user_id,
            'status': self.status,
            'shippingDetails': self.shipping_details,
            'paymentDetails': self.payment_details,
            'pricing': _render_pricing(self.pricing),
            'appliedCoupon': _render_coupon(self.applied_coupon),
            'automaticDiscounts': [_render_discount(d) for d in (self.automatic_discounts or [])],
            'totalAmount': as_float(self.total_amount),
            'cancellationReason': self.cancellation_reason,
            'cancelledAt': self.cancelled_at.isoformat() if self.cancelled_at else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }
        if include_lines:
            data['items'] = [line.to_dict() for line in self.lines]
        return data

    def __repr__(self):
        return f"<Order(id={self.id}, status='{self.status}', total={self.total_amount})>"


def _render_pricing(pricing):
    if not pricing:
        return {}
    rendered = dict(pricing)
    for key in _PRICING_AMOUNT_KEYS:
        if key in rendered:
            rendered[key] = as_float(rendered[key])
    return rendered


def _render_coupon(snapshot):
    if not snapshot:
        return None
    rendered = dict(snapshot)
    rendered['discountAmount'] = as_float(snapshot.get('discountAmount'))
    return rendered


def _render_discount(snapshot):
    rendered = dict(snapshot)
    rendered['value'] = as_float(snapshot.get('value'))
    rendered['discountAmount'] = as_float(snapshot.get('discountAmount'))
    return rendered
