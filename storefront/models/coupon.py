"""Coupon model - manually entered promotional codes."""
import enum
from sqlalchemy import (
    Column, BigInteger, String, Boolean, Integer, Numeric, DateTime, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK
from storefront.utils.money import as_float


class CouponType(str, enum.Enum):
    """How a coupon's discount_value is interpreted."""
    PERCENTAGE = 'percentage'
    FIXED = 'fixed'


class Coupon(Base):
    """
    Coupon (tenant-scoped).

    `code` is stored upper-cased and is unique per tenant. A usage_limit of
    NULL or 0 means unlimited; once used_count reaches a positive limit the
    coupon is deactivated by the redemption that reached it.
    """

    __tablename__ = 'coupon'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='uq_coupon_tenant_code'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    code = Column(String(20), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    discount_type = Column(String(20), nullable=False)  # percentage | fixed
    discount_value = Column(Numeric(10, 2), nullable=False)
    minimum_order_amount = Column(Numeric(10, 2), nullable=True)
    maximum_discount = Column(Numeric(10, 2), nullable=True)
    valid_from = Column(DateTime, nullable=False)
    valid_until = Column(DateTime, nullable=False)
    usage_limit = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0, server_default='0')
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')

    @property
    def is_exhausted(self):
        """True when a positive usage limit has been reached."""
        return bool(self.usage_limit) and (self.used_count or 0) >= self.usage_limit

    def is_within_window(self, now):
        return self.valid_from <= now <= self.valid_until

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'description': self.description,
            'discountType': self.discount_type,
            'discountValue': as_float(self.discount_value),
            'minimumOrderAmount': as_float(self.minimum_order_amount),
            'maximumDiscount': as_float(self.maximum_discount),
            'validFrom': self.valid_from.isoformat() if self.valid_from else None,
            'validUntil': self.valid_until.isoformat() if self.valid_until else None,
            'usageLimit': self.usage_limit,
            'usedCount': self.used_count or 0,
            'isActive': self.is_active,
        }

    def __repr__(self):
        return f"<Coupon(id={self.id}, code='{self.code}', type='{self.discount_type}')>"
