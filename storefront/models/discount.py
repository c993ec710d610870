"""Discount model - automatic promotions applied without a code."""
import enum
from sqlalchemy import Column, BigInteger, String, Boolean, Integer, Numeric, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK
from storefront.models.discount_rule import build_rule
from storefront.utils.money import as_float


class DiscountType(str, enum.Enum):
    """Automatic discount kinds."""
    PERCENTAGE = 'percentage'
    FIXED = 'fixed'
    BULK = 'bulk'
    BUY_X_GET_Y = 'buy_x_get_y'


class Discount(Base):
    """
    Automatic discount (tenant-scoped).

    Many discounts may stack on one order. Kind-specific parameters live in
    nullable columns and are read through `rule`. Scope lists hold category
    and product ids; an empty list means "applies to everything".
    """

    __tablename__ = 'discount'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    discount_type = Column(String(20), nullable=False)
    value = Column(Numeric(10, 2), nullable=False, default=0)
    minimum_order_amount = Column(Numeric(10, 2), nullable=True)
    maximum_discount = Column(Numeric(10, 2), nullable=True)
    valid_from = Column(DateTime, nullable=False)
    valid_until = Column(DateTime, nullable=False)
    usage_limit = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0, server_default='0')
    is_active = Column(Boolean, nullable=False, default=True)

    applicable_category_ids = Column(JSON, nullable=False, default=list)
    applicable_product_ids = Column(JSON, nullable=False, default=list)

    # Kind-specific parameters
    bulk_threshold = Column(Integer, nullable=True)
    bulk_percent = Column(Numeric(5, 2), nullable=True)
    buy_quantity = Column(Integer, nullable=True)
    get_quantity = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')

    @property
    def rule(self):
        return build_rule(
            self.discount_type,
            value=self.value,
            bulk_threshold=self.bulk_threshold,
            bulk_percent=self.bulk_percent,
            buy_quantity=self.buy_quantity,
            get_quantity=self.get_quantity,
        )

    @property
    def is_exhausted(self):
        return bool(self.usage_limit) and (self.used_count or 0) >= self.usage_limit

    @property
    def is_scoped(self):
        return bool(self.applicable_category_ids or self.applicable_product_ids)

    def is_within_window(self, now):
        return self.valid_from <= now <= self.valid_until

    def conditions_dict(self):
        if self.discount_type == DiscountType.BULK.value:
            return {'bulkThreshold': self.bulk_threshold, 'bulkDiscount': as_float(self.bulk_percent)}
        if self.discount_type == DiscountType.BUY_X_GET_Y.value:
            return {'buyQuantity': self.buy_quantity, 'getQuantity': self.get_quantity}
        return {}

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'type': self.discount_type,
            'value': as_float(self.value),
            'minimumOrderAmount': as_float(self.minimum_order_amount),
            'maximumDiscount': as_float(self.maximum_discount),
            'validFrom': self.valid_from.isoformat() if self.valid_from else None,
            'validUntil': self.valid_until.isoformat() if self.valid_until else None,
            'usageLimit': self.usage_limit,
            'usedCount': self.used_count or 0,
            'isActive': self.is_active,
            'applicableCategories': list(self.applicable_category_ids or []),
            'applicableProducts': list(self.applicable_product_ids or []),
            'conditions': self.conditions_dict(),
        }

    def __repr__(self):
        return f"<Discount(id={self.id}, name='{self.name}', type='{self.discount_type}')>"
