"""Cart models - one active cart per user per tenant."""
from decimal import Decimal
from sqlalchemy import (
    Column, BigInteger, Boolean, Integer, Numeric, DateTime, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK
from storefront.utils.money import as_float


class Cart(Base):
    """Shopping cart."""

    __tablename__ = 'cart'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'user_id', name='uq_cart_tenant_user'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    lines = relationship('CartLine', back_populates='cart', cascade='all, delete-orphan',
                         order_by='CartLine.id')

    @property
    def total_items(self):
        return sum(line.quantity for line in self.lines)

    @property
    def total_price(self):
        total = sum((line.price_at_add * line.quantity for line in self.lines), Decimal('0.00'))
        return total.quantize(Decimal('0.01'))

    def to_dict(self):
        return {
            'id': self.id,
            'isActive': self.is_active,
            'items': [line.to_dict() for line in self.lines],
            'totalItems': self.total_items,
            'totalPrice': as_float(self.total_price),
        }

    def __repr__(self):
        return f"<Cart(id={self.id}, user_id={self.user_id}, items={len(self.lines)})>"


class CartLine(Base):
    """Cart line. price_at_add is informational; checkout re-prices from the product."""

    __tablename__ = 'cart_line'
    __table_args__ = (
        UniqueConstraint('cart_id', 'product_id', name='uq_cart_line_product'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    cart_id = Column(BigInteger, ForeignKey('cart.id', ondelete='CASCADE'), nullable=False)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    quantity = Column(Integer, nullable=False)
    price_at_add = Column(Numeric(10, 2), nullable=False)

    # Relationships
    cart = relationship('Cart', back_populates='lines')
    product = relationship('Product')

    def to_dict(self):
        return {
            'product': self.product_id,
            'quantity': self.quantity,
            'priceAtAdd': as_float(self.price_at_add),
        }
