"""OrderLine model."""
from sqlalchemy import Column, BigInteger, String, Integer, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from storefront.database import Base, BigIntPK
from storefront.utils.money import as_float


class OrderLine(Base):
    """Order line. unit_price is the product price captured when the line was written."""

    __tablename__ = 'order_line'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    product_name = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    line_total = Column(Numeric(10, 2), nullable=False)

    # Relationships
    order = relationship('Order', back_populates='lines')
    product = relationship('Product')

    def to_dict(self):
        return {
            'product': self.product_id,
            'name': self.product_name,
            'quantity': self.quantity,
            'price': as_float(self.unit_price),
            'lineTotal': as_float(self.line_total),
        }

    def __repr__(self):
        return f"<OrderLine(order_id={self.order_id}, product_id={self.product_id}, quantity={self.quantity})>"
