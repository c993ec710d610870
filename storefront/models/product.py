"""Product model."""
from sqlalchemy import Column, BigInteger, String, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK


class Product(Base):
    """Product model. `price` is the current unit price used when pricing orders."""

    __tablename__ = 'product'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    sku = Column(String, nullable=True)
    name = Column(String, nullable=False)
    category_id = Column(BigInteger, ForeignKey('category.id'), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')
    category = relationship('Category', foreign_keys=[category_id])

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', price={self.price})>"
