"""Setting model - tenant key/value configuration grouped by category."""
from sqlalchemy import Column, BigInteger, String, Boolean, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK


class Setting(Base):
    """
    Tenant setting. `value` is free-form JSON; the pricing engine reads the
    `pricing` key ({"tax_rate": ..., "shipping_cost": ..., "currency": ...}).
    """

    __tablename__ = 'setting'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'key', name='uq_setting_tenant_key'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    key = Column(String(100), nullable=False)
    value = Column(JSON, nullable=False)
    category = Column(String(20), nullable=False, default='general')
    description = Column(String(500), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            'key': self.key,
            'value': self.value,
            'category': self.category,
            'description': self.description,
            'isActive': self.is_active,
        }

    def __repr__(self):
        return f"<Setting(tenant_id={self.tenant_id}, key='{self.key}')>"
