"""AppUser model - customers and staff placing or managing orders."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK


class AppUser(Base):
    """Platform user. Credentials are handled outside this service."""

    __tablename__ = 'app_user'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(200), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    user_tenants = relationship('UserTenant', back_populates='user')

    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}')>"
