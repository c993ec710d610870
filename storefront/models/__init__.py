"""Models package - exports all SQLAlchemy models."""
# Tenancy
from storefront.models.app_user import AppUser
from storefront.models.tenant import Tenant
from storefront.models.user_tenant import UserTenant, UserRole

# Catalog
from storefront.models.category import Category
from storefront.models.product import Product

# Pricing
from storefront.models.coupon import Coupon, CouponType
from storefront.models.discount import Discount, DiscountType
from storefront.models.discount_rule import (
    PercentageRule, FixedRule, BulkRule, BuyXGetYRule, DiscountRule, build_rule
)
from storefront.models.setting import Setting

# Orders
from storefront.models.order import Order, OrderStatus
from storefront.models.order_line import OrderLine
from storefront.models.cart import Cart, CartLine

__all__ = [
    'AppUser', 'Tenant', 'UserTenant', 'UserRole',
    'Category', 'Product',
    'Coupon', 'CouponType', 'Discount', 'DiscountType',
    'PercentageRule', 'FixedRule', 'BulkRule', 'BuyXGetYRule', 'DiscountRule', 'build_rule',
    'Setting',
    'Order', 'OrderStatus', 'OrderLine', 'Cart', 'CartLine',
]
