"""Custom exceptions for the storefront backend."""


class StorefrontError(Exception):
    """Base exception for all application errors."""
    kind = 'StorefrontError'

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        rv['error'] = self.kind
        return rv


class BusinessLogicError(StorefrontError):
    """Exception raised for business logic violations."""
    kind = 'BusinessLogicError'

    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(StorefrontError):
    """Exception raised when a resource is not found."""
    kind = 'NotFound'

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class UnauthorizedError(StorefrontError):
    """Raised when a user lacks permission for an action."""
    kind = 'Forbidden'

    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 403)


class AuthenticationError(StorefrontError):
    """Raised when no user/tenant context is present."""
    kind = 'AuthenticationRequired'

    def __init__(self, message="Authentication required"):
        super().__init__(message, 401)


# =====================================================
# PRICING
# =====================================================

class PricingError(BusinessLogicError):
    """Base class for every rule the pricing engine can reject."""
    kind = 'PricingError'


class InvalidItemFormatError(PricingError):
    kind = 'InvalidItemFormat'

    def __init__(self, message='Each item must have a valid product ID and quantity'):
        super().__init__(message)


class ProductNotFoundError(PricingError):
    kind = 'ProductNotFound'

    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f'Product {product_id} not found', payload={'product': product_id})


class CouponNotFoundError(PricingError):
    kind = 'CouponNotFound'

    def __init__(self, message='Invalid or inactive coupon code'):
        super().__init__(message)


class CouponExpiredError(PricingError):
    kind = 'CouponExpired'

    def __init__(self, message='Coupon is expired or not yet valid'):
        super().__init__(message)


class CouponExhaustedError(PricingError):
    kind = 'CouponExhausted'

    def __init__(self, message='Coupon usage limit has been reached'):
        super().__init__(message)


class MinimumOrderNotMetError(PricingError):
    """Raised when the order amount is below the coupon minimum."""
    kind = 'MinimumOrderNotMet'

    def __init__(self, minimum_amount):
        from storefront.utils.money import format_amount
        self.minimum_amount = minimum_amount
        message = f'Minimum order amount of ${format_amount(minimum_amount)} required for this coupon'
        super().__init__(message)


class DiscountValidationError(PricingError):
    """An automatic discount stopped qualifying between pricing and redemption."""
    kind = 'DiscountValidationFailed'

    def __init__(self, discount_name):
        self.discount_name = discount_name
        super().__init__(f'Discount "{discount_name}" is no longer available')
