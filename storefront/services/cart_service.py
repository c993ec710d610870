"""Cart service - one active cart per user per tenant."""
import logging

from storefront.exceptions import BusinessLogicError, NotFoundError
from storefront.models import Cart, CartLine
from storefront.services.pricing_service import lookup_products, normalize_items

logger = logging.getLogger(__name__)


def get_cart(session, tenant_id: int, user_id: int, create: bool = False):
    """Return the user's cart (tenant-scoped). With create=True a missing cart is created (not committed)."""
    cart = session.query(Cart).filter(
        Cart.tenant_id == tenant_id,
        Cart.user_id == user_id
    ).first()

    if cart is None and create:
        cart = Cart(tenant_id=tenant_id, user_id=user_id, is_active=True)
        session.add(cart)
        session.flush()
    return cart


def add_item(session, tenant_id: int, user_id: int, product_id, quantity) -> Cart:
    """Add a product to the cart. Adding an existing product increases its quantity."""
    product_id, quantity = normalize_items([{'product': product_id, 'quantity': quantity}])[0]
    try:
        product = lookup_products(session, tenant_id, [product_id])[product_id]
        cart = get_cart(session, tenant_id, user_id, create=True)
        cart.is_active = True

        line = next((ln for ln in cart.lines if ln.product_id == product_id), None)
        if line:
            line.quantity += quantity
        else:
            cart.lines.append(CartLine(product_id=product_id, quantity=quantity, price_at_add=product.price))

        session.commit()
        return cart
    except Exception:
        session.rollback()
        raise


def update_item(session, tenant_id: int, user_id: int, product_id: int, quantity) -> Cart:
    """Set a line's quantity; a quantity of 0 or less removes the line."""
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise BusinessLogicError('Quantity must be a number')

    cart = get_cart(session, tenant_id, user_id)
    if cart is None:
        raise NotFoundError('Cart not found')

    line = next((ln for ln in cart.lines if ln.product_id == product_id), None)
    if line is None:
        raise NotFoundError('Item not found in cart')

    if quantity <= 0:
        cart.lines.remove(line)
    else:
        line.quantity = quantity
    session.commit()
    return cart


def remove_item(session, tenant_id: int, user_id: int, product_id: int) -> Cart:
    cart = get_cart(session, tenant_id, user_id)
    if cart is None:
        raise NotFoundError('Cart not found')

    cart.lines[:] = [ln for ln in cart.lines if ln.product_id != product_id]
    session.commit()
    return cart


def clear_cart(session, tenant_id: int, user_id: int, commit: bool = True):
    """Empty and deactivate the user's cart. Returns the cart or None if the user has none."""
    cart = get_cart(session, tenant_id, user_id)
    if cart is None:
        return None

    cart.lines.clear()
    cart.is_active = False
    if commit:
        session.commit()
    else:
        session.flush()
    return cart
