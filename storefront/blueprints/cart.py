"""Cart blueprint - the current user's cart within the tenant."""
from flask import Blueprint, request, g, jsonify
from storefront.database import get_session
from storefront.middleware import require_login, require_tenant
from storefront.services import cart_service

cart_bp = Blueprint('cart', __name__, url_prefix='/cart')


def _render(cart):
    if cart is None:
        return {'items': [], 'totalItems': 0, 'totalPrice': 0.0, 'isActive': False}
    return cart.to_dict()


@cart_bp.route('', methods=['GET'])
@require_login
@require_tenant
def view():
    session = get_session()
    return jsonify(_render(cart_service.get_cart(session, g.tenant_id, g.user_id)))


@cart_bp.route('/items', methods=['POST'])
@require_login
@require_tenant
def add_item():
    """Body: {product, quantity}."""
    session = get_session()
    data = request.get_json(silent=True) or {}
    cart = cart_service.add_item(session, g.tenant_id, g.user_id, data.get('product'), data.get('quantity', 1))
    return jsonify(_render(cart))


@cart_bp.route('/items/<int:product_id>', methods=['PUT'])
@require_login
@require_tenant
def update_item(product_id):
    session = get_session()
    data = request.get_json(silent=True) or {}
    cart = cart_service.update_item(session, g.tenant_id, g.user_id, product_id, data.get('quantity'))
    return jsonify(_render(cart))


@cart_bp.route('/items/<int:product_id>', methods=['DELETE'])
@require_login
@require_tenant
def remove_item(product_id):
    session = get_session()
    cart = cart_service.remove_item(session, g.tenant_id, g.user_id, product_id)
    return jsonify(_render(cart))


@cart_bp.route('', methods=['DELETE'])
@require_login
@require_tenant
def clear():
    session = get_session()
    cart = cart_service.clear_cart(session, g.tenant_id, g.user_id)
    return jsonify(_render(cart))
