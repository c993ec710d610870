"""Discounts blueprint - automatic discount CRUD plus applicability preview."""
from flask import Blueprint, request, g, jsonify
from storefront.database import get_session
from storefront.middleware import require_login, require_tenant, require_admin
from storefront.services import discount_service

discounts_bp = Blueprint('discounts', __name__, url_prefix='/discounts')


@discounts_bp.route('', methods=['GET'])
@require_login
@require_tenant
@require_admin
def list_discounts():
    session = get_session()
    return jsonify([d.to_dict() for d in discount_service.list_discounts(session, g.tenant_id)])


@discounts_bp.route('/active', methods=['GET'])
@require_login
@require_tenant
def list_active():
    session = get_session()
    return jsonify([d.to_dict() for d in discount_service.list_active_discounts(session, g.tenant_id)])


@discounts_bp.route('/applicable', methods=['POST'])
@require_login
@require_tenant
def applicable():
    """Body: {items: [{product, quantity}], orderAmount}."""
    session = get_session()
    data = request.get_json(silent=True) or {}
    result = discount_service.applicable_discounts(session, g.tenant_id, data.get('items'), data.get('orderAmount'))
    return jsonify(result)


@discounts_bp.route('/<int:discount_id>', methods=['GET'])
@require_login
@require_tenant
@require_admin
def detail(discount_id):
    session = get_session()
    return jsonify(discount_service.get_discount(session, discount_id, g.tenant_id).to_dict())


@discounts_bp.route('', methods=['POST'])
@require_login
@require_tenant
@require_admin
def create():
    session = get_session()
    discount = discount_service.create_discount(session, g.tenant_id, request.get_json(silent=True) or {})
    return jsonify(discount.to_dict()), 201


@discounts_bp.route('/<int:discount_id>', methods=['PUT'])
@require_login
@require_tenant
@require_admin
def update(discount_id):
    session = get_session()
    discount = discount_service.update_discount(session, discount_id, g.tenant_id, request.get_json(silent=True) or {})
    return jsonify(discount.to_dict())


@discounts_bp.route('/<int:discount_id>', methods=['DELETE'])
@require_login
@require_tenant
@require_admin
def delete(discount_id):
    session = get_session()
    discount_service.delete_discount(session, discount_id, g.tenant_id)
    return jsonify({'message': 'Discount deleted successfully'})
