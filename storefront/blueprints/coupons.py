"""Coupons blueprint - tenant admin CRUD plus code validation."""
from flask import Blueprint, request, g, jsonify
from storefront.database import get_session
from storefront.middleware import require_login, require_tenant, require_admin
from storefront.services import coupon_service

coupons_bp = Blueprint('coupons', __name__, url_prefix='/coupons')


@coupons_bp.route('', methods=['GET'])
@require_login
@require_tenant
@require_admin
def list_coupons():
    session = get_session()
    return jsonify([c.to_dict() for c in coupon_service.list_coupons(session, g.tenant_id)])


@coupons_bp.route('/active', methods=['GET'])
@require_login
@require_tenant
def list_active():
    session = get_session()
    return jsonify([c.to_dict() for c in coupon_service.list_active_coupons(session, g.tenant_id)])


@coupons_bp.route('/validate', methods=['POST'])
@require_login
@require_tenant
def validate():
    """Body: {code, orderAmount}. Read-only: usage is only counted at checkout."""
    session = get_session()
    data = request.get_json(silent=True) or {}
    result = coupon_service.validate_coupon_code(session, g.tenant_id, data.get('code'), data.get('orderAmount'))
    return jsonify(result)


@coupons_bp.route('/<int:coupon_id>', methods=['GET'])
@require_login
@require_tenant
@require_admin
def detail(coupon_id):
    session = get_session()
    return jsonify(coupon_service.get_coupon(session, coupon_id, g.tenant_id).to_dict())


@coupons_bp.route('', methods=['POST'])
@require_login
@require_tenant
@require_admin
def create():
    session = get_session()
    coupon = coupon_service.create_coupon(session, g.tenant_id, request.get_json(silent=True) or {})
    return jsonify(coupon.to_dict()), 201


@coupons_bp.route('/<int:coupon_id>', methods=['PUT'])
@require_login
@require_tenant
@require_admin
def update(coupon_id):
    session = get_session()
    coupon = coupon_service.update_coupon(session, coupon_id, g.tenant_id, request.get_json(silent=True) or {})
    return jsonify(coupon.to_dict())


@coupons_bp.route('/<int:coupon_id>', methods=['DELETE'])
@require_login
@require_tenant
@require_admin
def delete(coupon_id):
    session = get_session()
    coupon_service.delete_coupon(session, coupon_id, g.tenant_id)
    return jsonify({'message': 'Coupon deleted successfully'})
