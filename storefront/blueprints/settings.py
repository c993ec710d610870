"""Settings blueprint - tenant key/value settings and pricing settings."""
from flask import Blueprint, request, g, jsonify
from storefront.database import get_session
from storefront.middleware import require_login, require_tenant, require_admin
from storefront.services import settings_service

settings_bp = Blueprint('settings', __name__, url_prefix='/settings')


@settings_bp.route('', methods=['GET'])
@require_login
@require_tenant
def list_settings():
    session = get_session()
    return jsonify([s.to_dict() for s in settings_service.list_settings(session, g.tenant_id)])


@settings_bp.route('/category/<category>', methods=['GET'])
@require_login
@require_tenant
def by_category(category):
    session = get_session()
    return jsonify([s.to_dict() for s in settings_service.list_settings(session, g.tenant_id, category=category)])


@settings_bp.route('/pricing', methods=['GET'])
@require_login
@require_tenant
def get_pricing():
    session = get_session()
    return jsonify(settings_service.get_pricing_settings(session, g.tenant_id).to_dict())


@settings_bp.route('/pricing', methods=['PUT'])
@require_login
@require_tenant
@require_admin
def update_pricing():
    session = get_session()
    pricing = settings_service.update_pricing_settings(session, g.tenant_id, request.get_json(silent=True) or {})
    return jsonify(pricing.to_dict())


@settings_bp.route('/<key>', methods=['GET'])
@require_login
@require_tenant
def by_key(key):
    session = get_session()
    return jsonify(settings_service.get_setting(session, g.tenant_id, key).to_dict())


@settings_bp.route('', methods=['PUT'])
@require_login
@require_tenant
@require_admin
def upsert():
    """Body: a single {key, value, category?, description?, isActive?} or {settings: [...]}."""
    session = get_session()
    data = request.get_json(silent=True) or {}
    if 'settings' in data:
        return jsonify({'results': settings_service.upsert_many(session, g.tenant_id, data['settings'])})
    setting = settings_service.upsert_setting(session, g.tenant_id, data)
    return jsonify(setting.to_dict())
