"""Tenant settings service - key/value store plus the pricing settings reader."""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from flask import current_app, has_app_context

from storefront.exceptions import BusinessLogicError, NotFoundError
from storefront.models import Setting
from storefront.utils.money import ZERO, to_decimal

logger = logging.getLogger(__name__)

PRICING_KEY = 'pricing'
SETTING_CATEGORIES = ('pricing', 'shipping', 'general', 'email', 'payment')


@dataclass(frozen=True)
class PricingSettings:
    """Tax rate (fraction, 0.05 = 5%) and flat shipping cost for a tenant."""
    tax_rate: Decimal = ZERO
    shipping_cost: Decimal = ZERO
    currency: str = 'USD'

    def to_dict(self):
        return {
            'tax_rate': float(self.tax_rate),
            'shipping_cost': float(self.shipping_cost),
            'currency': self.currency,
        }


def get_pricing_settings(session, tenant_id: int, default_currency: Optional[str] = None) -> PricingSettings:
    """
    Read the tenant's `pricing` setting.

    Missing setting, inactive setting or missing keys default to 0 tax and
    0 shipping.
    """
    if default_currency is None:
        default_currency = current_app.config.get('DEFAULT_CURRENCY', 'USD') if has_app_context() else 'USD'

    setting = session.query(Setting).filter(
        Setting.tenant_id == tenant_id,
        Setting.key == PRICING_KEY,
        Setting.is_active == True
    ).first()

    value = setting.value if setting and isinstance(setting.value, dict) else {}
    try:
        return PricingSettings(
            tax_rate=to_decimal(value.get('tax_rate'), ZERO),
            shipping_cost=to_decimal(value.get('shipping_cost'), ZERO),
            currency=value.get('currency') or default_currency,
        )
    except ValueError:
        logger.error(f"Invalid pricing settings for tenant {tenant_id}: {value!r}")
        raise BusinessLogicError('Pricing settings are misconfigured', status_code=500)


def update_pricing_settings(session, tenant_id: int, data: Dict[str, Any]) -> PricingSettings:
    """Validate and store pricing settings. Unspecified fields keep their current value."""
    current = get_pricing_settings(session, tenant_id)

    try:
        tax_rate = to_decimal(data.get('tax_rate'), current.tax_rate)
        shipping_cost = to_decimal(data.get('shipping_cost'), current.shipping_cost)
    except ValueError as e:
        raise BusinessLogicError(str(e))

    if tax_rate < 0 or tax_rate > 1:
        raise BusinessLogicError('tax_rate must be a fraction between 0 and 1')
    if shipping_cost < 0:
        raise BusinessLogicError('shipping_cost cannot be negative')

    currency = (data.get('currency') or current.currency).strip().upper()

    upsert_setting(session, tenant_id, {
        'key': PRICING_KEY,
        'category': 'pricing',
        'description': 'Tax rate and flat shipping cost applied to every order',
        'value': {
            'tax_rate': str(tax_rate),
            'shipping_cost': str(shipping_cost),
            'currency': currency,
        },
    })
    return PricingSettings(tax_rate=tax_rate, shipping_cost=shipping_cost, currency=currency)


def list_settings(session, tenant_id: int, category: Optional[str] = None) -> List[Setting]:
    query = session.query(Setting).filter(
        Setting.tenant_id == tenant_id,
        Setting.is_active == True
    )
    if category:
        query = query.filter(Setting.category == category)
    return query.order_by(Setting.category, Setting.key).all()


def get_setting(session, tenant_id: int, key: str) -> Setting:
    setting = session.query(Setting).filter(
        Setting.tenant_id == tenant_id,
        Setting.key == key,
        Setting.is_active == True
    ).first()
    if not setting:
        raise NotFoundError('Setting not found')
    return setting


def upsert_setting(session, tenant_id: int, data: Dict[str, Any], commit: bool = True) -> Setting:
    """Create or replace a setting by key (tenant-scoped)."""
    key = (data.get('key') or '').strip()
    if not key or 'value' not in data or data['value'] is None:
        raise BusinessLogicError('Key and value are required')

    category = data.get('category') or 'general'
    if category not in SETTING_CATEGORIES:
        raise BusinessLogicError(f'Invalid category: {category}')

    setting = session.query(Setting).filter(
        Setting.tenant_id == tenant_id,
        Setting.key == key
    ).first()

    if setting is None:
        setting = Setting(tenant_id=tenant_id, key=key)
        session.add(setting)

    setting.value = data['value']
    setting.category = category
    setting.description = data.get('description')
    setting.is_active = bool(data['isActive']) if data.get('isActive') is not None else True

    if commit:
        session.commit()
        logger.info(f"Setting '{key}' saved for tenant {tenant_id}")
    return setting


def upsert_many(session, tenant_id: int, items) -> List[Dict[str, Any]]:
    """Bulk upsert. Each entry reports its own success; valid entries are committed together."""
    if not isinstance(items, list):
        raise BusinessLogicError('Settings must be an array')

    results = []
    try:
        for item in items:
            key = item.get('key') if isinstance(item, dict) else None
            try:
                setting = upsert_setting(session, tenant_id, item if isinstance(item, dict) else {}, commit=False)
                results.append({'key': key, 'success': True, 'setting': setting.to_dict()})
            except BusinessLogicError as e:
                results.append({'key': key, 'success': False, 'error': e.message})
        session.commit()
    except Exception:
        session.rollback()
        raise
    return results
