import pytest
from datetime import timedelta
from decimal import Decimal
import uuid

from storefront import create_app
from storefront import database
from storefront.database import Base, get_session
from storefront.models import (
    Tenant, AppUser, UserTenant, Product, Category, Coupon, Discount
)
from storefront.services.settings_service import update_pricing_settings
from storefront.utils.dates import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite)."""
    app = create_app('config.TestConfig')
    database.create_all()
    return app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session for a test; every table is emptied afterwards."""
    session = get_session()
    yield session
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    database.db_session.remove()


def _make_user(session, tenant, role, label):
    suffix = str(uuid.uuid4())[:8]
    user = AppUser(
        email=f'{label}-{suffix}@test.com',
        full_name=label.replace('-', ' ').title(),
        active=True
    )
    session.add(user)
    session.flush()

    session.add(UserTenant(
        user_id=user.id,
        tenant_id=tenant.id,
        role=role,
        active=True
    ))
    session.commit()
    return user


@pytest.fixture(scope='function')
def tenant1(session):
    """Create first test tenant."""
    suffix = str(uuid.uuid4())[:8]
    tenant = Tenant(
        slug=f'test-tenant-1-{suffix}',
        name=f'Test Tenant 1 {suffix}',
        active=True
    )
    session.add(tenant)
    session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant2(session):
    """Create second test tenant for isolation tests."""
    suffix = str(uuid.uuid4())[:8]
    tenant = Tenant(
        slug=f'test-tenant-2-{suffix}',
        name=f'Test Tenant 2 {suffix}',
        active=True
    )
    session.add(tenant)
    session.commit()
    return tenant


@pytest.fixture(scope='function')
def user1(session, tenant1):
    """Customer of tenant1."""
    return _make_user(session, tenant1, 'CUSTOMER', 'user-one')


@pytest.fixture(scope='function')
def other_user(session, tenant1):
    """Second customer of tenant1."""
    return _make_user(session, tenant1, 'CUSTOMER', 'user-other')


@pytest.fixture(scope='function')
def admin_user(session, tenant1):
    """Owner of tenant1."""
    return _make_user(session, tenant1, 'OWNER', 'owner-one')


@pytest.fixture(scope='function')
def user2(session, tenant2):
    """Owner of tenant2."""
    return _make_user(session, tenant2, 'OWNER', 'owner-two')


@pytest.fixture(scope='function')
def category_tenant1(session, tenant1):
    """Create test category for tenant1."""
    category = Category(
        tenant_id=tenant1.id,
        name='Test Category T1'
    )
    session.add(category)
    session.commit()
    return category


@pytest.fixture(scope='function')
def product_tenant1(session, tenant1, category_tenant1):
    """$100 product of tenant1."""
    product = Product(
        tenant_id=tenant1.id,
        name='Product T1',
        sku='SKU-T1-001',
        category_id=category_tenant1.id,
        price=Decimal('100.00'),
        active=True
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def cheap_product(session, tenant1):
    """$10 uncategorized product of tenant1."""
    product = Product(
        tenant_id=tenant1.id,
        name='Cheap Product',
        sku='SKU-T1-002',
        price=Decimal('10.00'),
        active=True
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def product_tenant2(session, tenant2):
    """$200 product of tenant2."""
    category = Category(
        tenant_id=tenant2.id,
        name='Test Category T2'
    )
    session.add(category)
    session.flush()

    product = Product(
        tenant_id=tenant2.id,
        name='Product T2',
        sku='SKU-T2-001',
        category_id=category.id,
        price=Decimal('200.00'),
        active=True
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def pricing_settings(session, tenant1):
    """5% tax and $10 flat shipping for tenant1."""
    return update_pricing_settings(session, tenant1.id, {'tax_rate': '0.05', 'shipping_cost': '10'})


@pytest.fixture(scope='function')
def make_coupon(session, tenant1):
    """Factory for tenant1 coupons, valid from yesterday to next month unless overridden."""
    def _make(**overrides):
        now = utcnow()
        data = dict(
            tenant_id=tenant1.id,
            code='SAVE10',
            name='Save ten',
            discount_type='fixed',
            discount_value=Decimal('10'),
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=30),
            usage_limit=None,
            used_count=0,
            is_active=True,
        )
        data.update(overrides)
        coupon = Coupon(**data)
        session.add(coupon)
        session.commit()
        return coupon
    return _make


@pytest.fixture(scope='function')
def make_discount(session, tenant1):
    """Factory for tenant1 automatic discounts, valid from yesterday to next month unless overridden."""
    def _make(**overrides):
        now = utcnow()
        data = dict(
            tenant_id=tenant1.id,
            name='Automatic',
            discount_type='percentage',
            value=Decimal('10'),
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=30),
            usage_limit=None,
            used_count=0,
            is_active=True,
            applicable_category_ids=[],
            applicable_product_ids=[],
        )
        data.update(overrides)
        discount = Discount(**data)
        session.add(discount)
        session.commit()
        return discount
    return _make


def _login(client, user, tenant):
    with client.session_transaction() as sess:
        sess['user_id'] = user.id
        sess['tenant_id'] = tenant.id
    return client


@pytest.fixture(scope='function')
def authenticated_client(client, user1, tenant1):
    """Create authenticated client for tenant1 (customer)."""
    return _login(client, user1, tenant1)


@pytest.fixture(scope='function')
def admin_client(app, admin_user, tenant1):
    """Authenticated client for tenant1's owner."""
    return _login(app.test_client(), admin_user, tenant1)


@pytest.fixture(scope='function')
def tenant2_client(app, user2, tenant2):
    """Authenticated client for tenant2's owner."""
    return _login(app.test_client(), user2, tenant2)
