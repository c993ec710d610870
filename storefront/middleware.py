"""Middleware for authentication and tenant context (JSON API)."""
from functools import wraps
from flask import session, g, current_app
from storefront.database import get_session
from storefront.exceptions import AuthenticationError, UnauthorizedError
from storefront.models import AppUser, UserTenant


def load_user_and_tenant():
    """
    Load current user and tenant into g (Flask's per-request global).

    Called before each request to establish user and tenant context.
    Sets g.user, g.user_id, g.tenant_id and g.user_role if authenticated.
    Session cookie mechanics (login, tenant selection) live outside this service.
    """
    g.user = None
    g.user_id = None
    g.tenant_id = None
    g.user_role = None

    try:
        user_id = session.get('user_id')
        if not user_id:
            return

        db_session = get_session()
        if not db_session:
            return

        user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
        if not user:
            return

        g.user = user
        g.user_id = user.id

        tenant_id = session.get('tenant_id')
        if tenant_id:
            # Verify user has access to this tenant
            user_tenant = db_session.query(UserTenant).filter_by(
                user_id=user.id,
                tenant_id=tenant_id,
                active=True
            ).first()

            if user_tenant and user_tenant.tenant.active:
                g.tenant_id = user_tenant.tenant_id
                g.user_role = user_tenant.role
            else:
                session.pop('tenant_id', None)
    except Exception as e:
        # Context loading must not take the request down; the route decorators answer 401
        current_app.logger.error(f"Error in load_user_and_tenant: {e}")


def is_tenant_admin():
    """OWNER and ADMIN manage the tenant's coupons, discounts, settings and all orders."""
    return g.get('user_role') in ('OWNER', 'ADMIN')


def require_login(f):
    """Decorator: Require user to be logged in (401 otherwise)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            raise AuthenticationError()
        return f(*args, **kwargs)
    return decorated_function


def require_tenant(f):
    """
    Decorator: Require tenant to be selected.

    Must be used AFTER require_login.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('tenant_id') is None:
            raise AuthenticationError('Tenant selection required')
        return f(*args, **kwargs)
    return decorated_function


def require_admin(f):
    """
    Decorator: Require OWNER or ADMIN role for the current tenant.

    Must be used AFTER require_login and require_tenant.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not is_tenant_admin():
            raise UnauthorizedError('Access denied. Admin role required.')
        return f(*args, **kwargs)
    return decorated_function
