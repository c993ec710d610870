"""
Flask CLI commands for database setup.

Commands:
- flask init-db: Create all tables
- flask seed-demo: Create a demo tenant with products, pricing settings and a coupon
"""
from datetime import timedelta
from decimal import Decimal

import click

from storefront import database
from storefront.models import AppUser, Category, Coupon, Product, Tenant, UserTenant
from storefront.services.settings_service import update_pricing_settings
from storefront.utils.dates import utcnow


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all database tables."""
        database.create_all()
        click.echo(click.style('Tables created.', fg='green'))

    @app.cli.command('seed-demo')
    @click.option('--slug', default='demo', help='Tenant slug')
    @click.option('--email', default='owner@demo.local', help='Owner email')
    def seed_demo(slug, email):
        """Create a demo tenant, owner, products, pricing settings and a SAVE10 coupon."""
        session = database.db_session

        if session.query(Tenant).filter_by(slug=slug).first():
            click.echo(click.style(f'Tenant "{slug}" already exists.', fg='yellow'))
            return

        try:
            tenant = Tenant(slug=slug, name='Demo Store', active=True)
            user = session.query(AppUser).filter_by(email=email).first() or AppUser(email=email, full_name='Demo Owner')
            session.add_all([tenant, user])
            session.flush()

            session.add(UserTenant(user_id=user.id, tenant_id=tenant.id, role='OWNER', active=True))

            drinks = Category(tenant_id=tenant.id, name='Drinks')
            session.add(drinks)
            session.flush()

            session.add_all([
                Product(tenant_id=tenant.id, name='Espresso', price=Decimal('2.50'), category_id=drinks.id),
                Product(tenant_id=tenant.id, name='Cold Brew', price=Decimal('4.00'), category_id=drinks.id),
                Product(tenant_id=tenant.id, name='Gift Box', price=Decimal('100.00')),
            ])

            now = utcnow()
            session.add(Coupon(
                tenant_id=tenant.id, code='SAVE10', name='Ten off', discount_type='fixed',
                discount_value=Decimal('10'), valid_from=now, valid_until=now + timedelta(days=30),
                usage_limit=100, used_count=0, is_active=True
            ))
            session.commit()

            update_pricing_settings(session, tenant.id, {'tax_rate': '0.05', 'shipping_cost': '10'})
        except Exception as e:
            session.rollback()
            click.echo(click.style(f'Error seeding demo data: {e}', fg='red'))
            raise click.Abort()

        click.echo(click.style('Demo data created.', fg='green', bold=True))
        click.echo(f'   Tenant: {tenant.slug} (id={tenant.id})')
        click.echo(f'   Owner:  {user.email} (id={user.id})')
