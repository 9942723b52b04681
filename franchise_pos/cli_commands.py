"""
Flask CLI commands for database setup and catalog seeding.

Commands:
- flask init-db: Create all tables
- flask create-product: Add a product to a franchise catalog
"""

import click
from franchise_pos import database
from franchise_pos.exceptions import PosError
from franchise_pos.policy import Actor, Role
from franchise_pos.services import inventory_service
from franchise_pos.store import SqlAlchemyStore


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create the product, sale, sale_item and audit_log tables."""
        database.create_schema(database.engine)
        click.echo(click.style('✅ Tablas creadas', fg='green'))

    @app.cli.command('create-product')
    @click.option('--franchise', 'franchise_id', required=True, help='Franchise id')
    @click.option('--name', required=True, help='Product name')
    @click.option('--price', required=True, help='Unit price, e.g. 1500.00')
    @click.option('--stock', default=0, type=int, show_default=True, help='Initial stock')
    @click.option('--sku', default=None, help='Optional SKU, unique per franchise')
    def create_product(franchise_id, name, price, stock, sku):
        """Create a product as an organization-wide operator."""
        actor = Actor(user_id='cli', role=Role.OWNER)
        store = SqlAlchemyStore(database.get_session())

        try:
            product = inventory_service.create_product(store, actor, {
                'franchise_id': franchise_id,
                'name': name,
                'price': price,
                'stock': stock,
                'sku': sku,
            })
            click.echo(click.style("\n✅ Producto creado exitosamente!", fg="green", bold=True))
            click.echo(f"   ID: {product.id}")
            click.echo(f"   Franquicia: {product.franchise_id}")
            click.echo(f"   Stock: {product.stock}")
        except PosError as e:
            raise click.ClickException(e.message)
        finally:
            database.get_session().remove()
