# Overview: Flask CLI command groups for bootstrap, inspection, and data entry.

# backend/delivery_notes/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv and `pip install -e .` from the repository root.
# - Use: delivery-notes <group> <command> [options]
#   (or: python -m flask --app delivery_notes <group> <command> [options])
#
# System:
# - delivery-notes system init
#   Create the store if needed and apply pending schema migrations.
# - delivery-notes system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - delivery-notes system stats
#   Row counts per table and deliveries per status.
#
# Users:
# - delivery-notes users list
# - delivery-notes users create --name "Jane Roe" --address "1 Main St" --phone "555-0100" --email jane@example.com
# - delivery-notes users update 3 --phone "555-0199"
# - delivery-notes users delete 3
#   Refused while the user still has deliveries; their products become unassigned.
#
# Products:
# - delivery-notes products list [--search milk] [--user-id 3] [--date-from 2024-01-01] [--date-to 2024-01-31]
# - delivery-notes products create --name "Milk" --price 1.25 --image file:///photos/milk.jpg
# - delivery-notes products update 7 --price 1.40 [--image URI ...] [--clear-images]
# - delivery-notes products delete 7
# - delivery-notes products export-pdf [--id 7 --id 8] [filters] [--output-dir exports]
#
# Deliveries:
# - delivery-notes deliveries list
# - delivery-notes deliveries create --user-id 3 --item 7:2 --item 8:1 [--notes "Back door"]
#   Unit prices are taken from the products at creation time.
# - delivery-notes deliveries show 12
# - delivery-notes deliveries mark-delivered 12
# - delivery-notes deliveries delete 12
# - delivery-notes deliveries export-pdf 12 [--output-dir exports]

from __future__ import annotations

import asyncio
import dataclasses

import click
from flask import current_app
from flask.cli import FlaskGroup, with_appcontext

from .entities import Delivery, DeliveryItem, Product, User
from .repository import Repository
from .services.deliveries_service import calculate_total
from .services.export_service import (
    ExportError,
    delivery_filename,
    products_filename,
    render_delivery_pdf,
    render_products_pdf,
    write_export,
)
from .services.products_service import ProductFilter, filter_products
from .services.schema_service import list_applied_migrations, reset_schema
from .store import Store
from .time_utils import format_display_date, to_utc_z, utcnow
from .validation import ConflictError, ValidationError


def run_with_repository(operation, failure_message):
    """
    Open a Store for the current app, await operation(repository), close it.

    Domain errors are shown to the user as-is; anything else is logged with
    its traceback and reported with a generic message.
    """
    app = current_app._get_current_object()

    async def main():
        async with Store(app) as store:
            return await operation(Repository(store))

    try:
        return asyncio.run(main())
    except (ValidationError, ConflictError, ExportError) as e:
        click.echo(f"FAIL {failure_message}: {e}")
    except Exception:
        current_app.logger.exception(failure_message)
        click.echo(f"FAIL {failure_message}. See the log for details.")
    raise click.exceptions.Exit(1)


def _parse_item(ctx, param, values):
    items = []
    for value in values:
        product_id, sep, quantity = value.partition(":")
        try:
            items.append((int(product_id), int(quantity) if sep else 1))
        except ValueError:
            raise click.BadParameter(f"expected PRODUCT_ID[:QUANTITY], got '{value}'")
    return items


def _print_rule(width=90):
    click.echo("=" * width)


@click.group('system')
def system_group():
    """Store bootstrap and maintenance commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create missing tables and apply pending migrations. Safe to re-run."""
    click.echo("START Initializing store...")

    async def op(repo):
        return repo.store.schema_version, await repo.store.run(list_applied_migrations)

    version, applied = run_with_repository(op, "Store initialization failed")
    for migration in applied:
        click.echo(f"     v{migration['version']} {migration['description']} (applied {migration['applied_at']})")
    click.echo(f"PASS Store ready at schema version {version}")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping and recreating all tables...")
    version = reset_schema()
    click.echo(f"PASS Database reset complete (schema version {version}).")


@system_group.command('stats')
@with_appcontext
def show_stats():
    """Row counts per table."""
    stats = run_with_repository(lambda repo: repo.stats(), "Could not load stats")
    for field in dataclasses.fields(stats):
        label = field.name.replace("_", " ").capitalize()
        click.echo(f"{label:<22} {getattr(stats, field.name)}")


@click.group('users')
def users_group():
    """User (customer) records."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users ordered by name."""
    users = run_with_repository(lambda repo: repo.users.list(), "Could not load users")
    if not users:
        click.echo("No users found.")
        return

    _print_rule()
    click.echo(f"{'ID':<5} {'Name':<25} {'Phone':<16} {'Email':<28} Address")
    _print_rule()
    for user in users:
        click.echo(f"{user.id:<5} {user.name:<25} {user.phone:<16} {user.email or '':<28} {user.address}")
    _print_rule()


@users_group.command('create')
@click.option('--name', prompt=True, help='Full name')
@click.option('--address', default='', help='Delivery address')
@click.option('--phone', default='', help='Phone number')
@click.option('--email', default=None, help='Email address')
@with_appcontext
def create_user_cli(name, address, phone, email):
    """Create a user."""
    user = User(name=name, address=address, phone=phone, email=email)
    user_id = run_with_repository(lambda repo: repo.users.create(user), "Failed to create user")
    click.echo(f"PASS Created user: {user.name} (ID: {user_id})")


@users_group.command('update')
@click.argument('user_id', type=int)
@click.option('--name', default=None)
@click.option('--address', default=None)
@click.option('--phone', default=None)
@click.option('--email', default=None)
@with_appcontext
def update_user_cli(user_id, name, address, phone, email):
    """Update the given fields of a user; omitted fields keep their value."""
    changes = {k: v for k, v in dict(name=name, address=address, phone=phone, email=email).items() if v is not None}

    async def op(repo):
        user = await repo.users.get_by_id(user_id)
        if user is None:
            return False
        await repo.users.update(dataclasses.replace(user, **changes))
        return True

    if not run_with_repository(op, "Failed to update user"):
        click.echo(f"FAIL User ID {user_id} not found")
        raise click.exceptions.Exit(1)
    click.echo(f"PASS Updated user {user_id}")


@users_group.command('delete')
@click.argument('user_id', type=int)
@with_appcontext
def delete_user_cli(user_id):
    """Delete a user. Their products are kept but unassigned."""
    run_with_repository(lambda repo: repo.users.delete(user_id), "Failed to delete user")
    click.echo(f"PASS Deleted user {user_id}")


@click.group('products')
def products_group():
    """Product catalogue and product list exports."""


def _filter_options(f):
    f = click.option('--date-to', default=None, help='Latest delivery date (YYYY-MM-DD)')(f)
    f = click.option('--date-from', default=None, help='Earliest delivery date (YYYY-MM-DD)')(f)
    f = click.option('--user-id', type=int, default=None, help='Only products assigned to this user')(f)
    f = click.option('--search', default='', help='Case-insensitive name search')(f)
    return f


@products_group.command('list')
@_filter_options
@with_appcontext
def list_products(search, user_id, date_from, date_to):
    """List products, optionally filtered."""
    flt = ProductFilter(search=search, user_id=user_id, date_from=date_from, date_to=date_to)

    async def op(repo):
        return filter_products(await repo.products.list(), flt)

    products = run_with_repository(op, "Could not load products")
    if not products:
        click.echo("No products found.")
        return

    _print_rule()
    click.echo(f"{'ID':<5} {'Name':<30} {'Price':>12}  {'Delivery':<12} {'User':<6} Images")
    _print_rule()
    for p in products:
        click.echo(
            f"{p.id:<5} {p.name:<30} {p.price:>12.2f}  {format_display_date(p.delivery_date):<12} "
            f"{p.user_id or '-':<6} {len(p.images)}"
        )
    _print_rule()


@products_group.command('create')
@click.option('--name', prompt=True)
@click.option('--price', type=float, default=0.0)
@click.option('--note', default=None)
@click.option('--user-id', type=int, default=None, help='Assign to a user')
@click.option('--delivery-date', default=None, help='ISO-8601 date')
@click.option('--image', 'images', multiple=True, help='Image URI (repeatable, kept in order)')
@with_appcontext
def create_product_cli(name, price, note, user_id, delivery_date, images):
    """Create a product."""
    product = Product(
        name=name, price=price, note=note, user_id=user_id,
        delivery_date=delivery_date, images=list(images),
    )
    product_id = run_with_repository(lambda repo: repo.products.create(product), "Failed to create product")
    click.echo(f"PASS Created product: {product.name} (ID: {product_id})")


@products_group.command('update')
@click.argument('product_id', type=int)
@click.option('--name', default=None)
@click.option('--price', type=float, default=None)
@click.option('--note', default=None)
@click.option('--user-id', type=int, default=None, help='Assign to a user (0 to unassign)')
@click.option('--delivery-date', default=None)
@click.option('--image', 'images', multiple=True, help='Replace the image list (repeatable)')
@click.option('--clear-images', is_flag=True, help='Remove every image')
@with_appcontext
def update_product_cli(product_id, name, price, note, user_id, delivery_date, images, clear_images):
    """Update the given fields of a product; omitted fields keep their value."""
    changes = {
        k: v
        for k, v in dict(name=name, price=price, note=note, user_id=user_id, delivery_date=delivery_date).items()
        if v is not None
    }
    if clear_images:
        changes["images"] = []
    elif images:
        changes["images"] = list(images)

    async def op(repo):
        product = await repo.products.get_by_id(product_id)
        if product is None:
            return False
        await repo.products.update(dataclasses.replace(product, **changes))
        return True

    if not run_with_repository(op, "Failed to update product"):
        click.echo(f"FAIL Product ID {product_id} not found")
        raise click.exceptions.Exit(1)
    click.echo(f"PASS Updated product {product_id}")


@products_group.command('delete')
@click.argument('product_id', type=int)
@with_appcontext
def delete_product_cli(product_id):
    """Delete a product and its images."""
    run_with_repository(lambda repo: repo.products.delete(product_id), "Failed to delete product")
    click.echo(f"PASS Deleted product {product_id}")


@products_group.command('export-pdf')
@click.option('--id', 'product_ids', type=int, multiple=True, help='Export only these products (repeatable)')
@_filter_options
@click.option('--output-dir', default=None, help='Defaults to EXPORT_DIR')
@with_appcontext
def export_products_pdf(product_ids, search, user_id, date_from, date_to, output_dir):
    """Export selected (or filtered) products to a PDF product list."""
    flt = ProductFilter(search=search, user_id=user_id, date_from=date_from, date_to=date_to)
    app_name = current_app.config["APP_DISPLAY_NAME"]
    output_dir = output_dir or current_app.config["EXPORT_DIR"]

    async def op(repo):
        if product_ids:
            rows = await repo.products.list_for_export(product_ids)
        else:
            selected = filter_products(await repo.products.list(), flt)
            rows = await repo.products.list_for_export([p.id for p in selected]) if selected else []
        generated_at = utcnow()
        data = render_products_pdf(rows, generated_at=generated_at, app_name=app_name)
        return write_export(data, products_filename(generated_at), output_dir), len(rows)

    path, count = run_with_repository(op, "Failed to export products")
    click.echo(f"PASS Exported {count} product(s) to {path}")


@click.group('deliveries')
def deliveries_group():
    """Delivery notes."""


@deliveries_group.command('list')
@with_appcontext
def list_deliveries():
    """List deliveries, newest first."""
    async def op(repo):
        users = {u.id: u.name for u in await repo.users.list()}
        return users, await repo.deliveries.list()

    users, deliveries = run_with_repository(op, "Could not load deliveries")
    if not deliveries:
        click.echo("No deliveries found.")
        return

    _print_rule()
    click.echo(f"{'ID':<5} {'Date':<12} {'Customer':<28} {'Status':<10} {'Total':>12}")
    _print_rule()
    for d in deliveries:
        click.echo(
            f"{d.id:<5} {format_display_date(d.date):<12} {users.get(d.user_id, 'Unknown'):<28} "
            f"{d.status:<10} {d.total_amount:>12.2f}"
        )
    _print_rule()


@deliveries_group.command('create')
@click.option('--user-id', type=int, required=True, help='Customer')
@click.option('--item', 'items', multiple=True, required=True, callback=_parse_item,
              help='PRODUCT_ID[:QUANTITY] (repeatable)')
@click.option('--notes', default='')
@click.option('--signature-path', default='', help='Path of a captured signature image')
@with_appcontext
def create_delivery_cli(user_id, items, notes, signature_path):
    """Create a delivery with its items; unit prices are snapshotted from the products."""
    async def op(repo):
        lines = []
        for product_id, quantity in items:
            product = await repo.products.get_by_id(product_id)
            if product is None:
                raise ValidationError(f"Product ID {product_id} not found")
            lines.append(DeliveryItem(product_id=product_id, quantity=quantity, unit_price=product.price))
        delivery = Delivery(
            user_id=user_id,
            date=to_utc_z(utcnow()),
            total_amount=calculate_total(lines),
            signature_path=signature_path,
            notes=notes,
        )
        return await repo.deliveries.create_with_items(delivery, lines), delivery.total_amount

    delivery_id, total = run_with_repository(op, "Failed to create delivery")
    click.echo(f"PASS Created delivery {delivery_id} ({len(items)} item(s), total {total:.2f})")


@deliveries_group.command('show')
@click.argument('delivery_id', type=int)
@with_appcontext
def show_delivery(delivery_id):
    """Show a delivery with its customer and items."""
    detail = run_with_repository(lambda repo: repo.deliveries.get_detail(delivery_id), "Could not load delivery")
    if detail is None:
        click.echo(f"FAIL Delivery ID {delivery_id} not found")
        raise click.exceptions.Exit(1)

    d = detail.delivery
    click.echo(f"Delivery #{d.id}  {format_display_date(d.date)}  {d.status}")
    click.echo(f"Customer: {detail.user.name if detail.user else 'Unknown'}")
    if detail.user and detail.user.address:
        click.echo(f"Address:  {detail.user.address}")
    _print_rule(70)
    for line in detail.lines:
        item = line.item
        click.echo(f"{line.product_name:<36} {item.quantity:>5} x {item.unit_price:>10.2f} = {item.subtotal:>10.2f}")
    _print_rule(70)
    click.echo(f"{'Total':<56} {d.total_amount:>12.2f}")
    if d.notes:
        click.echo(f"Notes: {d.notes}")


@deliveries_group.command('mark-delivered')
@click.argument('delivery_id', type=int)
@with_appcontext
def mark_delivered_cli(delivery_id):
    """Set a delivery's status to Delivered."""
    if not run_with_repository(lambda repo: repo.deliveries.mark_delivered(delivery_id), "Failed to update delivery"):
        click.echo(f"FAIL Delivery ID {delivery_id} not found")
        raise click.exceptions.Exit(1)
    click.echo(f"PASS Delivery {delivery_id} marked as delivered")


@deliveries_group.command('delete')
@click.argument('delivery_id', type=int)
@with_appcontext
def delete_delivery_cli(delivery_id):
    """Delete a delivery and its items."""
    run_with_repository(lambda repo: repo.deliveries.delete(delivery_id), "Failed to delete delivery")
    click.echo(f"PASS Deleted delivery {delivery_id}")


@deliveries_group.command('export-pdf')
@click.argument('delivery_id', type=int)
@click.option('--output-dir', default=None, help='Defaults to EXPORT_DIR')
@with_appcontext
def export_delivery_pdf(delivery_id, output_dir):
    """Export one delivery note to PDF."""
    app_name = current_app.config["APP_DISPLAY_NAME"]
    output_dir = output_dir or current_app.config["EXPORT_DIR"]

    async def op(repo):
        detail = await repo.deliveries.get_detail(delivery_id)
        if detail is None:
            raise ExportError(f"Delivery ID {delivery_id} not found")
        data = render_delivery_pdf(detail, app_name=app_name)
        return write_export(data, delivery_filename(delivery_id), output_dir)

    path = run_with_repository(op, "Failed to export delivery")
    click.echo(f"PASS Exported delivery {delivery_id} to {path}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
    app.cli.add_command(deliveries_group)


def _make_app():
    from . import create_app
    return create_app()


main = FlaskGroup(create_app=_make_app, help="Delivery notes management commands.")
