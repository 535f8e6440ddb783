"""
Pytest fixtures for delivery notes backend tests.

Provides an in-memory store, per-test table cleanup, and helpers that run
async repository code the way the CLI does.
"""

import asyncio

import pytest

from delivery_notes import create_app
from delivery_notes.entities import Delivery, DeliveryItem, Product, User
from delivery_notes.extensions import db
from delivery_notes.models import SchemaVersion
from delivery_notes.repository import Repository
from delivery_notes.services import deliveries_service, products_service, users_service
from delivery_notes.services.schema_service import init_schema
from delivery_notes.store import Store


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'EXPORT_DIR': str(tmp_path_factory.mktemp('exports')),
        'APP_DISPLAY_NAME': 'Test Deliveries',
    })

    with app.app_context():
        init_schema()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty every data table (the schema and its version history stay)."""
    for table in reversed(db.metadata.sorted_tables):
        if table.name == SchemaVersion.__tablename__:
            continue
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function')
def run_repo(app, db_session):
    """
    Run `operation(repository)` against a freshly opened Store.

    Returns the operation's result; the store is closed afterwards.
    """
    def run(operation):
        async def main():
            async with Store(app) as store:
                return await operation(Repository(store))
        return asyncio.run(main())
    return run


@pytest.fixture(scope='function')
def customer(db_session):
    """A user created through the service layer; returns its id."""
    return users_service.create_user(User(name="Ada Customer", address="1 Main St", phone="555-0100"))


@pytest.fixture(scope='function')
def milk(db_session):
    return products_service.create_product(Product(name="Milk", price=1.25, images=["file:///milk.jpg"]))


@pytest.fixture(scope='function')
def bread(db_session):
    return products_service.create_product(Product(name="Bread", price=2.5))


@pytest.fixture(scope='function')
def delivery(db_session, customer, milk, bread):
    """A pending delivery: 2 x Milk @ 1.25 and 1 x Bread @ 2.50 (total 5.00)."""
    items = [
        DeliveryItem(product_id=milk, quantity=2, unit_price=1.25),
        DeliveryItem(product_id=bread, quantity=1, unit_price=2.5),
    ]
    return deliveries_service.create_delivery_with_items(
        Delivery(
            user_id=customer,
            date="2024-03-01T09:30:00Z",
            total_amount=deliveries_service.calculate_total(items),
            notes="Leave at the back door",
        ),
        items,
    )
