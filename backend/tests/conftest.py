"""
Pytest fixtures for shoeledger backend tests.

Provides an in-memory application, a cleared database per test, a test
client, and a small seeded catalog (shoe, rate, supplier).
"""

import pytest
from shoeledger import create_app
from shoeledger.extensions import db
from shoeledger.services import catalog_service, exchange_rate_service, inventory_service, supplier_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RETRY_ATTEMPTS': 3,
        'LOW_STOCK_THRESHOLD': 5,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def shoe_a(db_session):
    """Shoe A: list price 50000 (local), cost 20 (foreign), sizes 40-42."""
    return catalog_service.create_shoe(
        name="Air Max 90",
        brand="Nike",
        sku="nk-am90",
        sizes=["40", "41", "42"],
        price="50000",
        cost_price="20",
    )


@pytest.fixture(scope='function')
def shoe_b(db_session):
    return catalog_service.create_shoe(
        name="Superstar",
        brand="Adidas",
        sku="AD-SUPERSTAR",
        sizes=[39, 40, 41],
        price="45000",
        cost_price="18",
        category="women",
    )


@pytest.fixture(scope='function')
def rate_1500(db_session):
    return exchange_rate_service.set_rate("1500")


@pytest.fixture(scope='function')
def stocked_shoe_a(shoe_a):
    """Shoe A with stock(42) = 10."""
    inventory_service.replenish(shoe_id=shoe_a.id, size="42", quantity=10)
    return shoe_a


@pytest.fixture(scope='function')
def supplier_x(db_session):
    return supplier_service.create_supplier(name="Supplier X", contact="0770 000 0000")


@pytest.fixture(scope='function')
def supplier_y(db_session):
    return supplier_service.create_supplier(name="Supplier Y")
