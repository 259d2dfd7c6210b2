"""
Pytest fixtures for LoyalPOS backend tests.

Provides test database setup, two-tenant fixtures, and test client.
"""

import pytest
from loyalpos import create_app
from loyalpos.config import Config
from loyalpos.extensions import db
from loyalpos.models import Business, Customer, Product
from loyalpos.services import products_service


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DEFAULT_CENTS_PER_POINT = 10000


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

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
def business_a(db_session):
    """Business A (first tenant)."""
    business = Business(name="Corner Cafe", slug="corner-cafe", is_active=True, cents_per_point=1000)
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope='function')
def business_b(db_session):
    """Business B (second tenant)."""
    business = Business(name="Beta Bakery", slug="beta-bakery", is_active=True)
    db_session.add(business)
    db_session.commit()
    return business


def make_product(business_id: int, name: str, *, stock: int = 0, price_cents: int = 1000,
                 threshold: int = 5, sku: str | None = None):
    """Create a product whose initial stock is recorded in the ledger."""
    payload = {"name": name, "price_cents": price_cents, "low_stock_threshold": threshold}
    if sku:
        payload["sku"] = sku
    return products_service.create_product(
        business_id=business_id,
        payload=payload,
        initial_stock=stock or None,
    )


@pytest.fixture(scope='function')
def product_p(db_session, business_a):
    """Product P: stock 10, low-stock threshold 5, price 10.00."""
    return make_product(business_a.id, "Product P", stock=10, price_cents=1000, threshold=5, sku="P-001")


@pytest.fixture(scope='function')
def product_q(db_session, business_a):
    """Product Q: stock 3, threshold 2, price 2.50."""
    return make_product(business_a.id, "Product Q", stock=3, price_cents=250, threshold=2, sku="Q-001")


@pytest.fixture(scope='function')
def product_b(db_session, business_b):
    """Product owned by Business B."""
    return make_product(business_b.id, "Beta Bread", stock=20, price_cents=500, sku="B-001")


@pytest.fixture(scope='function')
def customer_a(db_session, business_a):
    customer = Customer(business_id=business_a.id, full_name="Ana Reyes", phone="09170000001", total_points=0)
    db_session.add(customer)
    db_session.commit()
    return customer


def stock_of(product_id: int) -> int:
    """Current stock straight from the database."""
    return db.session.query(Product.stock_quantity).filter(Product.id == product_id).scalar()


def business_headers(business_id: int) -> dict:
    """Helper to create tenant headers."""
    return {'X-Business-Id': str(business_id)}
