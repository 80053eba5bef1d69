"""
Pytest fixtures for storefront backend tests.

Provides the app on in-memory SQLite, per-test table truncation, user and
catalog factories, and bearer-token helpers.
"""

import bcrypt
import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.models import Category, Product, User
from storefront.services import cart_service, order_service, session_service

# Low bcrypt cost keeps fixtures fast; verify_password accepts any cost.
TEST_PASSWORD = "Password123"
TEST_PASSWORD_HASH = bcrypt.hashpw(TEST_PASSWORD.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")

TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite://",
    "MAIL_TRANSPORT": "memory",
    "STORE_NAME": "Test Store",
    "ORDER_NUMBER_PREFIX": "EA",
    "WHATSAPP_PHONE_NUMBER": "244922706107",
    "FRONTEND_URL": "http://shop.test",
}

VALID_CHECKOUT = {
    "shipping_address": {
        "street": "Rua Principal 123",
        "city": "Luanda",
        "state": "Luanda",
        "zip_code": "1000",
        "country": "Angola",
        "phone": "244922000111",
    },
    "payment_method": "cash_on_delivery",
    "notes": "Leave at the door",
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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
        db.session.remove()


@pytest.fixture(scope='function')
def mail_outbox(app):
    """In-memory mail transport, emptied for every test."""
    transport = app.extensions["mail_transport"]
    transport.reset()
    yield transport
    transport.reset()


@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory: make_user(email=..., role=...) -> committed User."""
    counter = {"n": 0}

    def _make(email=None, name="Test Customer", role="customer", phone="244900000001", is_active=True):
        counter["n"] += 1
        user = User(
            name=name,
            email=email or f"customer{counter['n']}@example.com",
            phone=phone,
            password_hash=TEST_PASSWORD_HASH,
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture(scope='function')
def customer(make_user):
    return make_user(email="ana@example.com", name="Ana Silva")


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user(email="admin@store.local", name="Store Admin", role="admin")


@pytest.fixture(scope='function')
def category(db_session):
    cat = Category(name="Home", slug="home", description="Things for the house")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(name=..., price_cents=..., stock=...) -> committed Product."""
    counter = {"n": 0}

    def _make(name=None, price_cents=1000, stock=10, **extra):
        counter["n"] += 1
        name = name or f"Product {counter['n']}"
        product = Product(
            name=name,
            slug=extra.pop("slug", f"product-{counter['n']}"),
            price_cents=price_cents,
            stock=stock,
            images=extra.pop("images", []),
            tags=extra.pop("tags", []),
            **extra,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def placed_order(db_session, customer, make_product):
    """A pending order for customer: 2 x Vase (1000) + 1 x Lamp (500)."""
    vase = make_product(name="Vase", price_cents=1000, stock=5)
    lamp = make_product(name="Lamp", price_cents=500, stock=3)
    cart_service.add_to_cart(customer.id, vase.id, 2)
    cart_service.add_to_cart(customer.id, lamp.id, 1)
    result = order_service.checkout(customer.id, VALID_CHECKOUT)
    return result["order"]


def token_for(user) -> str:
    """Helper to issue a bearer token for a user."""
    _, token = session_service.create_session(user_id=user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def customer_headers(customer):
    return auth_headers(token_for(customer))


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers(token_for(admin))
