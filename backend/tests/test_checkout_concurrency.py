"""
Concurrent checkout tests against a file-backed SQLite database.

Many buyers race for a product with limited stock: exactly `stock` orders
succeed, the rest fail with InsufficientStockError, stock never goes
negative and every order number is unique.
"""

import threading

import pytest

from conftest import TEST_CONFIG, TEST_PASSWORD_HASH, VALID_CHECKOUT
from storefront import create_app
from storefront.extensions import db
from storefront.models import Cart, CartItem, Order, Product, User
from storefront.services import order_service
from storefront.validation import InsufficientStockError


BUYERS = 10
STOCK = 5


@pytest.fixture
def file_app(tmp_path):
    app = create_app({**TEST_CONFIG, "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'shop.sqlite3'}"})
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


def _seed(app):
    with app.app_context():
        product = Product(name="Last Units", slug="last-units", price_cents=1000, stock=STOCK, images=[], tags=[])
        db.session.add(product)
        db.session.flush()

        user_ids = []
        for n in range(BUYERS):
            user = User(name=f"Buyer {n}", email=f"buyer{n}@example.com", password_hash=TEST_PASSWORD_HASH)
            db.session.add(user)
            db.session.flush()
            db.session.add(Cart(user_id=user.id, items=[CartItem(product_id=product.id, quantity=1)]))
            user_ids.append(user.id)

        db.session.commit()
        return product.id, user_ids


class TestConcurrentCheckout:

    def test_no_oversell_and_unique_numbers(self, file_app):
        product_id, user_ids = _seed(file_app)

        results = []
        errors = []
        lock = threading.Lock()
        start = threading.Barrier(len(user_ids))

        def buy(user_id):
            with file_app.app_context():
                start.wait()
                try:
                    result = order_service.checkout(user_id, VALID_CHECKOUT)
                    with lock:
                        results.append(result["order"].order_number)
                except InsufficientStockError:
                    with lock:
                        errors.append(user_id)

        threads = [threading.Thread(target=buy, args=(uid,)) for uid in user_ids]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert len(results) == STOCK
        assert len(errors) == BUYERS - STOCK
        assert len(set(results)) == STOCK

        with file_app.app_context():
            assert db.session.get(Product, product_id).stock == 0
            assert db.session.query(Order).count() == STOCK
