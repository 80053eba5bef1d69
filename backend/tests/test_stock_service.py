"""
Stock service tests.

decrease_stock is a conditional UPDATE: it either removes every requested
unit or nothing.
"""

import pytest

from storefront.models import Product
from storefront.services import stock_service
from storefront.validation import InsufficientStockError, NotFoundError, ValidationError


class TestDecreaseStock:

    def test_decrements(self, db_session, make_product):
        product = make_product(stock=5)

        stock_service.decrease_stock(product.id, 3)
        db_session.commit()

        assert db_session.get(Product, product.id).stock == 2

    def test_exact_remaining_reaches_zero(self, db_session, make_product):
        product = make_product(stock=2)

        stock_service.decrease_stock(product.id, 2)
        db_session.commit()

        assert db_session.get(Product, product.id).stock == 0

    def test_insufficient_leaves_stock_untouched(self, db_session, make_product):
        product = make_product(name="Lamp", stock=1)

        with pytest.raises(InsufficientStockError) as exc:
            stock_service.decrease_stock(product.id, 2)
        db_session.rollback()

        assert exc.value.details == {"product_id": product.id, "requested": 2, "available": 1}
        assert db_session.get(Product, product.id).stock == 1

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            stock_service.decrease_stock(123456, 1)

    @pytest.mark.parametrize("quantity", [0, -1, "abc", 1.5])
    def test_rejects_bad_quantity(self, db_session, make_product, quantity):
        product = make_product(stock=5)
        with pytest.raises(ValidationError):
            stock_service.decrease_stock(product.id, quantity)

    def test_bumps_version(self, db_session, make_product):
        product = make_product(stock=5)
        before = product.version_id

        stock_service.decrease_stock(product.id, 1)
        db_session.commit()

        assert db_session.get(Product, product.id).version_id == before + 1


class TestIncreaseStock:

    def test_increments(self, db_session, make_product):
        product = make_product(stock=0)

        stock_service.increase_stock(product.id, 4)
        db_session.commit()

        assert db_session.get(Product, product.id).stock == 4

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            stock_service.increase_stock(123456, 1)


class TestAdjustStock:

    def test_positive_delta_restocks(self, db_session, make_product):
        product = make_product(stock=1)
        updated = stock_service.adjust_stock(product.id, 9)
        assert updated.stock == 10

    def test_negative_delta_removes(self, db_session, make_product):
        product = make_product(stock=10)
        updated = stock_service.adjust_stock(product.id, -4)
        assert updated.stock == 6

    def test_cannot_go_below_zero(self, db_session, make_product):
        product = make_product(stock=2)
        with pytest.raises(InsufficientStockError):
            stock_service.adjust_stock(product.id, -3)
        db_session.rollback()
        assert db_session.get(Product, product.id).stock == 2

    @pytest.mark.parametrize("delta", [0, True, "5"])
    def test_rejects_bad_delta(self, db_session, make_product, delta):
        product = make_product()
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(product.id, delta)
