"""
Catalog service tests: pricing, listing filters, product and category CRUD.
"""

import pytest

from storefront.models import CartItem, Category, OrderItem, Product, WishlistItem
from storefront.services import cart_service, catalog_service, wishlist_service
from storefront.validation import ConflictError, NotFoundError, ValidationError, enforce_rules_product


class TestPricing:

    @pytest.mark.parametrize(
        "price,on_sale,discount,expected",
        [
            (1000, False, 20, 1000),
            (1000, True, 0, 1000),
            (1000, True, 20, 800),
            (999, True, 15, 849),
            (1, True, 50, 1),
            (1000, True, 100, 0),
        ],
    )
    def test_sale_price(self, price, on_sale, discount, expected):
        product = Product(price_cents=price, is_on_sale=on_sale, discount=discount)
        assert product.sale_price_cents == expected
        assert product.discount_amount_cents == price - expected


class TestListProducts:

    def test_hides_inactive(self, db_session, make_product):
        make_product(name="Visible")
        make_product(name="Hidden", is_active=False)

        names = [p["name"] for p in catalog_service.list_products()["items"]]
        assert names == ["Visible"]

    def test_filters(self, db_session, make_product, category):
        make_product(name="Blue Vase", price_cents=1500, category_id=category.id, featured=True)
        make_product(name="Red Lamp", price_cents=500, is_on_sale=True, discount=10)
        make_product(name="Green Vase", price_cents=3000)

        def names(**kw):
            return sorted(p["name"] for p in catalog_service.list_products(**kw)["items"])

        assert names(search="vase") == ["Blue Vase", "Green Vase"]
        assert names(category="home") == ["Blue Vase"]
        assert names(category=str(category.id)) == ["Blue Vase"]
        assert names(min_price=1000, max_price=2000) == ["Blue Vase"]
        assert names(featured=True) == ["Blue Vase"]
        assert names(on_sale=True) == ["Red Lamp"]

    def test_sort_and_paginate(self, db_session, make_product):
        for price in (300, 100, 200):
            make_product(price_cents=price)

        page = catalog_service.list_products(sort_by="price", sort_order="asc", per_page=2)

        assert [p["price_cents"] for p in page["items"]] == [100, 200]
        assert page["pagination"]["total"] == 3
        assert page["pagination"]["has_next"] is True

    def test_bad_sort(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.list_products(sort_by="colour")

    def test_unknown_category(self, db_session):
        with pytest.raises(NotFoundError):
            catalog_service.list_products(category="nope")


class TestProductWrites:

    def test_create_generates_slug(self, db_session):
        first = catalog_service.create_product(patch={"name": "Café Mug", "price_cents": 800})
        second = catalog_service.create_product(patch={"name": "Cafe Mug", "price_cents": 900})

        assert first.slug == "cafe-mug"
        assert second.slug == "cafe-mug-2"

    def test_duplicate_sku(self, db_session):
        catalog_service.create_product(patch={"name": "Mug", "price_cents": 800, "sku": "MUG-1"})
        with pytest.raises(ConflictError):
            catalog_service.create_product(patch={"name": "Other Mug", "price_cents": 800, "sku": "MUG-1"})

    def test_update(self, db_session, make_product):
        product = make_product(price_cents=1000)
        updated = catalog_service.update_product(product_id=product.id, patch={"price_cents": 1200})
        assert updated.price_cents == 1200

    def test_update_unknown(self, db_session):
        with pytest.raises(NotFoundError):
            catalog_service.update_product(product_id=31337, patch={"price_cents": 1})

    def test_delete_detaches_references(self, db_session, customer, make_product, placed_order):
        vase = db_session.query(Product).filter_by(name="Vase").one()
        cart_service.add_to_cart(customer.id, vase.id, 1)
        wishlist_service.add_to_wishlist(customer.id, vase.id)

        catalog_service.delete_product(product_id=vase.id)

        assert db_session.get(Product, vase.id) is None
        assert db_session.query(CartItem).count() == 0
        assert db_session.query(WishlistItem).count() == 0
        snapshot = db_session.query(OrderItem).filter_by(name="Vase").one()
        assert snapshot.product_id is None
        assert snapshot.unit_price_cents == 1000

    @pytest.mark.parametrize(
        "patch",
        [
            {"price_cents": -1},
            {"price_cents": 1_000_000_000},
            {"discount": 101},
            {"stock": -5},
            {"rating": 6.0},
            {"name": "X"},
        ],
    )
    def test_business_rules(self, patch):
        with pytest.raises(ValidationError):
            enforce_rules_product(patch)


class TestCategories:

    def test_create_and_fetch(self, db_session):
        created = catalog_service.create_category(patch={"name": "Home & Garden"})

        assert created.slug == "home-garden"
        assert catalog_service.get_category_by_slug("home-garden").id == created.id

    def test_duplicate_name(self, db_session, category):
        with pytest.raises(ConflictError):
            catalog_service.create_category(patch={"name": "Home"})

    def test_delete_refused_while_in_use(self, db_session, category, make_product):
        make_product(category_id=category.id)

        with pytest.raises(ConflictError):
            catalog_service.delete_category(category_id=category.id)
        assert db_session.get(Category, category.id) is not None

    def test_delete_unused(self, db_session, category):
        catalog_service.delete_category(category_id=category.id)
        assert db_session.query(Category).count() == 0

    def test_list_hides_inactive(self, db_session, category):
        db_session.add(Category(name="Archived", slug="archived", is_active=False))
        db_session.commit()

        assert [c["slug"] for c in catalog_service.list_categories()] == ["home"]
        assert len(catalog_service.list_categories(include_inactive=True)) == 2
