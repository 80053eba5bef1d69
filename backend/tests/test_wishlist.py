"""
Wishlist tests.
"""

import pytest

from storefront.models import Wishlist
from storefront.services import wishlist_service
from storefront.validation import ConflictError, NotFoundError


class TestWishlist:

    def test_created_lazily_once(self, db_session, customer):
        first = wishlist_service.get_wishlist(customer.id)
        second = wishlist_service.get_wishlist(customer.id)

        assert first.id == second.id
        assert db_session.query(Wishlist).count() == 1

    def test_add_and_check(self, db_session, customer, make_product):
        product = make_product()

        wishlist_service.add_to_wishlist(customer.id, product.id)

        assert wishlist_service.is_in_wishlist(customer.id, product.id)
        assert wishlist_service.wishlist_count(customer.id) == 1

    def test_duplicate_conflicts(self, db_session, customer, make_product):
        product = make_product()
        wishlist_service.add_to_wishlist(customer.id, product.id)

        with pytest.raises(ConflictError):
            wishlist_service.add_to_wishlist(customer.id, product.id)
        assert wishlist_service.wishlist_count(customer.id) == 1

    def test_unknown_product(self, db_session, customer):
        with pytest.raises(NotFoundError):
            wishlist_service.add_to_wishlist(customer.id, 424242)

    def test_remove(self, db_session, customer, make_product):
        product = make_product()
        wishlist_service.add_to_wishlist(customer.id, product.id)

        wishlist = wishlist_service.remove_from_wishlist(customer.id, product.id)

        assert wishlist.items == []
        assert not wishlist_service.is_in_wishlist(customer.id, product.id)

    def test_remove_missing(self, db_session, customer, make_product):
        with pytest.raises(NotFoundError):
            wishlist_service.remove_from_wishlist(customer.id, make_product().id)

    def test_clear(self, db_session, customer, make_product):
        wishlist_service.add_to_wishlist(customer.id, make_product().id)
        wishlist_service.add_to_wishlist(customer.id, make_product().id)

        wishlist_service.clear_wishlist(customer.id)

        assert wishlist_service.wishlist_count(customer.id) == 0

    def test_count_without_wishlist(self, db_session, customer):
        assert wishlist_service.wishlist_count(customer.id) == 0
        assert not wishlist_service.is_in_wishlist(customer.id, 1)

    def test_wishlists_are_per_user(self, db_session, customer, make_user, make_product):
        other = make_user(email="other@example.com")
        product = make_product()
        wishlist_service.add_to_wishlist(customer.id, product.id)

        assert not wishlist_service.is_in_wishlist(other.id, product.id)

    def test_lazy_create_race_conflicts(self, db_session, customer, make_product, monkeypatch):
        existing = wishlist_service.get_wishlist(customer.id)
        product = make_product()
        # Another request created the wishlist after this one looked
        monkeypatch.setattr(wishlist_service, "_find_wishlist", lambda user_id: None)

        with pytest.raises(ConflictError):
            wishlist_service.add_to_wishlist(customer.id, product.id)

        monkeypatch.undo()
        assert db_session.query(Wishlist).count() == 1
        assert wishlist_service.get_wishlist(customer.id).id == existing.id
