# Overview: Per-user wishlist operations.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Wishlist, WishlistItem
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError


def _find_wishlist(user_id: int) -> Wishlist | None:
    return db.session.query(Wishlist).filter_by(user_id=user_id).first()


def get_or_create_wishlist(user_id: int) -> Wishlist:
    wishlist = _find_wishlist(user_id)
    if wishlist is None:
        wishlist = Wishlist(user_id=user_id)
        db.session.add(wishlist)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Wishlist was created by another request, please retry", details={"user_id": user_id})
    return wishlist


def get_wishlist(user_id: int) -> Wishlist:
    wishlist = get_or_create_wishlist(user_id)
    db.session.commit()
    return wishlist


def add_to_wishlist(user_id: int, product_id: int) -> Wishlist:
    if db.session.get(Product, product_id) is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})

    wishlist = get_or_create_wishlist(user_id)
    if wishlist.has_product(product_id):
        raise ConflictError("Product already in wishlist", details={"product_id": product_id})

    wishlist.items.append(WishlistItem(product_id=product_id, added_at=utcnow()))
    wishlist.updated_at = utcnow()
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Product already in wishlist", details={"product_id": product_id})
    return wishlist


def remove_from_wishlist(user_id: int, product_id: int) -> Wishlist:
    wishlist = get_or_create_wishlist(user_id)
    item = next((i for i in wishlist.items if i.product_id == product_id), None)
    if item is None:
        raise NotFoundError("Product not in wishlist", details={"product_id": product_id})

    wishlist.items.remove(item)
    wishlist.updated_at = utcnow()
    db.session.commit()
    return wishlist


def clear_wishlist(user_id: int) -> Wishlist:
    wishlist = get_or_create_wishlist(user_id)
    wishlist.items.clear()
    wishlist.updated_at = utcnow()
    db.session.commit()
    return wishlist


def is_in_wishlist(user_id: int, product_id: int) -> bool:
    wishlist = _find_wishlist(user_id)
    return bool(wishlist and wishlist.has_product(product_id))


def wishlist_count(user_id: int) -> int:
    wishlist = _find_wishlist(user_id)
    return len(wishlist.items) if wishlist else 0
