# Overview: Cart operations for the signed-in user; stock-aware wrapper around the Cart aggregate.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Cart, Product
from ..validation import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
    coerce_int,
    require_quantity,
)


def _find_cart(user_id: int) -> Cart | None:
    return db.session.query(Cart).filter_by(user_id=user_id).first()


def get_or_create_cart(user_id: int) -> Cart:
    """
    Carts are created lazily on first access.

    Losing the creation race to a concurrent request raises ConflictError.
    """
    cart = _find_cart(user_id)
    if cart is None:
        cart = Cart(user_id=user_id)
        db.session.add(cart)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Cart was created by another request, please retry", details={"user_id": user_id})
    return cart


def _commit_cart(cart: Cart) -> Cart:
    cart_id = cart.id
    # uq_cart_items_cart_product: a concurrent request added the same product first
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Cart was modified by another request, please retry", details={"cart_id": cart_id})
    return cart


def _require_sellable(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    if not product.is_active:
        raise ValidationError("Product is not available", details={"product_id": product_id})
    return product


def _ensure_stock(product: Product, wanted: int) -> None:
    if wanted > product.stock:
        raise InsufficientStockError(
            f"Only {product.stock} items available in stock",
            details={"product_id": product.id, "requested": wanted, "available": product.stock},
        )


def get_cart(user_id: int) -> Cart:
    cart = get_or_create_cart(user_id)
    return _commit_cart(cart)


def add_to_cart(user_id: int, product_id: int, quantity=1) -> Cart:
    """
    Add quantity units of product_id, merging into an existing line.

    The resulting line quantity must not exceed current stock.
    """
    quantity = require_quantity(quantity)
    product = _require_sellable(product_id)
    cart = get_or_create_cart(user_id)

    existing = cart.find_item(product_id)
    already = existing.quantity if existing else 0
    _ensure_stock(product, already + quantity)

    cart.add_item(product_id, quantity)
    return _commit_cart(cart)


def update_cart_item(user_id: int, product_id: int, quantity) -> Cart:
    """Set a line's quantity; zero or below removes the line."""
    cart = get_or_create_cart(user_id)

    if quantity is None:
        raise ValidationError("quantity is required")

    # Stock is only checked when the line stays in the cart
    qty = coerce_int(quantity, "quantity")
    if qty > 0:
        if cart.find_item(product_id) is None:
            raise NotFoundError("Item not found in cart", details={"product_id": product_id})
        _ensure_stock(_require_sellable(product_id), qty)

    cart.update_quantity(product_id, qty)
    return _commit_cart(cart)


def remove_from_cart(user_id: int, product_id: int) -> Cart:
    cart = get_or_create_cart(user_id)
    cart.remove_item(product_id)
    return _commit_cart(cart)


def clear_cart(user_id: int) -> Cart:
    cart = get_or_create_cart(user_id)
    cart.clear()
    return _commit_cart(cart)


def cart_summary(user_id: int) -> dict:
    cart = _commit_cart(get_or_create_cart(user_id))
    return {
        "item_count": cart.item_count,
        "total_price_cents": cart.total_price_cents,
        "items": [
            {
                "product_id": item.product_id,
                "name": item.product.name,
                "quantity": item.quantity,
                "unit_price_cents": item.unit_price_cents,
                "line_total_cents": item.line_total_cents,
            }
            for item in cart.items
        ],
    }
