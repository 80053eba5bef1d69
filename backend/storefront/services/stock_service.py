# Overview: Atomic stock adjustments on Product rows.

"""
Stock Service

WHY: Stock is never updated with read-modify-write. A decrement is a single
conditional UPDATE that only matches while enough units remain, so two
buyers racing for the last unit cannot both succeed.

Neither function commits; the caller owns the unit of work.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Product
from ..validation import InsufficientStockError, NotFoundError, ValidationError, require_quantity
from .concurrency import run_with_retry


def _stock_snapshot(product_id: int):
    return (
        db.session.query(Product.id, Product.name, Product.stock)
        .filter(Product.id == product_id)
        .first()
    )


def decrease_stock(product_id: int, quantity: int) -> None:
    """
    UPDATE products SET stock = stock - q WHERE id = ? AND stock >= q

    Raises:
        ValidationError: quantity < 1
        NotFoundError: product does not exist
        InsufficientStockError: fewer than quantity units remain
    """
    quantity = require_quantity(quantity)

    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity, version_id=Product.version_id + 1)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        return

    row = _stock_snapshot(product_id)
    if row is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    raise InsufficientStockError(
        f"Insufficient stock for {row.name}",
        details={"product_id": product_id, "requested": quantity, "available": row.stock},
    )


def increase_stock(product_id: int, quantity: int) -> None:
    """UPDATE products SET stock = stock + q WHERE id = ?"""
    quantity = require_quantity(quantity)

    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + quantity, version_id=Product.version_id + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise NotFoundError("Product not found", details={"product_id": product_id})


def adjust_stock(product_id: int, delta: int) -> Product:
    """
    Admin stock correction: positive delta restocks, negative delta removes
    units (never below zero). Commits.
    """
    if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
        raise ValidationError("delta must be a non-zero integer")

    def _op() -> Product:
        if delta > 0:
            increase_stock(product_id, delta)
        else:
            decrease_stock(product_id, -delta)
        db.session.commit()
        return db.session.get(Product, product_id)

    product = run_with_retry(_op)
    current_app.logger.info("Stock adjusted product_id=%s delta=%s stock=%s", product_id, delta, product.stock)
    return product
