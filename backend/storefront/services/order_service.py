# Overview: Checkout (cart -> order), order queries and the order status lifecycle.

"""
Order Service

CHECKOUT UNIT OF WORK:
1. Take the write lock (BEGIN IMMEDIATE on SQLite, FOR UPDATE elsewhere)
2. Reject an empty cart
3. Pre-validate stock for every line, aggregated per product
4. Snapshot lines into OrderItems, allocate the order number
5. Decrement stock with conditional UPDATEs
6. Store the WhatsApp summary, clear the cart, commit once

Any failure rolls the whole unit back: no order row, no sequence
allocation, no partial decrement.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Cart, Order, OrderItem, Product, User
from ..models.orders import ORDER_STATUSES, PAYMENT_STATUSES
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    PermissionDeniedError,
    ShopError,
    ValidationError,
    enforce_rules_cancellation,
    enforce_rules_checkout,
    parse_optional_datetime,
)
from .concurrency import RETRYABLE_ERRORS, begin_write_transaction, lock_for_update, run_with_retry
from .notification_service import build_whatsapp_link, format_order_message
from .sequence_service import next_order_number
from .stock_service import decrease_stock

# Unique constraints hit when two checkouts race for the same order number;
# matched by constraint name (PostgreSQL) or table.column (SQLite).
ORDER_NUMBER_CONSTRAINTS = (
    "uq_orders_order_number",
    "uq_order_sequences_day",
    "orders.order_number",
    "order_sequences.day_key",
)

ORDER_SORT_COLUMNS = {
    "created_at": Order.created_at,
    "total": Order.total_amount_cents,
    "status": Order.status,
    "order_number": Order.order_number,
}


def _store_name() -> str:
    return current_app.config.get("STORE_NAME", "Esperança de Amor E-commerce")


def _whatsapp_number() -> str:
    return current_app.config.get("WHATSAPP_PHONE_NUMBER", "244922706107")


def _is_order_number_collision(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return any(marker in message for marker in ORDER_NUMBER_CONSTRAINTS)


def _validate_stock(requested: dict[int, int]) -> None:
    """All-or-nothing stock check before any decrement is attempted."""
    rows = (
        db.session.query(Product.id, Product.name, Product.stock)
        .filter(Product.id.in_(list(requested)))
        .all()
    )
    on_hand = {r.id: r for r in rows}

    insufficient = []
    for product_id, qty in requested.items():
        row = on_hand.get(product_id)
        available = row.stock if row else 0
        if available < qty:
            insufficient.append({
                "product_id": product_id,
                "name": row.name if row else None,
                "requested": qty,
                "available": available,
            })

    if insufficient:
        names = ", ".join(i["name"] or str(i["product_id"]) for i in insufficient)
        raise InsufficientStockError(
            f"Insufficient stock for {names}",
            details={"items": insufficient},
        )


def _checkout_locked(user_id: int, cleaned: dict) -> Order:
    cart = lock_for_update(db.session.query(Cart).filter_by(user_id=user_id)).first()
    if cart is None or cart.is_empty:
        raise ValidationError("Cart is empty")

    requested: dict[int, int] = {}
    order_items: list[OrderItem] = []
    for item in cart.items:
        product = item.product
        if product is None or not product.is_active:
            raise ValidationError(
                "A product in your cart is no longer available",
                details={"product_id": item.product_id},
            )
        requested[product.id] = requested.get(product.id, 0) + item.quantity
        order_items.append(OrderItem(
            product_id=product.id,
            name=product.name,
            unit_price_cents=item.unit_price_cents,
            quantity=item.quantity,
            total_cents=item.line_total_cents,
        ))

    _validate_stock(requested)

    address = cleaned["shipping_address"]
    order = Order(
        order_number=next_order_number(),
        user_id=user_id,
        total_amount_cents=sum(i.total_cents for i in order_items),
        status="pending",
        payment_status="pending",
        payment_method=cleaned["payment_method"],
        notes=cleaned["notes"],
        shipping_street=address["street"],
        shipping_city=address["city"],
        shipping_state=address["state"],
        shipping_zip_code=address["zip_code"],
        shipping_country=address["country"],
        shipping_phone=address["phone"],
        items=order_items,
    )
    db.session.add(order)
    db.session.flush()

    # Pre-validated above; the conditional UPDATE still guards the last unit
    for product_id, qty in requested.items():
        decrease_stock(product_id, qty)

    order.whatsapp_message = format_order_message(order, store_name=_store_name())
    cart.clear()

    db.session.commit()
    return order


def checkout(user_id: int, data: dict) -> dict:
    """
    Convert the user's cart into a pending order.

    Returns {"order": Order, "whatsapp_link": str, "whatsapp_message": str}.

    Raises:
        ValidationError: bad payload, empty cart, unavailable product
        InsufficientStockError: any line exceeds current stock
        ConflictError: order number could not be allocated after retries,
            or another constraint rejected the order
    """
    cleaned = enforce_rules_checkout(data)

    def _op() -> Order:
        begin_write_transaction()
        try:
            return _checkout_locked(user_id, cleaned)
        except ShopError:
            db.session.rollback()
            raise
        except IntegrityError as exc:
            if _is_order_number_collision(exc):
                raise
            db.session.rollback()
            current_app.logger.warning("Checkout integrity failure user_id=%s: %s", user_id, exc.orig)
            raise ConflictError("Checkout conflicted with a concurrent change, please retry")

    try:
        order = run_with_retry(_op, retry_on=RETRYABLE_ERRORS + (IntegrityError,))
    except IntegrityError:
        raise ConflictError("Could not allocate a unique order number, please retry")

    current_app.logger.info(
        "Checkout completed order=%s user_id=%s total_cents=%s",
        order.order_number, user_id, order.total_amount_cents,
    )
    return {
        "order": order,
        "whatsapp_link": build_whatsapp_link(_whatsapp_number(), order.whatsapp_message),
        "whatsapp_message": order.whatsapp_message,
    }


def _page(query, page: int, per_page: int) -> dict:
    per_page = min(max(per_page or 10, 1), 100)
    page = max(page or 1, 1)
    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    rows = query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [o.to_dict() for o in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def _check_status_filter(status: str | None) -> None:
    if status and status not in ORDER_STATUSES:
        raise ValidationError(f"Invalid status: {status}", details={"allowed": list(ORDER_STATUSES)})


def list_user_orders(user_id: int, *, status: str | None = None, page: int = 1, per_page: int = 10) -> dict:
    """A user's own orders, newest first."""
    _check_status_filter(status)
    query = db.session.query(Order).filter(Order.user_id == user_id)
    if status:
        query = query.filter(Order.status == status)
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    return _page(query, page, per_page)


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def get_order_for(user: User, order_id: int) -> Order:
    """Owner or admin only."""
    order = get_order(order_id)
    if order.user_id != user.id and not user.is_admin:
        raise PermissionDeniedError("Not authorized to access this order")
    return order


def admin_list_orders(
    *,
    status: str | None = None,
    payment_status: str | None = None,
    search: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = 1,
    per_page: int = 20,
) -> dict:
    _check_status_filter(status)
    if payment_status and payment_status not in PAYMENT_STATUSES:
        raise ValidationError(f"Invalid payment_status: {payment_status}")

    query = db.session.query(Order).join(User, Order.user_id == User.id)
    if status:
        query = query.filter(Order.status == status)
    if payment_status:
        query = query.filter(Order.payment_status == payment_status)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Order.order_number.ilike(like),
            User.name.ilike(like),
            User.email.ilike(like),
        ))

    column = ORDER_SORT_COLUMNS.get(sort_by)
    if column is None:
        raise ValidationError(f"sort_by must be one of: {', '.join(sorted(ORDER_SORT_COLUMNS))}")
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sort_order must be asc or desc")
    query = query.order_by(column.asc() if sort_order == "asc" else column.desc(), Order.id.desc())

    return _page(query, page, per_page)


def update_order_status(
    order_id: int,
    *,
    actor: User,
    status: str,
    estimated_delivery=None,
    notes: str | None = None,
    cancellation_reason: str | None = None,
) -> Order:
    """
    Admin status change through the transition table.

    Moving to cancelled requires a 5-200 character cancellation_reason.
    Cancelling never restocks.
    """
    if not status:
        raise ValidationError("Status is required")

    eta = parse_optional_datetime(estimated_delivery, "estimated_delivery")
    reason = enforce_rules_cancellation(cancellation_reason) if status == "cancelled" else None

    if notes is not None:
        notes = str(notes).strip()
        if len(notes) > 500:
            raise ValidationError("notes cannot exceed 500 characters")

    def _op() -> Order:
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError("Order not found", details={"order_id": order_id})

        previous = order.status
        changed = order.update_status(status, actor_id=actor.id)
        if changed and reason:
            order.cancellation_reason = reason
        if eta is not None:
            order.estimated_delivery = eta
        if notes is not None:
            order.notes = notes or None

        db.session.commit()
        if changed:
            current_app.logger.info(
                "Order %s status %s -> %s by user_id=%s",
                order.order_number, previous, status, actor.id,
            )
        return order

    return run_with_retry(_op)


def cancel_order(order_id: int, *, actor: User, reason) -> Order:
    """Owner or admin cancels a non-terminal order. Stock is not restored."""
    reason = enforce_rules_cancellation(reason)

    def _op() -> Order:
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError("Order not found", details={"order_id": order_id})
        if order.user_id != actor.id and not actor.is_admin:
            raise PermissionDeniedError("Not authorized to cancel this order")
        if order.is_terminal:
            raise ValidationError("Order cannot be cancelled", details={"status": order.status})

        order.update_status("cancelled", actor_id=actor.id)
        order.cancellation_reason = reason
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Order %s cancelled by user_id=%s", order.order_number, actor.id)
    return order


def update_payment_status(order_id: int, payment_status: str) -> Order:
    if payment_status not in PAYMENT_STATUSES:
        raise ValidationError(
            f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}"
        )

    def _op() -> Order:
        order = get_order(order_id)
        order.payment_status = payment_status
        db.session.commit()
        return order

    return run_with_retry(_op)


def mark_whatsapp_sent(order_id: int) -> Order:
    def _op() -> Order:
        order = get_order(order_id)
        order.whatsapp_sent = True
        order.whatsapp_sent_at = utcnow()
        db.session.commit()
        return order

    return run_with_retry(_op)


def regenerate_whatsapp(order_id: int) -> dict:
    """Rebuild the summary text from the stored snapshot and return a fresh link."""
    def _op() -> Order:
        order = get_order(order_id)
        order.whatsapp_message = format_order_message(order, store_name=_store_name())
        db.session.commit()
        return order

    order = run_with_retry(_op)
    return {
        "order": order,
        "whatsapp_link": build_whatsapp_link(_whatsapp_number(), order.whatsapp_message),
        "whatsapp_message": order.whatsapp_message,
    }
