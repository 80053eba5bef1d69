from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ..validation import ValidationError


ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")
PAYMENT_METHODS = ("cash_on_delivery", "bank_transfer", "mobile_money")
PAYMENT_STATUSES = ("pending", "paid", "failed")

# Forward moves may skip intermediate states; delivered and cancelled are terminal.
ORDER_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"confirmed", "processing", "shipped", "delivered", "cancelled"}),
    "confirmed": frozenset({"processing", "shipped", "delivered", "cancelled"}),
    "processing": frozenset({"shipped", "delivered", "cancelled"}),
    "shipped": frozenset({"delivered", "cancelled"}),
    "delivered": frozenset(),
    "cancelled": frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in ORDER_TRANSITIONS.items() if not targets)

STATUS_COLORS = {
    "pending": "yellow",
    "confirmed": "blue",
    "processing": "orange",
    "shipped": "purple",
    "delivered": "green",
    "cancelled": "red",
}


def can_transition(current: str, target: str) -> bool:
    if current == target:
        return True
    return target in ORDER_TRANSITIONS.get(current, frozenset())


class Order(db.Model):
    """
    Customer order: an immutable snapshot of the cart at checkout plus a
    status lifecycle.

    LIFECYCLE:
    pending -> confirmed -> processing -> shipped -> delivered
    cancelled is reachable from every non-terminal status.

    WHY: Items are copied (name, unit price, quantity, line total) so later
    catalog edits never rewrite history.
    INVARIANT: total_amount_cents == sum(item.total_cents)
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.CheckConstraint("total_amount_cents >= 0", name="ck_orders_total_non_negative"),
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_payment_status", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # EA + YYYYMMDD + 4-digit per-day sequence
    order_number = db.Column(db.String(32), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    # Shipping address snapshot
    shipping_street = db.Column(db.String(200), nullable=False)
    shipping_city = db.Column(db.String(50), nullable=False)
    shipping_state = db.Column(db.String(100), nullable=True)
    shipping_zip_code = db.Column(db.String(20), nullable=True)
    shipping_country = db.Column(db.String(100), nullable=True)
    shipping_phone = db.Column(db.String(15), nullable=False)

    payment_method = db.Column(db.String(32), nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default="pending")

    notes = db.Column(db.String(500), nullable=True)

    whatsapp_message = db.Column(db.Text, nullable=True)
    whatsapp_sent = db.Column(db.Boolean, nullable=False, default=False)
    whatsapp_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    estimated_delivery = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancellation_reason = db.Column(db.String(200), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("orders", lazy=True))
    cancelled_by = db.relationship("User", foreign_keys=[cancelled_by_user_id])
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy="selectin",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status!r}>"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def status_color(self) -> str:
        return STATUS_COLORS.get(self.status, "gray")

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def shipping_address(self) -> dict:
        return {
            "street": self.shipping_street,
            "city": self.shipping_city,
            "state": self.shipping_state,
            "zip_code": self.shipping_zip_code,
            "country": self.shipping_country,
            "phone": self.shipping_phone,
        }

    def update_status(self, new_status: str, actor_id: int | None = None, *, now=None) -> bool:
        """
        Move the order to new_status.

        Returns False when new_status equals the current status (no-op).
        delivered stamps delivered_at; cancelled stamps cancelled_at and
        cancelled_by. Other moves touch neither.
        """
        if new_status not in ORDER_STATUSES:
            raise ValidationError(
                f"Invalid status: {new_status}",
                details={"allowed": list(ORDER_STATUSES)},
            )
        if new_status == self.status:
            return False
        if not can_transition(self.status, new_status):
            raise ValidationError(
                f"Cannot change order status from {self.status} to {new_status}",
                details={"from": self.status, "to": new_status},
            )

        ts = now or utcnow()
        self.status = new_status
        if new_status == "delivered":
            self.delivered_at = ts
        elif new_status == "cancelled":
            self.cancelled_at = ts
            self.cancelled_by_user_id = actor_id
        return True

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "user": {
                "id": self.user.id,
                "name": self.user.name,
                "email": self.user.email,
                "phone": self.user.phone,
            } if self.user else None,
            "total_amount_cents": self.total_amount_cents,
            "item_count": self.item_count,
            "status": self.status,
            "status_color": self.status_color,
            "shipping_address": self.shipping_address,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "whatsapp_message": self.whatsapp_message,
            "whatsapp_sent": self.whatsapp_sent,
            "whatsapp_sent_at": to_utc_z(self.whatsapp_sent_at),
            "estimated_delivery": to_utc_z(self.estimated_delivery),
            "delivered_at": to_utc_z(self.delivered_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancellation_reason": self.cancellation_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Immutable line snapshot owned by its Order."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    # Nullable: the product may be removed from the catalog later; the snapshot stays
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    name = db.Column(db.String(100), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    order = db.relationship("Order", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "total_cents": self.total_cents,
        }


class OrderSequence(db.Model):
    """
    Atomic per-day order number counter.

    WHY: Deriving the suffix from a count of existing orders races under
    concurrent checkouts; the counter is advanced with a single
    UPDATE ... SET next_number = next_number + 1.
    """
    __tablename__ = "order_sequences"
    __table_args__ = (
        db.UniqueConstraint("day_key", name="uq_order_sequences_day"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    # YYYYMMDD
    day_key = db.Column(db.String(8), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
