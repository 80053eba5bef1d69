from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ..validation import NotFoundError, ValidationError, coerce_int


class Cart(db.Model):
    """
    Per-user shopping cart aggregate.

    WHY: Created lazily on first access, emptied at checkout or on explicit
    clear, never deleted otherwise. Totals are computed from the live product
    rows, so a price change before checkout is reflected immediately; checkout
    freezes prices into OrderItem snapshots.

    INVARIANT: at most one CartItem per (cart, product); adding merges.
    """
    __tablename__ = "carts"
    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_carts_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    user = db.relationship("User", backref=db.backref("cart", uselist=False, lazy=True))
    items = db.relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
        lazy="selectin",
    )

    def touch(self) -> None:
        self.updated_at = utcnow()

    def find_item(self, product_id: int) -> "CartItem | None":
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    def add_item(self, product_id: int, quantity: int = 1) -> "CartItem":
        quantity = coerce_int(quantity, "quantity")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        item = self.find_item(product_id)
        if item is not None:
            item.quantity += quantity
        else:
            item = CartItem(product_id=product_id, quantity=quantity, added_at=utcnow())
            self.items.append(item)

        self.touch()
        return item

    def remove_item(self, product_id: int) -> bool:
        item = self.find_item(product_id)
        if item is None:
            return False
        self.items.remove(item)
        self.touch()
        return True

    def update_quantity(self, product_id: int, quantity: int) -> "CartItem | None":
        """Set a line's quantity; zero or below removes the line."""
        quantity = coerce_int(quantity, "quantity")
        if quantity <= 0:
            self.remove_item(product_id)
            return None

        item = self.find_item(product_id)
        if item is None:
            raise NotFoundError("Item not found in cart", details={"product_id": product_id})

        item.quantity = quantity
        self.touch()
        return item

    def clear(self) -> None:
        self.items.clear()
        self.touch()

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def total_price_cents(self) -> int:
        return sum(item.line_total_cents for item in self.items)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "items": [item.to_dict() for item in self.items],
            "item_count": self.item_count,
            "total_price_cents": self.total_price_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CartItem(db.Model):
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
        db.CheckConstraint("quantity >= 1", name="ck_cart_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    added_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    cart = db.relationship("Cart", back_populates="items")
    product = db.relationship("Product")

    @property
    def unit_price_cents(self) -> int:
        return self.product.effective_price_cents

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_dict() if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents if self.product else None,
            "line_total_cents": self.line_total_cents if self.product else None,
            "added_at": to_utc_z(self.added_at),
        }
