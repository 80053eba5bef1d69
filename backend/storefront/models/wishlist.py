from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Wishlist(db.Model):
    """One wishlist per user, created lazily."""
    __tablename__ = "wishlists"
    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_wishlists_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    user = db.relationship("User", backref=db.backref("wishlist", uselist=False, lazy=True))
    items = db.relationship(
        "WishlistItem",
        back_populates="wishlist",
        cascade="all, delete-orphan",
        order_by="WishlistItem.id",
        lazy="selectin",
    )

    def has_product(self, product_id: int) -> bool:
        return any(item.product_id == product_id for item in self.items)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "items": [item.to_dict() for item in self.items],
            "item_count": len(self.items),
            "updated_at": to_utc_z(self.updated_at),
        }


class WishlistItem(db.Model):
    __tablename__ = "wishlist_items"
    __table_args__ = (
        db.UniqueConstraint("wishlist_id", "product_id", name="uq_wishlist_items_wishlist_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    wishlist_id = db.Column(db.Integer, db.ForeignKey("wishlists.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    added_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    wishlist = db.relationship("Wishlist", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_dict() if self.product else None,
            "added_at": to_utc_z(self.added_at),
        }
