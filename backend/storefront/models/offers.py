from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


OFFER_TYPES = ("discount", "free_shipping", "buy_one_get_one", "cashback")
DISCOUNT_TYPES = ("percentage", "fixed")


class Offer(db.Model):
    """
    Promotional code managed from the back-office.

    DISCOUNT:
    discount_type "percentage" stores a whole percent (1-100) in
    discount_value; "fixed" stores cents. Offers are advertised and claimed
    but never rewrite checkout totals: payment is settled by hand over
    WhatsApp, so the discount is quoted, not charged.

    USAGE:
    used_count is only advanced by the conditional UPDATE in offer_service,
    so usage_limit holds under concurrent claims.
    """
    __tablename__ = "offers"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_offers_code"),
        db.CheckConstraint("discount_value >= 0", name="ck_offers_discount_value_non_negative"),
        db.CheckConstraint("used_count >= 0", name="ck_offers_used_count_non_negative"),
        db.Index("ix_offers_active_ends", "is_active", "ends_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(1000), nullable=True)
    # Stored upper-cased
    code = db.Column(db.String(32), nullable=False, index=True)

    offer_type = db.Column(db.String(32), nullable=False, default="discount")
    discount_type = db.Column(db.String(16), nullable=False, default="percentage")
    discount_value = db.Column(db.Integer, nullable=False)
    minimum_order_cents = db.Column(db.Integer, nullable=False, default=0)
    maximum_discount_cents = db.Column(db.Integer, nullable=True)

    starts_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    ends_at = db.Column(db.DateTime(timezone=True), nullable=False)

    # NULL means unlimited
    usage_limit = db.Column(db.Integer, nullable=True)
    used_count = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    image_url = db.Column(db.String(500), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    claims = db.relationship("OfferClaim", back_populates="offer", cascade="all, delete-orphan", lazy=True)

    def __repr__(self) -> str:
        return f"<Offer id={self.id} code={self.code!r} used={self.used_count}/{self.usage_limit}>"

    @property
    def limit_reached(self) -> bool:
        return self.usage_limit is not None and self.used_count >= self.usage_limit

    def is_valid(self, now=None) -> bool:
        now = now or utcnow()
        return bool(self.is_active and self.starts_at <= now <= self.ends_at and not self.limit_reached)

    def compute_discount_cents(self, subtotal_cents: int) -> int:
        if subtotal_cents <= 0 or subtotal_cents < self.minimum_order_cents:
            return 0
        if self.discount_type == "percentage":
            discount = (subtotal_cents * self.discount_value + 50) // 100
        else:
            discount = self.discount_value
        discount = min(discount, subtotal_cents)
        if self.maximum_discount_cents is not None:
            discount = min(discount, self.maximum_discount_cents)
        return discount

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "code": self.code,
            "offer_type": self.offer_type,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "minimum_order_cents": self.minimum_order_cents,
            "maximum_discount_cents": self.maximum_discount_cents,
            "starts_at": to_utc_z(self.starts_at),
            "ends_at": to_utc_z(self.ends_at),
            "usage_limit": self.usage_limit,
            "used_count": self.used_count,
            "is_active": self.is_active,
            "is_valid": self.is_valid(),
            "image_url": self.image_url,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OfferClaim(db.Model):
    """One claim per (offer, user)."""
    __tablename__ = "offer_claims"
    __table_args__ = (
        db.UniqueConstraint("offer_id", "user_id", name="uq_offer_claims_offer_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    offer_id = db.Column(db.Integer, db.ForeignKey("offers.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    claimed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    offer = db.relationship("Offer", back_populates="claims")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "offer_id": self.offer_id,
            "user_id": self.user_id,
            "claimed_at": to_utc_z(self.claimed_at),
        }
