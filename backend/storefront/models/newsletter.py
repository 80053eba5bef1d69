from __future__ import annotations

import secrets
from datetime import timedelta

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


SUBSCRIPTION_SOURCES = ("homepage", "footer", "other")
PREFERENCE_FIELDS = ("promotions", "new_products", "weekly_newsletter")


def generate_confirmation_token() -> str:
    """32 random bytes, hex encoded (64 chars)."""
    return secrets.token_hex(32)


class PendingSubscriber(db.Model):
    """
    Double opt-in: an email waiting for its confirmation link to be clicked.

    Rows expire 24 hours after the token is issued and are purged on the
    next subscribe call or by the maintenance CLI.
    """
    __tablename__ = "pending_subscribers"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_pending_subscribers_email"),
        db.UniqueConstraint("confirmation_token", name="uq_pending_subscribers_token"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=True)

    confirmation_token = db.Column(db.String(64), nullable=False, index=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    source = db.Column(db.String(16), nullable=False, default="homepage")
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def is_expired(self, now=None) -> bool:
        return self.expires_at <= (now or utcnow())

    def regenerate_token(self, ttl_hours: int = 24, now=None) -> str:
        self.confirmation_token = generate_confirmation_token()
        self.expires_at = (now or utcnow()) + timedelta(hours=ttl_hours)
        return self.confirmation_token

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "expires_at": to_utc_z(self.expires_at),
            "source": self.source,
            "created_at": to_utc_z(self.created_at),
        }


class NewsletterSubscriber(db.Model):
    """Confirmed newsletter subscriber with per-topic preferences."""
    __tablename__ = "newsletter_subscribers"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_newsletter_subscribers_email"),
        db.Index("ix_newsletter_subscribers_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    subscribed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    unsubscribed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resubscribed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    last_email_sent = db.Column(db.DateTime(timezone=True), nullable=True)
    email_count = db.Column(db.Integer, nullable=False, default=0)

    pref_promotions = db.Column(db.Boolean, nullable=False, default=True)
    pref_new_products = db.Column(db.Boolean, nullable=False, default=True)
    pref_weekly_newsletter = db.Column(db.Boolean, nullable=False, default=True)

    @property
    def preferences(self) -> dict:
        return {field: getattr(self, f"pref_{field}") for field in PREFERENCE_FIELDS}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "is_active": self.is_active,
            "subscribed_at": to_utc_z(self.subscribed_at),
            "unsubscribed_at": to_utc_z(self.unsubscribed_at),
            "resubscribed_at": to_utc_z(self.resubscribed_at),
            "last_email_sent": to_utc_z(self.last_email_sent),
            "email_count": self.email_count,
            "preferences": self.preferences,
        }
