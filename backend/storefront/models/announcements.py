from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


ANNOUNCEMENT_TYPES = ("info", "success", "warning", "error", "promotion")
# Lowest first; the public feed sorts by rank descending
ANNOUNCEMENT_PRIORITIES = ("low", "medium", "high", "urgent")
TARGET_AUDIENCES = ("all", "registered", "guests")
DISPLAY_LOCATIONS = ("top", "bottom", "sidebar", "modal")


class Announcement(db.Model):
    """Time-boxed storefront notice shown between starts_at and ends_at while active."""
    __tablename__ = "announcements"
    __table_args__ = (
        db.Index("ix_announcements_active_window", "is_active", "starts_at", "ends_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)

    announcement_type = db.Column(db.String(16), nullable=False, default="info")
    priority = db.Column(db.String(16), nullable=False, default="medium")
    # Integer mirror of priority used for ordering
    priority_rank = db.Column(db.Integer, nullable=False, default=1)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    starts_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    ends_at = db.Column(db.DateTime(timezone=True), nullable=False)

    target_audience = db.Column(db.String(16), nullable=False, default="all")
    display_location = db.Column(db.String(16), nullable=False, default="top")

    # [{"url": ..., "alt": ..., "caption": ...}]
    images = db.Column(db.JSON, nullable=False, default=list)

    views = db.Column(db.Integer, nullable=False, default=0)
    clicks = db.Column(db.Integer, nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def is_currently_active(self, now=None) -> bool:
        now = now or utcnow()
        return bool(self.is_active and self.starts_at <= now <= self.ends_at)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "announcement_type": self.announcement_type,
            "priority": self.priority,
            "is_active": self.is_active,
            "is_currently_active": self.is_currently_active(),
            "starts_at": to_utc_z(self.starts_at),
            "ends_at": to_utc_z(self.ends_at),
            "target_audience": self.target_audience,
            "display_location": self.display_location,
            "images": list(self.images or []),
            "views": self.views,
            "clicks": self.clicks,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
