# Overview: Storefront announcements: public feed with view/click counters and back-office management.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Announcement
from ..models.announcements import (
    ANNOUNCEMENT_PRIORITIES,
    ANNOUNCEMENT_TYPES,
    DISPLAY_LOCATIONS,
    TARGET_AUDIENCES,
)
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError, check_id_list, enforce_rules_announcement

ANNOUNCEMENT_MUTABLE_FIELDS = {
    "title", "content", "announcement_type", "priority",
    "is_active", "starts_at", "ends_at",
    "target_audience", "display_location", "images",
}


def _priority_rank(priority: str) -> int:
    return ANNOUNCEMENT_PRIORITIES.index(priority)


def _live_filter(now):
    return (
        Announcement.is_active.is_(True),
        Announcement.starts_at <= now,
        Announcement.ends_at >= now,
    )


def list_active(*, location: str | None = None, audience: str | None = None, now=None) -> list[dict]:
    """Live announcements, most urgent first, then newest."""
    if location is not None and location not in DISPLAY_LOCATIONS:
        raise ValidationError(f"location must be one of: {', '.join(DISPLAY_LOCATIONS)}")
    if audience is not None and audience not in TARGET_AUDIENCES:
        raise ValidationError(f"audience must be one of: {', '.join(TARGET_AUDIENCES)}")

    query = db.session.query(Announcement).filter(*_live_filter(now or utcnow()))
    if location is not None:
        query = query.filter(Announcement.display_location == location)
    if audience is not None and audience != "all":
        query = query.filter(Announcement.target_audience.in_(("all", audience)))

    rows = query.order_by(
        Announcement.priority_rank.desc(),
        Announcement.created_at.desc(),
        Announcement.id.desc(),
    ).all()
    return [a.to_dict() for a in rows]


def get_announcement(announcement_id: int) -> Announcement:
    announcement = db.session.get(Announcement, announcement_id)
    if announcement is None:
        raise NotFoundError("Announcement not found", details={"announcement_id": announcement_id})
    return announcement


def get_public_announcement(announcement_id: int) -> Announcement:
    announcement = get_announcement(announcement_id)
    if not announcement.is_currently_active():
        raise NotFoundError("Announcement not found", details={"announcement_id": announcement_id})
    return announcement


def _bump(announcement_id: int, column: str) -> None:
    counter = getattr(Announcement, column)
    result = db.session.execute(
        update(Announcement)
        .where(Announcement.id == announcement_id)
        .values({column: counter + 1})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.rollback()
        raise NotFoundError("Announcement not found", details={"announcement_id": announcement_id})
    db.session.commit()


def record_view(announcement_id: int) -> None:
    _bump(announcement_id, "views")


def record_click(announcement_id: int) -> None:
    _bump(announcement_id, "clicks")


def list_announcements(
    *,
    search: str | None = None,
    announcement_type: str | None = None,
    priority: str | None = None,
    is_active: bool | None = None,
    page: int = 1,
    per_page: int = 10,
) -> dict:
    if announcement_type and announcement_type not in ANNOUNCEMENT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(ANNOUNCEMENT_TYPES)}")
    if priority and priority not in ANNOUNCEMENT_PRIORITIES:
        raise ValidationError(f"priority must be one of: {', '.join(ANNOUNCEMENT_PRIORITIES)}")

    query = db.session.query(Announcement)
    if announcement_type:
        query = query.filter(Announcement.announcement_type == announcement_type)
    if priority:
        query = query.filter(Announcement.priority == priority)
    if is_active is not None:
        query = query.filter(Announcement.is_active.is_(is_active))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(Announcement.title.ilike(like), Announcement.content.ilike(like)))
    query = query.order_by(Announcement.created_at.desc(), Announcement.id.desc())

    per_page = min(max(per_page or 10, 1), 100)
    page = max(page or 1, 1)
    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    rows = query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [a.to_dict() for a in rows],
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


def _apply(announcement: Announcement, patch: dict) -> None:
    for k, v in patch.items():
        if k in ANNOUNCEMENT_MUTABLE_FIELDS:
            setattr(announcement, k, v)
    announcement.priority_rank = _priority_rank(announcement.priority)


def create_announcement(*, patch: dict, actor_id: int | None = None) -> Announcement:
    enforce_rules_announcement(patch)
    announcement = Announcement(
        created_by_user_id=actor_id,
        priority="medium",
        starts_at=utcnow(),
        images=[],
        views=0,
        clicks=0,
    )
    _apply(announcement, patch)
    db.session.add(announcement)
    db.session.commit()
    current_app.logger.info("Created announcement id=%s", announcement.id)
    return announcement


def update_announcement(*, announcement_id: int, patch: dict) -> Announcement:
    announcement = get_announcement(announcement_id)
    current = {
        "starts_at": announcement.starts_at,
        "ends_at": announcement.ends_at,
    }
    enforce_rules_announcement(patch, current)
    _apply(announcement, patch)
    db.session.commit()
    return announcement


def delete_announcement(announcement_id: int) -> None:
    announcement = get_announcement(announcement_id)
    db.session.delete(announcement)
    db.session.commit()
    current_app.logger.info("Deleted announcement id=%s", announcement_id)


def bulk_delete_announcements(ids) -> int:
    ids = check_id_list(ids)
    deleted = (
        db.session.query(Announcement)
        .filter(Announcement.id.in_(ids))
        .delete(synchronize_session=False)
    )
    db.session.commit()
    current_app.logger.info("Announcements bulk deleted count=%s", deleted)
    return deleted


def toggle_announcement(announcement_id: int) -> Announcement:
    announcement = get_announcement(announcement_id)
    announcement.is_active = not announcement.is_active
    db.session.commit()
    return announcement
