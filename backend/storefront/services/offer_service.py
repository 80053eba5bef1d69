# Overview: Promotional offers: public listing, claims, cart quotes and back-office management.

"""
Offer Service

CLAIMS:
A user claims an offer at most once (uq_offer_claims_offer_user). The usage
counter is advanced with a single conditional UPDATE, the same pattern as
stock decrements, so usage_limit cannot be exceeded by concurrent claims.

QUOTES:
preview_offer prices the signed-in user's cart with a code. Checkout totals
are never changed by offers.
"""
from __future__ import annotations

from datetime import timedelta

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Cart, Offer, OfferClaim
from ..models.offers import OFFER_TYPES
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError, enforce_rules_offer
from .notification_service import format_money

OFFER_MUTABLE_FIELDS = {
    "title", "description", "code", "offer_type",
    "discount_type", "discount_value",
    "minimum_order_cents", "maximum_discount_cents",
    "starts_at", "ends_at", "usage_limit",
    "is_active", "image_url",
}

OFFER_STATUSES = ("all", "active", "inactive")
EXPIRING_WINDOW = timedelta(days=7)


def _paginate(query, page: int, per_page: int) -> dict:
    per_page = min(max(per_page or 10, 1), 100)
    page = max(page or 1, 1)
    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    rows = query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [r.to_dict() for r in rows],
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


def _valid_filter(now):
    return (
        Offer.is_active.is_(True),
        Offer.starts_at <= now,
        Offer.ends_at >= now,
        db.or_(Offer.usage_limit.is_(None), Offer.used_count < Offer.usage_limit),
    )


def list_public_offers(now=None) -> list[dict]:
    rows = (
        db.session.query(Offer)
        .filter(*_valid_filter(now or utcnow()))
        .order_by(Offer.created_at.desc(), Offer.id.desc())
        .all()
    )
    return [o.to_dict() for o in rows]


def get_offer(offer_id: int) -> Offer:
    offer = db.session.get(Offer, offer_id)
    if offer is None:
        raise NotFoundError("Offer not found", details={"offer_id": offer_id})
    return offer


def _filtered(*, search: str | None = None, status: str = "all", offer_type: str | None = None):
    if status not in OFFER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(OFFER_STATUSES)}")
    if offer_type and offer_type != "all" and offer_type not in OFFER_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(OFFER_TYPES)}")

    query = db.session.query(Offer)
    if status != "all":
        query = query.filter(Offer.is_active.is_(status == "active"))
    if offer_type and offer_type != "all":
        query = query.filter(Offer.offer_type == offer_type)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Offer.title.ilike(like),
            Offer.description.ilike(like),
            Offer.code.ilike(like),
        ))
    return query.order_by(Offer.created_at.desc(), Offer.id.desc())


def list_offers(
    *,
    search: str | None = None,
    status: str = "all",
    offer_type: str | None = None,
    page: int = 1,
    per_page: int = 10,
) -> dict:
    return _paginate(_filtered(search=search, status=status, offer_type=offer_type), page, per_page)


def offers_for_export(*, status: str = "all", offer_type: str | None = None) -> list[Offer]:
    return _filtered(status=status, offer_type=offer_type).all()


def _code_taken(code: str, exclude_id: int | None = None) -> bool:
    q = db.session.query(Offer.id).filter(Offer.code == code)
    if exclude_id is not None:
        q = q.filter(Offer.id != exclude_id)
    return q.first() is not None


def create_offer(*, patch: dict, actor_id: int | None = None) -> Offer:
    """
    Raises:
        ValidationError: discount, limits or date window out of range
        ConflictError: code already used by another offer
    """
    enforce_rules_offer(patch)
    if _code_taken(patch["code"]):
        raise ConflictError("Offer code already exists", details={"code": patch["code"]})

    offer = Offer(created_by_user_id=actor_id, used_count=0)
    for k, v in patch.items():
        if k in OFFER_MUTABLE_FIELDS:
            setattr(offer, k, v)
    db.session.add(offer)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Offer code already exists", details={"code": patch["code"]})

    current_app.logger.info("Created offer id=%s code=%s", offer.id, offer.code)
    return offer


def update_offer(*, offer_id: int, patch: dict) -> Offer:
    offer = get_offer(offer_id)
    current = {field: getattr(offer, field) for field in OFFER_MUTABLE_FIELDS}
    enforce_rules_offer(patch, current)

    if patch.get("code") and _code_taken(patch["code"], exclude_id=offer_id):
        raise ConflictError("Offer code already exists", details={"code": patch["code"]})

    for k, v in patch.items():
        if k in OFFER_MUTABLE_FIELDS:
            setattr(offer, k, v)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Offer code already exists", details={"code": patch.get("code")})
    return offer


def delete_offer(offer_id: int) -> None:
    offer = get_offer(offer_id)
    db.session.delete(offer)
    db.session.commit()
    current_app.logger.info("Deleted offer id=%s", offer_id)


def toggle_offer(offer_id: int) -> Offer:
    offer = get_offer(offer_id)
    offer.is_active = not offer.is_active
    db.session.commit()
    return offer


def offer_stats(now=None) -> dict:
    now = now or utcnow()
    total = db.session.query(Offer).count()
    active = db.session.query(Offer).filter(Offer.is_active.is_(True)).count()
    expiring = (
        db.session.query(Offer)
        .filter(
            Offer.is_active.is_(True),
            Offer.ends_at >= now,
            Offer.ends_at <= now + EXPIRING_WINDOW,
        )
        .count()
    )
    return {
        "total": total,
        "active": active,
        "inactive": total - active,
        "expiring_soon": expiring,
        "active_percentage": round(active / total * 100, 2) if total else 0.0,
    }


def claim_offer(user_id: int, offer_id: int) -> OfferClaim:
    """
    Raises:
        NotFoundError: unknown offer
        ValidationError: inactive, outside its window, or used up
        ConflictError: already claimed by this user, or the last use was
            taken by a concurrent claim
    """
    offer = get_offer(offer_id)
    if not offer.is_valid():
        raise ValidationError("Offer is not valid or has expired", details={"offer_id": offer_id})

    already = db.session.query(OfferClaim.id).filter_by(offer_id=offer_id, user_id=user_id).first()
    if already:
        raise ConflictError("You have already claimed this offer", details={"offer_id": offer_id})

    stmt = (
        update(Offer)
        .where(
            Offer.id == offer_id,
            db.or_(Offer.usage_limit.is_(None), Offer.used_count < Offer.usage_limit),
        )
        .values(used_count=Offer.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount == 0:
        db.session.rollback()
        raise ConflictError("Offer usage limit reached", details={"offer_id": offer_id})

    claim = OfferClaim(offer_id=offer_id, user_id=user_id, claimed_at=utcnow())
    db.session.add(claim)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("You have already claimed this offer", details={"offer_id": offer_id})

    current_app.logger.info("Offer claimed offer_id=%s user_id=%s", offer_id, user_id)
    return claim


def preview_offer(user_id: int, code) -> dict:
    """Quote the user's current cart with an offer code."""
    if not code or not isinstance(code, str) or not code.strip():
        raise ValidationError("code is required")

    offer = db.session.query(Offer).filter_by(code=code.strip().upper()).first()
    if offer is None:
        raise NotFoundError("Offer not found")
    if not offer.is_valid():
        raise ValidationError("Offer is not valid or has expired", details={"offer_id": offer.id})

    cart = db.session.query(Cart).filter_by(user_id=user_id).first()
    subtotal = cart.total_price_cents if cart else 0
    if subtotal < offer.minimum_order_cents or subtotal == 0:
        raise ValidationError(
            f"A minimum order of {format_money(offer.minimum_order_cents)} is required for this offer",
            details={"minimum_order_cents": offer.minimum_order_cents, "subtotal_cents": subtotal},
        )

    discount = offer.compute_discount_cents(subtotal)
    return {
        "offer": offer.to_dict(),
        "subtotal_cents": subtotal,
        "discount_cents": discount,
        "total_cents": subtotal - discount,
    }
