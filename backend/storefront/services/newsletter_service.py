# Overview: Newsletter double opt-in (subscribe -> confirm), unsubscribe and preferences.

"""
Newsletter Service

FLOW:
- subscribe creates (or refreshes) a PendingSubscriber and mails a
  confirmation link that is valid for NEWSLETTER_TOKEN_TTL_HOURS
- confirm turns the pending row into a NewsletterSubscriber
- an unsubscribed address that subscribes again is reactivated directly

Mail failures are logged by mail_service and never fail the request.
"""
from __future__ import annotations

from datetime import timedelta
from urllib.parse import quote

from flask import current_app
from markupsafe import escape
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import NewsletterSubscriber, PendingSubscriber
from ..models.newsletter import PREFERENCE_FIELDS, SUBSCRIPTION_SOURCES, generate_confirmation_token
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError, check_id_list, normalize_email
from .mail_service import send_mail


def _ttl_hours() -> int:
    return current_app.config.get("NEWSLETTER_TOKEN_TTL_HOURS", 24)


def _store_name() -> str:
    return current_app.config.get("STORE_NAME", "Esperança de Amor E-commerce")


def _greeting(name: str | None) -> str:
    return f"Hello {name}," if name else "Hello,"


def send_confirmation_email(email: str, token: str, name: str | None) -> dict:
    url = f"{current_app.config.get('FRONTEND_URL', '').rstrip('/')}/confirm-subscription/{token}"
    body = (
        f"{_greeting(name)}\n\n"
        f"Please confirm your subscription to the {_store_name()} newsletter:\n"
        f"{url}\n\n"
        f"This link expires in {_ttl_hours()} hours. "
        "If you did not request this, you can ignore this email."
    )
    html = f'<p>{_greeting(name)}</p><p><a href="{url}">Confirm your subscription</a></p>'
    return send_mail(email, "Confirm Your Newsletter Subscription", body, html)


def send_welcome_email(email: str, name: str | None, *, returning: bool = False) -> dict:
    if returning:
        subject = f"Welcome back to {_store_name()}!"
        intro = "You have been successfully resubscribed to our newsletter."
    else:
        subject = f"Welcome to {_store_name()}!"
        intro = "Thank you for confirming your newsletter subscription."
    body = f"{_greeting(name)}\n\n{intro}\n"
    return send_mail(email, subject, body)


def purge_expired(now=None) -> int:
    """Delete pending subscribers whose confirmation window has passed. Does not commit."""
    return (
        db.session.query(PendingSubscriber)
        .filter(PendingSubscriber.expires_at <= (now or utcnow()))
        .delete(synchronize_session=False)
    )


def subscribe(
    email,
    name: str | None = None,
    source: str = "other",
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> dict:
    """
    Returns {"status": "pending" | "resent" | "resubscribed", "message": str}.

    Raises:
        ValidationError: missing or malformed email, unknown source
        ConflictError: already an active subscriber
    """
    email = normalize_email(email)
    if source not in SUBSCRIPTION_SOURCES:
        raise ValidationError(f"source must be one of: {', '.join(SUBSCRIPTION_SOURCES)}")
    name = (name or "").strip()[:100] or None

    purge_expired()

    subscriber = db.session.query(NewsletterSubscriber).filter_by(email=email).first()
    if subscriber is not None and subscriber.is_active:
        db.session.commit()
        raise ConflictError("You are already subscribed to our newsletter")

    if subscriber is not None:
        subscriber.is_active = True
        subscriber.unsubscribed_at = None
        subscriber.resubscribed_at = utcnow()
        db.session.commit()
        send_welcome_email(subscriber.email, subscriber.name, returning=True)
        current_app.logger.info("Newsletter subscriber reactivated id=%s", subscriber.id)
        return {
            "status": "resubscribed",
            "message": "Welcome back! You have been successfully resubscribed to our newsletter.",
        }

    pending = db.session.query(PendingSubscriber).filter_by(email=email).first()
    if pending is not None:
        token = pending.regenerate_token(_ttl_hours())
        db.session.commit()
        send_confirmation_email(pending.email, token, pending.name)
        return {
            "status": "resent",
            "message": "Confirmation email sent. Please check your inbox and click the confirmation link.",
        }

    token = generate_confirmation_token()
    pending = PendingSubscriber(
        email=email,
        name=name,
        confirmation_token=token,
        expires_at=utcnow() + timedelta(hours=_ttl_hours()),
        source=source,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:255] or None,
    )
    db.session.add(pending)
    db.session.commit()
    send_confirmation_email(email, token, name)
    return {
        "status": "pending",
        "message": "Please check your email and click the confirmation link to complete your subscription.",
    }


def confirm(token: str) -> NewsletterSubscriber:
    """
    Raises:
        ValidationError: unknown or expired token
        ConflictError: the address is already subscribed (pending row is dropped)
    """
    if not token:
        raise ValidationError("Confirmation token is required")

    pending = db.session.query(PendingSubscriber).filter_by(confirmation_token=token).first()
    if pending is None or pending.is_expired():
        raise ValidationError("Invalid or expired confirmation link. Please subscribe again.")

    if db.session.query(NewsletterSubscriber.id).filter_by(email=pending.email).first():
        db.session.delete(pending)
        db.session.commit()
        raise ConflictError("You are already subscribed to our newsletter")

    subscriber = NewsletterSubscriber(
        email=pending.email,
        name=pending.name,
        is_active=True,
        subscribed_at=utcnow(),
    )
    db.session.add(subscriber)
    db.session.delete(pending)
    db.session.commit()

    send_welcome_email(subscriber.email, subscriber.name)
    current_app.logger.info("Newsletter subscription confirmed id=%s", subscriber.id)
    return subscriber


def unsubscribe(email) -> NewsletterSubscriber:
    email = normalize_email(email)
    subscriber = db.session.query(NewsletterSubscriber).filter_by(email=email).first()
    if subscriber is None:
        raise NotFoundError("Subscriber not found")

    subscriber.is_active = False
    subscriber.unsubscribed_at = utcnow()
    db.session.commit()
    return subscriber


def update_preferences(email, preferences) -> NewsletterSubscriber:
    email = normalize_email(email)
    if not isinstance(preferences, dict) or not preferences:
        raise ValidationError("preferences must be a non-empty object")

    for key, value in preferences.items():
        if key not in PREFERENCE_FIELDS:
            raise ValidationError(f"Unknown preference: {key}")
        if not isinstance(value, bool):
            raise ValidationError(f"{key} must be a boolean")

    subscriber = db.session.query(NewsletterSubscriber).filter_by(email=email).first()
    if subscriber is None:
        raise NotFoundError("Subscriber not found")

    for key, value in preferences.items():
        setattr(subscriber, f"pref_{key}", value)
    db.session.commit()
    return subscriber


def list_subscribers(*, active: bool | None = None, search: str | None = None, page: int = 1, per_page: int = 20) -> dict:
    query = db.session.query(NewsletterSubscriber)
    if active is not None:
        query = query.filter(NewsletterSubscriber.is_active.is_(active))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            NewsletterSubscriber.email.ilike(like),
            NewsletterSubscriber.name.ilike(like),
        ))
    query = query.order_by(NewsletterSubscriber.subscribed_at.desc(), NewsletterSubscriber.id.desc())

    per_page = min(max(per_page or 20, 1), 100)
    page = max(page or 1, 1)
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [s.to_dict() for s in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": (total + per_page - 1) // per_page if total > 0 else 1,
        },
    }


def subscriber_stats() -> dict:
    total = db.session.query(NewsletterSubscriber).count()
    active = db.session.query(NewsletterSubscriber).filter(NewsletterSubscriber.is_active.is_(True)).count()
    pending = db.session.query(PendingSubscriber).filter(PendingSubscriber.expires_at > utcnow()).count()
    since = utcnow() - timedelta(days=30)
    recent = (
        db.session.query(NewsletterSubscriber)
        .filter(NewsletterSubscriber.subscribed_at >= since)
        .count()
    )
    return {
        "total": total,
        "active": active,
        "inactive": total - active,
        "pending": pending,
        "new_last_30_days": recent,
    }


NEWSLETTER_AUDIENCES = ("active", "inactive", "all")


def get_subscriber(subscriber_id: int) -> NewsletterSubscriber:
    subscriber = db.session.get(NewsletterSubscriber, subscriber_id)
    if subscriber is None:
        raise NotFoundError("Subscriber not found", details={"subscriber_id": subscriber_id})
    return subscriber


def _check_preferences(preferences) -> dict:
    if preferences is None:
        return {}
    if not isinstance(preferences, dict):
        raise ValidationError("preferences must be an object")
    for key, value in preferences.items():
        if key not in PREFERENCE_FIELDS:
            raise ValidationError(f"Unknown preference: {key}")
        if not isinstance(value, bool):
            raise ValidationError(f"{key} must be a boolean")
    return preferences


def add_subscriber(email, name: str | None = None, preferences=None) -> NewsletterSubscriber:
    """Admin-created subscriber; skips the confirmation mail."""
    email = normalize_email(email)
    preferences = _check_preferences(preferences)
    if db.session.query(NewsletterSubscriber.id).filter_by(email=email).first():
        raise ConflictError("Email is already subscribed", details={"email": email})

    subscriber = NewsletterSubscriber(
        email=email,
        name=(name or "").strip()[:100] or None,
        is_active=True,
        subscribed_at=utcnow(),
    )
    for key, value in preferences.items():
        setattr(subscriber, f"pref_{key}", value)
    db.session.add(subscriber)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Email is already subscribed", details={"email": email})

    current_app.logger.info("Newsletter subscriber added by admin id=%s", subscriber.id)
    return subscriber


def set_subscriber_status(subscriber_id: int, is_active) -> NewsletterSubscriber:
    if not isinstance(is_active, bool):
        raise ValidationError("is_active must be a boolean")
    subscriber = get_subscriber(subscriber_id)
    subscriber.is_active = is_active
    subscriber.unsubscribed_at = None if is_active else utcnow()
    db.session.commit()
    return subscriber


def delete_subscriber(subscriber_id: int) -> None:
    subscriber = get_subscriber(subscriber_id)
    db.session.delete(subscriber)
    db.session.commit()
    current_app.logger.info("Newsletter subscriber deleted id=%s", subscriber_id)


def bulk_delete_subscribers(ids) -> int:
    ids = check_id_list(ids)
    deleted = (
        db.session.query(NewsletterSubscriber)
        .filter(NewsletterSubscriber.id.in_(ids))
        .delete(synchronize_session=False)
    )
    db.session.commit()
    current_app.logger.info("Newsletter subscribers bulk deleted count=%s", deleted)
    return deleted


def _unsubscribe_url(email: str) -> str:
    base = current_app.config.get("FRONTEND_URL", "").rstrip("/")
    return f"{base}/unsubscribe?email={quote(email, safe='')}"


def _broadcast_html(content: str, unsubscribe_url: str) -> str:
    paragraphs = "".join(f"<p>{escape(line)}</p>" for line in content.splitlines() if line.strip())
    return (
        f"<div>{paragraphs}</div>"
        f'<p style="font-size:12px;color:#888">'
        f'<a href="{escape(unsubscribe_url)}">Unsubscribe</a></p>'
    )


def send_newsletter(subject, content, audience: str = "active", topic: str | None = None) -> dict:
    """
    Mail one newsletter to every matching subscriber.

    A failed address is reported in "errors" and does not stop the rest.

    Raises:
        ValidationError: empty subject or content, unknown audience or topic,
            or no subscriber matches
    """
    if not isinstance(subject, str) or not subject.strip():
        raise ValidationError("subject is required")
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("content is required")
    if len(subject) > 200:
        raise ValidationError("subject must be at most 200 characters")
    if audience not in NEWSLETTER_AUDIENCES:
        raise ValidationError(f"audience must be one of: {', '.join(NEWSLETTER_AUDIENCES)}")
    if topic is not None and topic not in PREFERENCE_FIELDS:
        raise ValidationError(f"topic must be one of: {', '.join(PREFERENCE_FIELDS)}")

    query = db.session.query(NewsletterSubscriber)
    if audience != "all":
        query = query.filter(NewsletterSubscriber.is_active.is_(audience == "active"))
    if topic is not None:
        query = query.filter(getattr(NewsletterSubscriber, f"pref_{topic}").is_(True))
    recipients = query.order_by(NewsletterSubscriber.id).all()
    if not recipients:
        raise ValidationError("No subscribers match this audience")

    subject = subject.strip()
    sent_ids: list[int] = []
    errors: list[dict] = []
    for subscriber in recipients:
        url = _unsubscribe_url(subscriber.email)
        body = f"{content}\n\n--\nUnsubscribe: {url}\n"
        result = send_mail(subscriber.email, subject, body, _broadcast_html(content, url))
        if result.get("status") == "sent":
            sent_ids.append(subscriber.id)
        else:
            errors.append({"email": subscriber.email, "error": result.get("error")})

    if sent_ids:
        db.session.execute(
            update(NewsletterSubscriber)
            .where(NewsletterSubscriber.id.in_(sent_ids))
            .values(
                email_count=NewsletterSubscriber.email_count + 1,
                last_email_sent=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
    db.session.commit()

    current_app.logger.info(
        "Newsletter sent subject=%r audience=%s recipients=%s ok=%s failed=%s",
        subject, audience, len(recipients), len(sent_ids), len(errors),
    )
    return {
        "total_recipients": len(recipients),
        "success_count": len(sent_ids),
        "error_count": len(errors),
        "errors": errors,
    }
