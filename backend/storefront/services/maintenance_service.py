# Overview: Periodic cleanup jobs run from the CLI.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from . import newsletter_service, session_service


def purge_pending_subscribers() -> int:
    """Delete expired newsletter confirmations."""
    deleted = newsletter_service.purge_expired()
    db.session.commit()
    current_app.logger.info("Purged %s expired pending subscribers", deleted)
    return deleted


def cleanup_sessions(*, retention_days: int = 30) -> int:
    deleted = session_service.cleanup_expired_sessions(retention_days)
    current_app.logger.info("Deleted %s stale session tokens", deleted)
    return deleted
