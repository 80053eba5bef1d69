# Overview: Customer registration, admin provisioning and credential checks.

"""
Authentication Service

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, at least one letter and one digit
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError, normalize_email


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def _clean_name(name) -> str:
    if not isinstance(name, str) or not 2 <= len(name.strip()) <= 50:
        raise ValidationError("Name must be between 2 and 50 characters")
    return name.strip()


def _clean_phone(phone) -> str | None:
    if phone is None or (isinstance(phone, str) and not phone.strip()):
        return None
    phone = str(phone).strip()
    if not 10 <= len(phone) <= 15:
        raise ValidationError("Phone must be between 10 and 15 characters")
    return phone


def create_user(
    name: str,
    email: str,
    password: str,
    phone: str | None = None,
    role: str = "customer",
) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises:
        ValidationError: bad name/email/phone or weak password
        ConflictError: email already registered
    """
    email = normalize_email(email)
    name = _clean_name(name)
    phone = _clean_phone(phone)

    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("User with this email already exists")

    user = User(
        name=name,
        email=email,
        phone=phone,
        password_hash=hash_password(password),
        role=role,
    )

    db.session.add(user)
    db.session.commit()
    current_app.logger.info("Created %s account user_id=%s", role, user.id)
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Returns User if credentials are valid and the account is active, None
    otherwise. Updates last_login_at on success.
    """
    if not email or not password:
        return None

    user = db.session.query(User).filter(
        User.email == str(email).strip().lower(),
        User.is_active.is_(True),
    ).first()

    if not user or not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
