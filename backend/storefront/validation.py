from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from flask import jsonify
from sqlalchemy import JSON, Boolean, Float, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .time_utils import parse_iso_datetime


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

EMAIL_RE = re.compile(r"^\w+([.+-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,})+$")
OFFER_CODE_RE = re.compile(r"^[A-Z0-9_-]{3,32}$")


class ShopError(ValueError):
    """Base for domain errors that are translated into a structured failure response."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(ShopError):
    """400-level input problem."""
    status_code = 400


class NotFoundError(ShopError):
    """404-level missing product, cart line, order, subscriber."""
    status_code = 404


class ConflictError(ShopError):
    """409-level business rule conflict (e.g., duplicate slug, order number collision)."""
    status_code = 409


class InsufficientStockError(ShopError):
    """409-level: requested quantity exceeds available stock."""
    status_code = 409


class PermissionDeniedError(ShopError):
    """403-level: caller may not touch this resource."""
    status_code = 403


def error_response(exc: ShopError):
    """(json response, status) for a domain error, used at the request boundary."""
    body = {"error": str(exc), "kind": type(exc).__name__}
    if exc.details:
        body["details"] = exc.details
    return jsonify(body), exc.status_code


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, field: str) -> int:
    """Strict integer coercion: rejects bools, floats and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Float):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{col.key} must be a number")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
            return value.strip().lower() == "true"
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # JSON list columns (tags, images)
    if isinstance(coltype, JSON):
        if not isinstance(value, (list, dict)):
            raise ValidationError(f"{col.key} must be a list")
        return value

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_price(patch: dict, field: str) -> None:
    price = patch.get(field)
    if price is None:
        return
    if price < 0:
        raise ValidationError(f"{field} must be >= 0")
    if price > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _check_price(patch, "price_cents")
    _check_price(patch, "original_price_cents")

    if "name" in patch and len(patch["name"]) < 2:
        raise ValidationError("name must be between 2 and 100 characters")

    if "description" in patch and patch["description"] is not None and len(patch["description"]) > 2000:
        raise ValidationError("description cannot exceed 2000 characters")

    if patch.get("stock") is not None and patch["stock"] < 0:
        raise ValidationError("stock must be a non-negative integer")

    if patch.get("discount") is not None and not 0 <= patch["discount"] <= 100:
        raise ValidationError("discount must be between 0 and 100")

    if patch.get("rating") is not None and not 0 <= patch["rating"] <= 5:
        raise ValidationError("rating must be between 0 and 5")

    for field in ("tags", "images"):
        if field in patch and patch[field] is not None and not isinstance(patch[field], list):
            raise ValidationError(f"{field} must be a list")


def _check_choice(patch: dict, field: str, choices) -> None:
    if field in patch and patch[field] not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")


def _check_window(merged: dict) -> None:
    starts, ends = merged.get("starts_at"), merged.get("ends_at")
    if starts is not None and ends is not None and ends <= starts:
        raise ValidationError("ends_at must be after starts_at")


def enforce_rules_offer(patch: dict, current: dict | None = None) -> None:
    """
    Offer rules. current holds the stored values on update so the
    cross-field checks (discount range per type, date window) see the
    merged result. Upper-cases patch["code"] in place.
    """
    from .models.offers import DISCOUNT_TYPES, OFFER_TYPES

    if patch.get("code") is not None:
        patch["code"] = patch["code"].strip().upper()
        if not OFFER_CODE_RE.match(patch["code"]):
            raise ValidationError("code must be 3-32 characters of A-Z, 0-9, _ or -")

    if "title" in patch and len(patch["title"]) < 2:
        raise ValidationError("title must be between 2 and 200 characters")

    _check_choice(patch, "offer_type", OFFER_TYPES)
    _check_choice(patch, "discount_type", DISCOUNT_TYPES)

    merged = {**(current or {}), **patch}

    value = merged.get("discount_value")
    if value is not None:
        if merged.get("discount_type", "percentage") == "percentage":
            if not 1 <= value <= 100:
                raise ValidationError("Percentage discount must be between 1 and 100")
        else:
            if value <= 0:
                raise ValidationError("Fixed discount amount must be greater than 0")
            _check_price(merged, "discount_value")

    _check_price(patch, "minimum_order_cents")
    if patch.get("maximum_discount_cents") is not None and patch["maximum_discount_cents"] < 1:
        raise ValidationError("maximum_discount_cents must be at least 1")
    if patch.get("usage_limit") is not None and patch["usage_limit"] < 1:
        raise ValidationError("usage_limit must be at least 1")

    _check_window(merged)


def enforce_rules_announcement(patch: dict, current: dict | None = None) -> None:
    from .models.announcements import (
        ANNOUNCEMENT_PRIORITIES,
        ANNOUNCEMENT_TYPES,
        DISPLAY_LOCATIONS,
        TARGET_AUDIENCES,
    )

    if "title" in patch and len(patch["title"]) < 2:
        raise ValidationError("title must be between 2 and 200 characters")
    if "content" in patch and len(patch["content"]) > 5000:
        raise ValidationError("content cannot exceed 5000 characters")

    _check_choice(patch, "announcement_type", ANNOUNCEMENT_TYPES)
    _check_choice(patch, "priority", ANNOUNCEMENT_PRIORITIES)
    _check_choice(patch, "target_audience", TARGET_AUDIENCES)
    _check_choice(patch, "display_location", DISPLAY_LOCATIONS)

    if patch.get("images") is not None:
        images = patch["images"]
        if not isinstance(images, list):
            raise ValidationError("images must be a list")
        for image in images:
            if not isinstance(image, dict) or not isinstance(image.get("url"), str) or not image["url"].strip():
                raise ValidationError("each image needs a url")

    _check_window({**(current or {}), **patch})


def require_quantity(value: Any, *, field: str = "quantity", minimum: int = 1) -> int:
    if value is None:
        raise ValidationError(f"{field} is required")
    qty = coerce_int(value, field)
    if qty < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return qty


def check_id_list(value: Any, *, field: str = "ids", maximum: int = 500) -> list[int]:
    if not isinstance(value, list) or not value:
        raise ValidationError(f"{field} must be a non-empty list")
    if len(value) > maximum:
        raise ValidationError(f"{field} must contain at most {maximum} entries")
    ids = [coerce_int(v, field) for v in value]
    if any(i < 1 for i in ids):
        raise ValidationError(f"{field} must contain positive integers")
    return sorted(set(ids))


def normalize_email(value: Any) -> str:
    if not value or not isinstance(value, str):
        raise ValidationError("Email is required")
    email = value.strip().lower()
    if len(email) > 255 or not EMAIL_RE.match(email):
        raise ValidationError("Please enter a valid email")
    return email


def _bounded_text(data: dict, field: str, *, minimum: int = 0, maximum: int, required: bool = False) -> str | None:
    raw = data.get(field)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return None
    text = str(raw).strip()
    if not minimum <= len(text) <= maximum:
        raise ValidationError(f"{field} must be between {minimum} and {maximum} characters")
    return text


def enforce_rules_checkout(payload: Any) -> dict:
    """
    Validate the checkout body and return a normalized copy:
    {shipping_address: {...}, payment_method, notes}
    """
    from .models.orders import PAYMENT_METHODS

    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    address = payload.get("shipping_address")
    if not isinstance(address, dict):
        raise ValidationError("shipping_address is required")

    shipping = {
        "street": _bounded_text(address, "street", minimum=5, maximum=200, required=True),
        "city": _bounded_text(address, "city", minimum=2, maximum=50, required=True),
        "state": _bounded_text(address, "state", maximum=100),
        "zip_code": _bounded_text(address, "zip_code", maximum=20),
        "country": _bounded_text(address, "country", maximum=100),
        "phone": _bounded_text(address, "phone", minimum=10, maximum=15, required=True),
    }

    payment_method = payload.get("payment_method")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}"
        )

    notes = _bounded_text(payload, "notes", maximum=500)

    return {
        "shipping_address": shipping,
        "payment_method": payment_method,
        "notes": notes,
    }


def enforce_rules_cancellation(reason: Any) -> str:
    text = _bounded_text({"reason": reason}, "reason", minimum=5, maximum=200, required=True)
    return text  # type: ignore[return-value]


def parse_optional_datetime(value: Any, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 date")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date")
