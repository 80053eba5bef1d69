# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/storefront/routes/products.py
"""
Product catalog routes.

Reads are public and only return active products. Writes require an admin
session.
"""
from flask import Blueprint, current_app, jsonify, request
from ..services import catalog_service, stock_service
from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    ShopError,
    ValidationError,
    coerce_int,
    enforce_rules_product,
    error_response,
    validate_payload,
)
from ..decorators import require_admin, require_auth

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=set(catalog_service.PRODUCT_MUTABLE_FIELDS),
    required_on_create={"name", "price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def bool_arg(name: str) -> bool | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    lowered = raw.strip().lower()
    if lowered in {"true", "1"}:
        return True
    if lowered in {"false", "0"}:
        return False
    raise ValidationError(f"{name} must be true or false")


@products_bp.get("")
def list_products():
    """
    Query params:
    - category: id or slug
    - search: matches name / description
    - min_price, max_price: cents
    - featured, on_sale: true|false
    - sort_by: created_at|price|name|rating|sort_order
    - sort_order: asc|desc
    - page, per_page (default 12, max 100)
    """
    try:
        result = catalog_service.list_products(
            category=request.args.get("category"),
            search=request.args.get("search"),
            min_price=request.args.get("min_price", type=int),
            max_price=request.args.get("max_price", type=int),
            featured=bool_arg("featured"),
            on_sale=bool_arg("on_sale"),
            sort_by=request.args.get("sort_by", "created_at"),
            sort_order=request.args.get("sort_order", "desc"),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 12, type=int),
        )
        return jsonify(result), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/featured")
def featured_products():
    limit = min(request.args.get("limit", 8, type=int), 50)
    return jsonify({"items": catalog_service.list_featured_products(limit)}), 200


@products_bp.get("/sale")
def sale_products():
    limit = min(request.args.get("limit", 12, type=int), 50)
    return jsonify({"items": catalog_service.list_sale_products(limit)}), 200


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    try:
        return jsonify(catalog_service.get_product(product_id).to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
@require_auth
@require_admin
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)  # Handles price validation including max check
        created = catalog_service.create_product(patch=patch)
        return jsonify(created.to_dict()), 201
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>")
@require_auth
@require_admin
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        updated = catalog_service.update_product(product_id=product_id, patch=patch)
        return jsonify(updated.to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
@require_admin
def delete_product_route(product_id: int):
    try:
        catalog_service.delete_product(product_id=product_id)
        return jsonify({"message": "Product deleted"}), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/stock")
@require_auth
@require_admin
def adjust_stock_route(product_id: int):
    """
    Body: {"delta": int}. Positive restocks, negative removes units.
    Removing more than is on hand fails with 409.
    """
    payload = request.get_json(silent=True) or {}

    try:
        if payload.get("delta") is None:
            raise ValidationError("delta is required")
        delta = coerce_int(payload["delta"], "delta")
        product = stock_service.adjust_stock(product_id, delta)
        return jsonify(product.to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500
