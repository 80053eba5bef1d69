# Overview: Flask API routes for category operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request
from ..services import catalog_service
from ..models import Category
from ..validation import ModelValidationPolicy, ShopError, error_response, validate_payload
from ..decorators import require_admin, require_auth

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields=set(catalog_service.CATEGORY_MUTABLE_FIELDS),
    required_on_create={"name"},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
def list_categories():
    return jsonify({"items": catalog_service.list_categories()}), 200


@categories_bp.get("/<slug>")
def get_category(slug: str):
    try:
        return jsonify(catalog_service.get_category_by_slug(slug).to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.post("")
@require_auth
@require_admin
def create_category_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        category = catalog_service.create_category(patch=patch)
        return jsonify(category.to_dict()), 201
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.put("/<int:category_id>")
@require_auth
@require_admin
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        category = catalog_service.update_category(category_id=category_id, patch=patch)
        return jsonify(category.to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_admin
def delete_category_route(category_id: int):
    try:
        catalog_service.delete_category(category_id=category_id)
        return jsonify({"message": "Category deleted"}), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete category")
        return jsonify({"error": "Internal server error"}), 500
