# Overview: Flask API routes for the wishlist.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import wishlist_service
from ..validation import ShopError, ValidationError, coerce_int, error_response

wishlist_bp = Blueprint("wishlist", __name__, url_prefix="/api/wishlist")


@wishlist_bp.get("")
@require_auth
def get_wishlist():
    try:
        return jsonify(wishlist_service.get_wishlist(g.current_user.id).to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load wishlist")
        return jsonify({"error": "Internal server error"}), 500


@wishlist_bp.get("/count")
@require_auth
def wishlist_count():
    return jsonify({"count": wishlist_service.wishlist_count(g.current_user.id)}), 200


@wishlist_bp.get("/check/<int:product_id>")
@require_auth
def check_wishlist(product_id: int):
    return jsonify({
        "product_id": product_id,
        "in_wishlist": wishlist_service.is_in_wishlist(g.current_user.id, product_id),
    }), 200


@wishlist_bp.post("/items")
@require_auth
def add_item():
    data = request.get_json(silent=True) or {}
    try:
        if data.get("product_id") is None:
            raise ValidationError("product_id is required")
        product_id = coerce_int(data["product_id"], "product_id")
        wishlist = wishlist_service.add_to_wishlist(g.current_user.id, product_id)
        return jsonify(wishlist.to_dict()), 201
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add wishlist item")
        return jsonify({"error": "Internal server error"}), 500


@wishlist_bp.delete("/items/<int:product_id>")
@require_auth
def remove_item(product_id: int):
    try:
        wishlist = wishlist_service.remove_from_wishlist(g.current_user.id, product_id)
        return jsonify(wishlist.to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove wishlist item")
        return jsonify({"error": "Internal server error"}), 500


@wishlist_bp.delete("")
@require_auth
def clear_wishlist():
    try:
        return jsonify(wishlist_service.clear_wishlist(g.current_user.id).to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to clear wishlist")
        return jsonify({"error": "Internal server error"}), 500
