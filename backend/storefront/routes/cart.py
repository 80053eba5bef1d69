# Overview: Flask API routes for the shopping cart and checkout.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import cart_service, order_service
from ..validation import ShopError, ValidationError, coerce_int, error_response

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.get("")
@require_auth
def get_cart():
    try:
        cart = cart_service.get_cart(g.current_user.id)
        return jsonify(cart.to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.get("/summary")
@require_auth
def cart_summary():
    try:
        return jsonify(cart_service.cart_summary(g.current_user.id)), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load cart summary")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.post("/items")
@require_auth
def add_item():
    """Body: {"product_id": int, "quantity": int = 1}"""
    data = request.get_json(silent=True) or {}
    try:
        if data.get("product_id") is None:
            raise ValidationError("product_id is required")
        product_id = coerce_int(data["product_id"], "product_id")
        cart = cart_service.add_to_cart(g.current_user.id, product_id, data.get("quantity", 1))
        return jsonify(cart.to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add item to cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.put("/items/<int:product_id>")
@require_auth
def update_item(product_id: int):
    """Body: {"quantity": int}. Zero or below removes the line."""
    data = request.get_json(silent=True) or {}
    try:
        cart = cart_service.update_cart_item(g.current_user.id, product_id, data.get("quantity"))
        return jsonify(cart.to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("/items/<int:product_id>")
@require_auth
def remove_item(product_id: int):
    try:
        cart = cart_service.remove_from_cart(g.current_user.id, product_id)
        return jsonify(cart.to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("")
@require_auth
def clear_cart():
    try:
        cart = cart_service.clear_cart(g.current_user.id)
        return jsonify(cart.to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to clear cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.post("/checkout")
@require_auth
def checkout():
    """
    Body: {"shipping_address": {...}, "payment_method": str, "notes": str?}

    Returns 201 with the order, the wa.me link and the message text.
    """
    data = request.get_json(silent=True)
    try:
        result = order_service.checkout(g.current_user.id, data)
        return jsonify({
            "order": result["order"].to_dict(),
            "whatsapp_link": result["whatsapp_link"],
            "whatsapp_message": result["whatsapp_message"],
        }), 201
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to checkout")
        return jsonify({"error": "Internal server error"}), 500
