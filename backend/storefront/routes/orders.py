# Overview: Flask API routes for a customer's own orders.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import order_service
from ..validation import ShopError, error_response

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_auth
def list_orders():
    """Query params: status, page, per_page (default 10)."""
    try:
        result = order_service.list_user_orders(
            g.current_user.id,
            status=request.args.get("status") or None,
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 10, type=int),
        )
        return jsonify(result), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order(order_id: int):
    try:
        order = order_service.get_order_for(g.current_user, order_id)
        return jsonify(order.to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_order(order_id: int):
    """Body: {"reason": str (5-200 chars)}"""
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.cancel_order(order_id, actor=g.current_user, reason=data.get("reason"))
        return jsonify(order.to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500
