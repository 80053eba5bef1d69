# Overview: Public newsletter routes (double opt-in).

from flask import Blueprint, current_app, jsonify, request

from ..services import newsletter_service
from ..validation import ShopError, error_response

newsletter_bp = Blueprint("newsletter", __name__, url_prefix="/api/newsletter")


@newsletter_bp.post("/subscribe")
def subscribe():
    """Body: {"email", "name"?, "source"?: homepage|footer|other}"""
    data = request.get_json(silent=True) or {}
    try:
        result = newsletter_service.subscribe(
            data.get("email"),
            name=data.get("name"),
            source=data.get("source") or "other",
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        status = 201 if result["status"] == "pending" else 200
        return jsonify(result), status
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to subscribe to newsletter")
        return jsonify({"error": "Internal server error"}), 500


@newsletter_bp.get("/confirm/<token>")
def confirm(token: str):
    try:
        subscriber = newsletter_service.confirm(token)
        return jsonify({
            "message": "Thank you for subscribing to our newsletter!",
            "subscriber": subscriber.to_dict(),
        }), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to confirm newsletter subscription")
        return jsonify({"error": "Internal server error"}), 500


@newsletter_bp.post("/unsubscribe")
def unsubscribe():
    data = request.get_json(silent=True) or {}
    try:
        newsletter_service.unsubscribe(data.get("email") or request.args.get("email"))
        return jsonify({"message": "You have been successfully unsubscribed from our newsletter."}), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to unsubscribe from newsletter")
        return jsonify({"error": "Internal server error"}), 500


@newsletter_bp.put("/preferences")
def update_preferences():
    """Body: {"email", "preferences": {"promotions"?, "new_products"?, "weekly_newsletter"?}}"""
    data = request.get_json(silent=True) or {}
    try:
        subscriber = newsletter_service.update_preferences(data.get("email"), data.get("preferences"))
        return jsonify(subscriber.to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update newsletter preferences")
        return jsonify({"error": "Internal server error"}), 500
