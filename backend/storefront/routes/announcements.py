# Overview: Flask API routes for storefront announcements.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..models import Announcement
from ..services import announcement_service
from ..validation import ModelValidationPolicy, ShopError, error_response, validate_payload
from .products import bool_arg

ANNOUNCEMENT_POLICY = ModelValidationPolicy(
    writable_fields=set(announcement_service.ANNOUNCEMENT_MUTABLE_FIELDS),
    required_on_create={"title", "content", "ends_at"},
)

announcements_bp = Blueprint("announcements", __name__, url_prefix="/api/announcements")


@announcements_bp.get("/active")
def active_announcements():
    """Query params: location (top|bottom|sidebar|modal), audience (all|registered|guests)."""
    try:
        items = announcement_service.list_active(
            location=request.args.get("location") or None,
            audience=request.args.get("audience") or None,
        )
        return jsonify({"items": items}), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list announcements")
        return jsonify({"error": "Internal server error"}), 500


@announcements_bp.get("/<int:announcement_id>")
def get_announcement(announcement_id: int):
    try:
        return jsonify(announcement_service.get_public_announcement(announcement_id).to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load announcement")
        return jsonify({"error": "Internal server error"}), 500


@announcements_bp.post("/<int:announcement_id>/view")
def record_view(announcement_id: int):
    try:
        announcement_service.record_view(announcement_id)
        return jsonify({"message": "View recorded"}), 200
    except ShopError as e:
        return error_response(e)


@announcements_bp.post("/<int:announcement_id>/click")
def record_click(announcement_id: int):
    try:
        announcement_service.record_click(announcement_id)
        return jsonify({"message": "Click recorded"}), 200
    except ShopError as e:
        return error_response(e)


@announcements_bp.get("/manage")
@require_auth
@require_admin
def manage_announcements():
    """Query params: search, type, priority, is_active, page, per_page."""
    try:
        result = announcement_service.list_announcements(
            search=request.args.get("search") or None,
            announcement_type=request.args.get("type") or None,
            priority=request.args.get("priority") or None,
            is_active=bool_arg("is_active"),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 10, type=int),
        )
        return jsonify(result), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list announcements")
        return jsonify({"error": "Internal server error"}), 500


@announcements_bp.post("")
@require_auth
@require_admin
def create_announcement():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Announcement, payload=payload, policy=ANNOUNCEMENT_POLICY, partial=False)
        created = announcement_service.create_announcement(patch=patch, actor_id=g.current_user.id)
        return jsonify(created.to_dict()), 201
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create announcement")
        return jsonify({"error": "Internal server error"}), 500


@announcements_bp.put("/<int:announcement_id>")
@require_auth
@require_admin
def update_announcement(announcement_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Announcement, payload=payload, policy=ANNOUNCEMENT_POLICY, partial=True)
        updated = announcement_service.update_announcement(announcement_id=announcement_id, patch=patch)
        return jsonify(updated.to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update announcement")
        return jsonify({"error": "Internal server error"}), 500


@announcements_bp.delete("/<int:announcement_id>")
@require_auth
@require_admin
def delete_announcement(announcement_id: int):
    try:
        announcement_service.delete_announcement(announcement_id)
        return jsonify({"message": "Announcement deleted"}), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete announcement")
        return jsonify({"error": "Internal server error"}), 500


@announcements_bp.post("/bulk-delete")
@require_auth
@require_admin
def bulk_delete_announcements():
    """Body: {"ids": [int, ...]}"""
    payload = request.get_json(silent=True) or {}
    try:
        deleted = announcement_service.bulk_delete_announcements(payload.get("ids"))
        return jsonify({"deleted": deleted}), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to bulk delete announcements")
        return jsonify({"error": "Internal server error"}), 500


@announcements_bp.post("/<int:announcement_id>/toggle")
@require_auth
@require_admin
def toggle_announcement(announcement_id: int):
    try:
        return jsonify(announcement_service.toggle_announcement(announcement_id).to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to toggle announcement")
        return jsonify({"error": "Internal server error"}), 500
