# Overview: Flask API routes for promotional offers; public listing and claims plus admin management.

"""
Offer routes.

Listing and detail are public. Claiming and cart quotes need a session;
everything under /manage, /stats, /export and the writes need an admin.
"""
from io import BytesIO

from flask import Blueprint, current_app, g, jsonify, request, send_file

from ..decorators import require_admin, require_auth
from ..models import Offer
from ..services import offer_service, reporting_service
from ..time_utils import day_key, utcnow
from ..validation import ModelValidationPolicy, ShopError, error_response, validate_payload
from .admin import XLSX_MIMETYPE

OFFER_POLICY = ModelValidationPolicy(
    writable_fields=set(offer_service.OFFER_MUTABLE_FIELDS),
    required_on_create={"title", "code", "discount_value", "ends_at"},
)

offers_bp = Blueprint("offers", __name__, url_prefix="/api/offers")


@offers_bp.get("")
def list_offers():
    return jsonify({"items": offer_service.list_public_offers()}), 200


@offers_bp.get("/<int:offer_id>")
def get_offer(offer_id: int):
    try:
        return jsonify(offer_service.get_offer(offer_id).to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load offer")
        return jsonify({"error": "Internal server error"}), 500


@offers_bp.post("/<int:offer_id>/claim")
@require_auth
def claim_offer(offer_id: int):
    try:
        claim = offer_service.claim_offer(g.current_user.id, offer_id)
        return jsonify({"message": "Offer claimed", "claim": claim.to_dict()}), 201
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to claim offer")
        return jsonify({"error": "Internal server error"}), 500


@offers_bp.get("/preview")
@require_auth
def preview_offer():
    """Query params: code. Quotes the caller's cart; checkout totals are unchanged."""
    try:
        return jsonify(offer_service.preview_offer(g.current_user.id, request.args.get("code"))), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to preview offer")
        return jsonify({"error": "Internal server error"}), 500


@offers_bp.get("/manage")
@require_auth
@require_admin
def manage_offers():
    """Query params: search, status (all|active|inactive), type, page, per_page."""
    try:
        result = offer_service.list_offers(
            search=request.args.get("search") or None,
            status=request.args.get("status", "all"),
            offer_type=request.args.get("type") or None,
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 10, type=int),
        )
        return jsonify(result), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list offers")
        return jsonify({"error": "Internal server error"}), 500


@offers_bp.get("/stats")
@require_auth
@require_admin
def offer_stats():
    return jsonify(offer_service.offer_stats()), 200


@offers_bp.get("/export")
@require_auth
@require_admin
def export_offers():
    try:
        content = reporting_service.export_offers_xlsx(
            status=request.args.get("status", "all"),
            offer_type=request.args.get("type") or None,
        )
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to export offers")
        return jsonify({"error": "Internal server error"}), 500

    return send_file(
        BytesIO(content),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=f"offers-{day_key(utcnow())}.xlsx",
    )


@offers_bp.post("")
@require_auth
@require_admin
def create_offer():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Offer, payload=payload, policy=OFFER_POLICY, partial=False)
        offer = offer_service.create_offer(patch=patch, actor_id=g.current_user.id)
        return jsonify(offer.to_dict()), 201
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create offer")
        return jsonify({"error": "Internal server error"}), 500


@offers_bp.put("/<int:offer_id>")
@require_auth
@require_admin
def update_offer(offer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Offer, payload=payload, policy=OFFER_POLICY, partial=True)
        offer = offer_service.update_offer(offer_id=offer_id, patch=patch)
        return jsonify(offer.to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update offer")
        return jsonify({"error": "Internal server error"}), 500


@offers_bp.delete("/<int:offer_id>")
@require_auth
@require_admin
def delete_offer(offer_id: int):
    try:
        offer_service.delete_offer(offer_id)
        return jsonify({"message": "Offer deleted"}), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete offer")
        return jsonify({"error": "Internal server error"}), 500


@offers_bp.post("/<int:offer_id>/toggle")
@require_auth
@require_admin
def toggle_offer(offer_id: int):
    try:
        return jsonify(offer_service.toggle_offer(offer_id).to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to toggle offer")
        return jsonify({"error": "Internal server error"}), 500
