# Overview: Back-office routes (admin role): order management, reporting, subscribers.

from io import BytesIO

from flask import Blueprint, current_app, g, jsonify, request, send_file

from ..decorators import require_admin, require_auth
from ..services import newsletter_service, order_service, reporting_service
from ..time_utils import day_key, utcnow
from ..validation import ShopError, error_response

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@admin_bp.get("/orders")
@require_auth
@require_admin
def list_orders():
    """
    Query params: status, payment_status, search (order number / customer
    name / email), sort_by (created_at|total|status|order_number),
    sort_order, page, per_page.
    """
    try:
        result = order_service.admin_list_orders(
            status=request.args.get("status") or None,
            payment_status=request.args.get("payment_status") or None,
            search=request.args.get("search") or None,
            sort_by=request.args.get("sort_by", "created_at"),
            sort_order=request.args.get("sort_order", "desc"),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 20, type=int),
        )
        return jsonify(result), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/orders/stats")
@require_auth
@require_admin
def order_stats():
    try:
        return jsonify(reporting_service.order_stats(request.args.get("time_range", "30d"))), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to compute order stats")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/orders/export")
@require_auth
@require_admin
def export_orders():
    try:
        content = reporting_service.export_orders_xlsx(
            status=request.args.get("status") or None,
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
        )
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to export orders")
        return jsonify({"error": "Internal server error"}), 500

    return send_file(
        BytesIO(content),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=f"orders-{day_key(utcnow())}.xlsx",
    )


@admin_bp.get("/orders/<int:order_id>")
@require_auth
@require_admin
def get_order(order_id: int):
    try:
        return jsonify(order_service.get_order(order_id).to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.patch("/orders/<int:order_id>/status")
@require_auth
@require_admin
def update_status(order_id: int):
    """Body: {"status", "estimated_delivery"?, "notes"?, "cancellation_reason"?}"""
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.update_order_status(
            order_id,
            actor=g.current_user,
            status=data.get("status"),
            estimated_delivery=data.get("estimated_delivery"),
            notes=data.get("notes"),
            cancellation_reason=data.get("cancellation_reason"),
        )
        return jsonify(order.to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.patch("/orders/<int:order_id>/payment-status")
@require_auth
@require_admin
def update_payment_status(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.update_payment_status(order_id, data.get("payment_status"))
        return jsonify(order.to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update payment status")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/orders/<int:order_id>/whatsapp-sent")
@require_auth
@require_admin
def whatsapp_sent(order_id: int):
    try:
        return jsonify(order_service.mark_whatsapp_sent(order_id).to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark WhatsApp message sent")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/orders/<int:order_id>/resend-whatsapp")
@require_auth
@require_admin
def resend_whatsapp(order_id: int):
    try:
        result = order_service.regenerate_whatsapp(order_id)
        return jsonify({
            "order": result["order"].to_dict(),
            "whatsapp_link": result["whatsapp_link"],
            "whatsapp_message": result["whatsapp_message"],
        }), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to regenerate WhatsApp message")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/dashboard")
@require_auth
@require_admin
def dashboard():
    return jsonify(reporting_service.dashboard()), 200


@admin_bp.get("/customers")
@require_auth
@require_admin
def list_customers():
    result = reporting_service.list_customers(
        search=request.args.get("search") or None,
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", 20, type=int),
    )
    return jsonify(result), 200


@admin_bp.get("/newsletter/subscribers")
@require_auth
@require_admin
def list_subscribers():
    active = request.args.get("active")
    if active is not None:
        active = active.strip().lower() == "true"
    result = newsletter_service.list_subscribers(
        active=active,
        search=request.args.get("search") or None,
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", 20, type=int),
    )
    return jsonify(result), 200


@admin_bp.get("/newsletter/stats")
@require_auth
@require_admin
def subscriber_stats():
    return jsonify(newsletter_service.subscriber_stats()), 200


@admin_bp.post("/newsletter/subscribers")
@require_auth
@require_admin
def add_subscriber():
    payload = request.get_json(silent=True) or {}
    try:
        subscriber = newsletter_service.add_subscriber(
            payload.get("email"),
            payload.get("name"),
            payload.get("preferences"),
        )
        return jsonify(subscriber.to_dict()), 201
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add subscriber")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.patch("/newsletter/subscribers/<int:subscriber_id>/status")
@require_auth
@require_admin
def set_subscriber_status(subscriber_id: int):
    """Body: {"is_active": bool}"""
    payload = request.get_json(silent=True) or {}
    try:
        subscriber = newsletter_service.set_subscriber_status(subscriber_id, payload.get("is_active"))
        return jsonify(subscriber.to_dict()), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update subscriber status")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.delete("/newsletter/subscribers/<int:subscriber_id>")
@require_auth
@require_admin
def delete_subscriber(subscriber_id: int):
    try:
        newsletter_service.delete_subscriber(subscriber_id)
        return jsonify({"message": "Subscriber deleted"}), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete subscriber")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/newsletter/subscribers/bulk-delete")
@require_auth
@require_admin
def bulk_delete_subscribers():
    """Body: {"ids": [int, ...]}"""
    payload = request.get_json(silent=True) or {}
    try:
        deleted = newsletter_service.bulk_delete_subscribers(payload.get("ids"))
        return jsonify({"deleted": deleted}), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to bulk delete subscribers")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/newsletter/send")
@require_auth
@require_admin
def send_newsletter():
    """
    Body: {"subject", "content", "audience": active|inactive|all, "topic"?}.
    Per-address failures are listed in the response, not raised.
    """
    payload = request.get_json(silent=True) or {}
    try:
        result = newsletter_service.send_newsletter(
            payload.get("subject"),
            payload.get("content"),
            audience=payload.get("audience") or "active",
            topic=payload.get("topic") or None,
        )
        return jsonify(result), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to send newsletter")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/analytics/sales-trend")
@require_auth
@require_admin
def sales_trend():
    period = request.args.get("period", "30d")
    try:
        return jsonify({"period": period, "items": reporting_service.sales_trend(period)}), 200
    except ShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to compute sales trend")
        return jsonify({"error": "Internal server error"}), 500
