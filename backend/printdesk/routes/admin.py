# Overview: Flask API routes for operator order management, payment settings, and stored files.

# backend/printdesk/routes/admin.py
"""
Admin API Routes

All routes require an admin bearer session. Every change is made through
the service layer, which writes the audit entry with the admin as actor.

Order updates accept "status" only; payment status is owned by the
payment gateway callback.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import ValidationError
from ..services import maintenance_service, order_service, reporting_service
from ..services.settings_service import load_payment_settings, save_payment_settings
from ..services.storage_service import get_blob_store
from ..validation import as_bool, json_body, optional_int


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# =============================================================================
# ORDERS
# =============================================================================

@admin_bp.get("/orders")
@require_auth
def list_orders_route():
    """
    Query params: status, page (default 1), limit (default 10, max 100)
    """
    orders, pagination = order_service.list_orders(
        status=request.args.get("status") or None,
        page=optional_int(request.args.get("page"), "page", 1),
        limit=optional_int(request.args.get("limit"), "limit", 10),
    )
    return jsonify({
        "success": True,
        "orders": [o.to_dict() for o in orders],
        "pagination": pagination,
    }), 200


@admin_bp.get("/orders/<int:order_id>")
@require_auth
def get_order_route(order_id):
    order = order_service.get_order(order_id)
    history = order_service.get_order_history(order_id)
    return jsonify({
        "success": True,
        "order": order.to_dict(),
        "history": [entry.to_dict() for entry in history],
    }), 200


@admin_bp.put("/orders/<int:order_id>")
@require_auth
def update_order_route(order_id):
    """
    Request body: {"status": "processing"}

    Returns:
        200: updated order
        400: missing/invalid status, or paymentStatus supplied
        404: order not found
        409: order already has that status
    """
    data = json_body()
    if "paymentStatus" in data:
        raise ValidationError(
            "Payment status is updated by the payment gateway only",
            fields={"paymentStatus": "not allowed"},
        )
    status = data.get("status")
    if not status:
        raise ValidationError("No fields to update", fields={"status": "required"})

    order = order_service.set_status(order_id, status, actor=g.actor, ip_address=request.remote_addr)
    return jsonify({
        "success": True,
        "message": "Order updated successfully",
        "order": order.to_dict(),
    }), 200


# =============================================================================
# PAYMENT SETTINGS
# =============================================================================

@admin_bp.get("/payment-settings")
@require_auth
def get_payment_settings_route():
    return jsonify({"success": True, "settings": load_payment_settings().to_public_dict()}), 200


@admin_bp.put("/payment-settings")
@require_auth
def update_payment_settings_route():
    """
    Request body:
    {
        "paymentEnabled": true,
        "paytmMerchantId": "MID123",
        "paytmMerchantKey": "secret",   (blank keeps the stored key)
        "paytmEnvironment": "TEST" | "PROD"
    }
    """
    data = json_body()
    settings = save_payment_settings(
        payment_enabled=as_bool(data.get("paymentEnabled", False)),
        merchant_id=data.get("paytmMerchantId"),
        merchant_key=data.get("paytmMerchantKey"),
        environment=data.get("paytmEnvironment"),
        actor=g.actor,
        ip_address=request.remote_addr,
    )
    return jsonify({
        "success": True,
        "message": "Payment settings updated successfully",
        "settings": settings.to_public_dict(),
    }), 200


@admin_bp.get("/payment-stats")
@require_auth
def payment_stats_route():
    days = optional_int(request.args.get("days"), "days", 30)
    if days < 1:
        raise ValidationError("days must be at least 1", fields={"days": "must be >= 1"})
    return jsonify({"success": True, "stats": reporting_service.payment_stats(days)}), 200


# =============================================================================
# FILES
# =============================================================================

@admin_bp.get("/files")
@require_auth
def list_files_route():
    files = get_blob_store().list()
    return jsonify({"success": True, "files": [f.to_dict() for f in files]}), 200


@admin_bp.post("/files/sweep")
@require_auth
def sweep_files_route():
    deleted = maintenance_service.sweep_expired_files()
    current_app.logger.info("Manual retention sweep by %s removed %d file(s)", g.actor, deleted)
    return jsonify({"success": True, "deleted": deleted}), 200
