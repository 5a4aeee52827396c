# Overview: Flask API routes for payment initiation, gateway callbacks, and verification.

# backend/printdesk/routes/payments.py
"""
Payment API Routes

SECURITY:
- Payment settings are read from the database on every call
- Callbacks are trusted only after checksum verification
- The callback endpoint always answers 200 {"success": true}; rejections
  are logged
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import PrintDeskError
from ..extensions import db
from ..services import payment_service
from ..services.settings_service import load_payment_settings
from ..validation import json_body, require_str


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payment")


@payments_bp.post("/process")
def process_payment_route():
    """
    Start a payment attempt.

    Request body:
    {
        "orderId": "<order token>",
        "amount": 2.40,
        "rollNumber": "21CS001"
    }

    Returns:
        200: paymentId, paytmUrl, paytmParams (form to post to the gateway)
        400: payments disabled / not configured / amount mismatch
        404: unknown order
        409: order already paid
    """
    data = json_body()
    order_token = require_str(data, "orderId")
    roll_number = require_str(data, "rollNumber")
    amount = require_str(data, "amount")

    initiation = payment_service.initiate(
        order_token,
        amount,
        roll_number,
        settings=load_payment_settings(),
        callback_url=current_app.config["PAYMENT_CALLBACK_URL"],
        actor=f"customer:{roll_number}",
        ip_address=request.remote_addr,
    )
    return jsonify({
        "success": True,
        **initiation.to_dict(),
        "message": "Payment initiated successfully",
    }), 200


@payments_bp.post("/callback")
def payment_callback_route():
    received = request.form.to_dict() if request.form else json_body()

    try:
        payment_service.handle_callback(
            received,
            settings=load_payment_settings(),
            actor="gateway",
            ip_address=request.remote_addr,
        )
    except PrintDeskError as exc:
        current_app.logger.warning(
            "Payment callback rejected (%s): order=%s payment=%s",
            exc.kind, received.get("ORDERID"), received.get("TXNID"),
        )
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Payment callback failed: order=%s payment=%s",
            received.get("ORDERID"), received.get("TXNID"),
        )

    return jsonify({"success": True}), 200


@payments_bp.get("/verify/<payment_id>")
def verify_payment_route(payment_id):
    verification = payment_service.verify(payment_id)
    return jsonify({"success": True, **verification.to_dict()}), 200
