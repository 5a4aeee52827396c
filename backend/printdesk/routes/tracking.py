# Overview: Flask API routes for customer order tracking.

from flask import Blueprint, current_app, jsonify

from ..errors import NotFound
from ..services import order_service


tracking_bp = Blueprint("tracking", __name__, url_prefix="/api/tracking")


@tracking_bp.get("/<token>")
def track_order_route(token):
    order = order_service.get_order_by_token(token)
    current_app.logger.info("Order tracked: token=%s roll=%s", token, order.roll_number)
    return jsonify({"success": True, "order": order.to_public_dict()}), 200


@tracking_bp.get("/roll/<roll_number>")
def track_by_roll_route(roll_number):
    orders = order_service.find_orders_by_roll_number(roll_number)
    if not orders:
        raise NotFound("No orders found for this roll number")
    current_app.logger.info("Orders tracked by roll number: roll=%s count=%d", roll_number, len(orders))
    return jsonify({"success": True, "orders": [o.to_public_dict() for o in orders]}), 200
