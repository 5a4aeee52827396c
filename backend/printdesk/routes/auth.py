# Overview: Flask API routes for admin login, logout, and session validation.

# backend/printdesk/routes/auth.py
"""
Admin Authentication API routes

Accounts are created from the CLI (flask admins create); there is no
registration endpoint.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import bearer_token, require_auth
from ..services import auth_service, session_service
from ..validation import json_body


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and create a session token.

    Request body: {"username": "...", "password": "..."}

    Returns:
        200: {"token": "...", "user": {...}}
        400: missing fields
        401: invalid credentials
    """
    data = json_body()
    username = data.get("username")
    password = data.get("password")
    if not username or not password:
        return jsonify({"error": "username and password required"}), 400

    admin = auth_service.authenticate(username, password)
    if not admin:
        return jsonify({"error": "Invalid credentials", "kind": "authentication_required"}), 401

    _, token = session_service.create_session(
        admin,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return jsonify({"success": True, "token": token, "user": admin.to_dict()}), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(bearer_token())
    return jsonify({"success": True, "message": "Logged out"}), 200


@auth_bp.get("/validate")
@require_auth
def validate_route():
    return jsonify({"success": True, "valid": True, "user": g.current_admin.to_dict()}), 200
