# Overview: Request decorators for admin API routes.

from functools import wraps

from flask import g, jsonify, request

from .services import session_service


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid admin bearer session.

    Sets g.current_admin and g.actor ("admin:<username>") for the route.
    Returns 401 for a missing, invalid, expired, or revoked token.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required", "kind": "authentication_required"}), 401

        admin = session_service.validate_session(token)
        if not admin:
            return jsonify({"error": "Invalid or expired token", "kind": "authentication_required"}), 401

        g.current_admin = admin
        g.actor = admin.actor
        return f(*args, **kwargs)

    return decorated_function
