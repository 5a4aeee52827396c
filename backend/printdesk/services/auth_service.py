# Overview: Operator accounts; bcrypt password hashing and credential checks.

"""
Admin Authentication Service

WHY: Every operator action is attributable, so operators log in with their
own account. Accounts are created from the CLI; there is no
self-registration endpoint.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters with upper, lower, digit, and special characters
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import AdminUser
from ..time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when a password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    if len(password or "") < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Z]", password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")
    if not re.search(r"[^A-Za-z0-9]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    rounds = int(current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe via bcrypt.checkpw. A malformed hash never matches."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_admin(username: str, password: str, name: str | None = None) -> AdminUser:
    """
    Create an operator account.

    Raises:
        ValidationError: Missing or duplicate username
        PasswordValidationError: Weak password
    """
    username = (username or "").strip()
    if not username:
        raise ValidationError("Username is required", fields={"username": "required"})

    existing = db.session.query(AdminUser).filter_by(username=username).first()
    if existing:
        raise ValidationError("Username already exists", fields={"username": "taken"})

    admin = AdminUser(
        username=username,
        name=name,
        password_hash=hash_password(password),
        is_active=True,
    )
    db.session.add(admin)
    db.session.commit()
    return admin


def authenticate(username: str, password: str) -> AdminUser | None:
    """
    Check credentials. Returns the admin, or None for any failure.

    Updates last_login_at on success.
    """
    admin = db.session.query(AdminUser).filter_by(username=(username or "").strip(), is_active=True).first()
    if not admin or not verify_password(password or "", admin.password_hash):
        current_app.logger.warning("Failed admin login for %r", username)
        return None

    admin.last_login_at = utcnow()
    db.session.commit()
    return admin


def list_admins() -> list[AdminUser]:
    return db.session.query(AdminUser).order_by(AdminUser.username.asc()).all()
