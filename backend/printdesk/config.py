# backend/printdesk/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [part.strip().lower() for part in raw.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/printdesk.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///printdesk.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Uploads
    UPLOAD_DIR = os.environ.get(
        "UPLOAD_DIR",
        os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "uploads"),
    )
    ALLOWED_FILE_TYPES = _env_list("ALLOWED_FILE_TYPES", "pdf,doc,docx,jpg,jpeg,png")
    MAX_FILE_SIZE = int(os.environ.get("MAX_FILE_SIZE", str(25 * 1024 * 1024)))
    # Leave headroom over MAX_FILE_SIZE so oversize uploads reach the ingestion gate
    MAX_CONTENT_LENGTH = MAX_FILE_SIZE + 10 * 1024 * 1024
    SCANNER_TIMEOUT_SECONDS = float(os.environ.get("SCANNER_TIMEOUT_SECONDS", "10"))

    # Retention
    FILE_RETENTION_HOURS = int(os.environ.get("FILE_RETENTION_HOURS", "24"))
    FILE_SWEEP_INTERVAL_SECONDS = int(os.environ.get("FILE_SWEEP_INTERVAL_SECONDS", "3600"))
    FILE_SWEEP_ENABLED = _env_bool("FILE_SWEEP_ENABLED", False)

    # Orders
    CANCELLATION_WINDOW_SECONDS = int(os.environ.get("CANCELLATION_WINDOW_SECONDS", "30"))

    # Payments
    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "http://localhost:5000")
    PAYMENT_CALLBACK_URL = os.environ.get(
        "PAYMENT_CALLBACK_URL",
        f"{PUBLIC_BASE_URL}/api/payment/callback",
    )

    CORS_ALLOWED_ORIGINS = _env_list(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173",
    )

    # Auth
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_DIR = os.environ.get("LOG_DIR")
