# backend/printdesk/__init__.py
import os

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import PrintDeskError
from .extensions import db, migrate
from .logging_config import configure_logging


def create_app(test_config=None, scanner=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.from_mapping(test_config)

    configure_logging(app)
    os.makedirs(app.config["UPLOAD_DIR"], exist_ok=True)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    if scanner is not None:
        from .services.scanner import EXTENSION_KEY
        app.extensions[EXTENSION_KEY] = scanner

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.print_jobs import print_jobs_bp
    from .routes.payments import payments_bp
    from .routes.tracking import tracking_bp
    from .routes.files import files_bp
    from .routes.auth import auth_bp
    from .routes.admin import admin_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(print_jobs_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(tracking_bp)
    app.register_blueprint(files_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(reports_bp)

    @app.errorhandler(PrintDeskError)
    def handle_domain_error(exc: PrintDeskError):
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(413)
    def handle_request_too_large(exc):
        return jsonify({"error": "File too large", "kind": "too_large"}), 413

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return jsonify({"error": exc.description}), exc.code
        db.session.rollback()
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin.lower() in app.config["CORS_ALLOWED_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
