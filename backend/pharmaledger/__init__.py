# backend/pharmaledger/__init__.py
import logging

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .extensions import db, migrate


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("pharmaledger").setLevel(level)
    app.logger.setLevel(level)


def _register_error_handlers(app: Flask) -> None:
    from .errors import DomainError, domain_error_response
    from .validation import ValidationError, ConflictError
    from .services.permission_service import PermissionDeniedError
    from .services.concurrency import ConcurrencyConflictError

    @app.errorhandler(PermissionDeniedError)
    def handle_permission_denied(exc):
        return jsonify({
            "error": "Permission denied",
            "message": str(exc),
            **exc.details,
        }), 403

    @app.errorhandler(ConcurrencyConflictError)
    def handle_concurrency_conflict(exc):
        return jsonify({"error": str(exc), "retryable": True}), 409

    @app.errorhandler(ConflictError)
    def handle_conflict(exc):
        return jsonify({"error": str(exc)}), 409

    @app.errorhandler(ValidationError)
    def handle_validation(exc):
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(DomainError)
    def handle_domain_error(exc):
        return domain_error_response(exc)

    @app.errorhandler(Exception)
    def handle_unexpected(exc):
        if isinstance(exc, HTTPException):
            return exc
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        # Overrides must land before extensions read their settings
        app.config.update(test_config)

    _configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401
    # Session event listeners that drive live queries
    from .services import live_query_service  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.session import session_bp
    from .routes.branches import branches_bp
    from .routes.products import products_bp
    from .routes.catalog import catalog_bp
    from .routes.transfers import transfers_bp
    from .routes.registers import registers_bp
    from .routes.sales import sales_bp
    from .routes.expenses import expenses_bp
    from .routes.nursing import nursing_bp
    from .routes.suppliers import suppliers_bp, purchases_bp
    from .routes.reports import reports_bp
    from .routes.users import users_bp
    from .routes.store import store_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(session_bp)
    app.register_blueprint(branches_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(transfers_bp)
    app.register_blueprint(registers_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(nursing_bp)
    app.register_blueprint(suppliers_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(store_bp)

    _register_error_handlers(app)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in set(app.config.get("CORS_ALLOWED_ORIGINS", [])):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
