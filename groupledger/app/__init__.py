"""
app/__init__.py — Flask application factory.

create_app(config_name) builds and returns a configured app. Nothing is
initialised at import time, so tests can build isolated app instances and
Alembic can import the models without starting a server.

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Set the "groupledger" logger level from LOG_LEVEL
  3. Initialise extensions (SQLAlchemy, Marshmallow, Limiter) via init_app()
  4. Register all route blueprints under /api/v1
  5. Register global error handlers (AppError, ValidationError,
     RateLimitExceeded, HTTPException, Exception)
  6. Serialise Decimal as a string in every JSON response
  7. Attach the default receivers to the ledger signals
"""

from __future__ import annotations

import logging
import traceback
from decimal import Decimal

from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from flask_limiter.errors import RateLimitExceeded
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from groupledger.config import config_by_name, validate_production_config


# ── Custom JSON provider ───────────────────────────────────────────────────
# Monetary amounts are sent as strings, never JSON numbers.

class DecimalJSONProvider(DefaultJSONProvider):
    """Decimal("10.50") → "10.50" (not 10.5 or 10.500000001)."""

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Args:
        config_name: One of "development", "testing", "production".
                     Unknown names fall back to "development".
    """
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    # Service loggers live under "groupledger.*" and propagate to app.logger's handler.
    logging.getLogger("groupledger").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from groupledger.app.extensions import db, limiter, ma
    db.init_app(app)
    ma.init_app(app)
    limiter.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Populates SQLAlchemy's MetaData for db.create_all() and Alembic.
    with app.app_context():
        from groupledger.app.models import (  # noqa: F401
            category,
            expense,
            group,
            membership,
            notification,
            refresh_token,
            settlement,
            split,
            user,
        )

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)

    from groupledger.app.signals import connect_default_receivers
    connect_default_receivers()

    return app


def _register_blueprints(app: Flask) -> None:
    """
    Registers every blueprint under /api/v1.

    expenses, settlements and balances are mounted at /api/v1 itself
    because each owns group-scoped paths (/groups/<id>/...) as well as
    paths of its own (/expenses/<id>, /settlements/mine, /balances/mine).
    """
    from groupledger.app.routes.auth import auth_bp
    from groupledger.app.routes.balances import balances_bp
    from groupledger.app.routes.categories import categories_bp
    from groupledger.app.routes.expenses import expenses_bp
    from groupledger.app.routes.exports import exports_bp
    from groupledger.app.routes.groups import groups_bp
    from groupledger.app.routes.notifications import notifications_bp
    from groupledger.app.routes.settlements import settlements_bp
    from groupledger.app.routes.users import users_bp

    app.register_blueprint(auth_bp,          url_prefix="/api/v1/auth")
    app.register_blueprint(users_bp,         url_prefix="/api/v1/users")
    app.register_blueprint(groups_bp,        url_prefix="/api/v1/groups")
    app.register_blueprint(expenses_bp,      url_prefix="/api/v1")
    app.register_blueprint(settlements_bp,   url_prefix="/api/v1")
    app.register_blueprint(balances_bp,      url_prefix="/api/v1")
    app.register_blueprint(categories_bp,    url_prefix="/api/v1/categories")
    app.register_blueprint(notifications_bp, url_prefix="/api/v1/notifications")
    app.register_blueprint(exports_bp,       url_prefix="/api/v1/export")


def _register_error_handlers(app: Flask) -> None:
    """
    Handlers:
      AppError          → {"error": {...}} with the error's own HTTP status
      ValidationError   → first marshmallow error as MISSING_FIELD /
                          INVALID_FIELD / a registered code (400)
      RateLimitExceeded → RATE_LIMITED (429)
      HTTPException     → werkzeug's status (404 unknown route, 405, ...)
      Exception         → INTERNAL_ERROR (500); traceback goes to the log,
                          never into the response
    """
    from groupledger.app.errors import AppError, ErrorCode

    known_codes = set(vars(ErrorCode).values())

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        if error.http_status >= 500:
            app.logger.error("AppError %s: %s", error.code, error.message)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Returns the FIRST error only. A message that is itself an ErrorCode
        (e.g. INVALID_AMOUNT_PRECISION) becomes the code, with a default
        message from _code_to_message().
        """
        messages = error.messages  # e.g. {"amount": ["INVALID_AMOUNT_PRECISION"]}

        field = None
        raw_message = "Invalid input."

        if isinstance(messages, dict) and messages:
            field_name, field_errors = next(iter(messages.items()))
            field = field_name if field_name != "_schema" else None

            # Nested schemas report {"splits": {0: {"share": [...]}}}.
            while isinstance(field_errors, dict) and field_errors:
                field_errors = next(iter(field_errors.values()))

            if isinstance(field_errors, list):
                raw_message = field_errors[0] if field_errors else "Invalid value."
            else:
                raw_message = str(field_errors)
        elif isinstance(messages, list) and messages:
            raw_message = messages[0]

        raw_message = str(raw_message)
        if raw_message in known_codes:
            code = raw_message
            message = _code_to_message(code)
        elif raw_message.startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
            message = raw_message
        else:
            code = ErrorCode.INVALID_FIELD
            message = raw_message

        body = {"error": {"code": code, "message": message}}
        if field is not None:
            body["error"]["field"] = field
        return jsonify(body), 400

    @app.errorhandler(RateLimitExceeded)
    def handle_rate_limited(error: RateLimitExceeded):
        app.logger.warning(
            "Rate limit hit on %s %s: %s",
            request.method, request.path, error.description,
        )
        return jsonify({
            "error": {
                "code": ErrorCode.RATE_LIMITED,
                "message": f"Too many requests ({error.description}). Try again later.",
            }
        }), 429

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        return jsonify({
            "error": {
                "code": error.name.upper().replace(" ", "_"),
                "message": error.description,
            }
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers when DEBUG or TESTING is on, so a frontend served from
    another local port can call the API with an Authorization header.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Expose-Headers"] = "Content-Disposition"

        return response


def _code_to_message(code: str) -> str:
    """Default message for a ValidationError whose message is an ErrorCode."""
    _messages = {
        "INVALID_AMOUNT_PRECISION": "Amount must have at most 2 decimal places.",
        "INVALID_SPLIT_MODE": "split_mode must be 'equal' or 'custom'.",
        "SPLITS_SENT_FOR_EQUAL_MODE": "Do not send a splits array when split_mode is 'equal'.",
        "SPLITS_REQUIRED": "A splits array is required when split_mode is 'custom'.",
        "DUPLICATE_SPLIT_USER": "The same user_id appears more than once.",
        "INVALID_AMOUNT_RANGE": "min_amount cannot be greater than max_amount.",
        "INVALID_DATE_RANGE": "start_date cannot be after end_date.",
        "SEARCH_TOO_SHORT": "Search query must be at least 2 characters.",
        "INVALID_EXPORT_FORMAT": "format must be 'detailed' or 'summary'.",
    }
    return _messages.get(code, "Invalid input.")
