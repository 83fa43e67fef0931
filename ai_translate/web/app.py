"""Flask application configuration, blueprint registration and error mapping."""

from __future__ import annotations

from typing import Tuple

from flask import Flask, Response, jsonify
from werkzeug.exceptions import HTTPException

from ai_translate.logger import get_logger
from ai_translate.ai.exceptions import (
    BackendAuthError,
    BackendError,
    BackendRequestError,
    BackendTimeoutError,
    DocumentNotFoundError,
    OutputMalformedError,
    PreconditionError,
    TranslationError,
)

from .routes.translation import translation_bp
from .routes.settings import settings_bp
from .routes.content import content_bp

logger = get_logger(__name__)

API_PREFIX = "/api/ai-translate"


def get_error_status(error: TranslationError) -> int:
    """HTTP status for a translation error (most specific class first)."""
    if isinstance(error, PreconditionError):
        return 400
    if isinstance(error, DocumentNotFoundError):
        return 404
    if isinstance(error, BackendTimeoutError):
        return 504
    if isinstance(error, (BackendAuthError, BackendRequestError, OutputMalformedError, BackendError)):
        return 502
    return 500


def error_response(error: TranslationError) -> Tuple[Response, int]:
    """JSON body and status code for a translation error."""
    payload = {"error": str(error), "code": error.code}
    if error.details:
        payload["details"] = error.details
    if error.retryable:
        payload["retryable"] = True
    return jsonify(payload), get_error_status(error)


def build_app() -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)

    # Ensure JSON responses keep Unicode data.
    app.json.ensure_ascii = False

    register_blueprints(app)
    register_default_routes(app)
    register_error_handlers(app)

    return app


def register_blueprints(app: Flask) -> None:
    """Register Flask blueprints."""
    app.register_blueprint(translation_bp, url_prefix=API_PREFIX)
    app.register_blueprint(settings_bp, url_prefix=API_PREFIX)
    app.register_blueprint(content_bp, url_prefix="/api/content")


def register_default_routes(app: Flask) -> None:
    """Register default health routes."""

    def health_check():
        logger.debug("Health check requested")
        return jsonify({"status": "ok"})

    app.add_url_rule("/health", "health_check", health_check, methods=["GET"])
    app.add_url_rule(f"{API_PREFIX}/health", "api_health_check", health_check, methods=["GET"])


def register_error_handlers(app: Flask) -> None:
    """Map exceptions to JSON error bodies."""

    @app.errorhandler(TranslationError)
    def handle_translation_error(e: TranslationError):
        status = get_error_status(e)
        if status >= 500:
            logger.error(f"Request failed ({e.code}): {e}")
        else:
            logger.warning(f"Request rejected ({e.code}): {e}")
        return error_response(e)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        return jsonify({"error": e.description, "code": e.name.lower().replace(" ", "_")}), e.code

    @app.errorhandler(Exception)
    def internal_error(e: Exception):
        logger.exception("Internal server error: %s", e)
        return jsonify({"error": "Internal server error", "code": "internal_error"}), 500
