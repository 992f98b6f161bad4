from flask import jsonify, current_app
from werkzeug.exceptions import HTTPException
from marshmallow import ValidationError
import logging

from services.errors import AuthenticationFailure, ConfigurationError, TransientStoreError

logger = logging.getLogger(__name__)


def error_response(error: str, message: str, status: int, details: dict | None = None):
    payload = {"error": error, "message": message, "status": status}
    if details:
        payload["details"] = details
    return jsonify(payload), status


def unauthorized():
    # one body for every authentication failure: no hint which check failed
    return error_response("UNAUTHORIZED", "Unauthorized", 401)


def register_error_handlers(app):
    # 400 Bad Request (generic)
    @app.errorhandler(400)
    def bad_request(e):
        message = getattr(e, "description", "Bad request")
        return error_response("BAD_REQUEST", message, 400)

    @app.errorhandler(401)
    def handle_unauthorized(e):
        return unauthorized()

    @app.errorhandler(403)
    def forbidden(e):
        return error_response("FORBIDDEN", "Forbidden", 403)

    # 404 Not Found
    @app.errorhandler(404)
    def not_found(e):
        return error_response("NOT_FOUND", "Resource not found", 404)

    # 422 Unprocessable Entity (validation)
    @app.errorhandler(422)
    def unprocessable(e):
        message = getattr(e, "description", "Unprocessable entity")
        return error_response("VALIDATION_ERROR", message, 422)

    # Marshmallow validation errors map to 422
    @app.errorhandler(ValidationError)
    def handle_validation_error(err: ValidationError):
        # err.messages contains field-level details (never the submitted values)
        return error_response("VALIDATION_ERROR", "Invalid input", 422, details=err.messages)

    @app.errorhandler(AuthenticationFailure)
    def handle_authentication_failure(err: AuthenticationFailure):
        logger.info("Authentication failure: %s", err.reason)
        return unauthorized()

    @app.errorhandler(TransientStoreError)
    def handle_store_error(err: TransientStoreError):
        logger.error("Store unavailable: %s", err)
        return error_response("STORE_UNAVAILABLE", "Service temporarily unavailable", 503)

    @app.errorhandler(ConfigurationError)
    def handle_configuration_error(err: ConfigurationError):
        logger.error("Configuration error: %s", err)
        return error_response("INTERNAL_ERROR", "An unexpected error occurred", 500)

    # Werkzeug HTTPExceptions map to their status codes
    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        return error_response(err.name.upper().replace(" ", "_"), err.description, err.code or 400)

    # 500 Internal Error (catch-all)
    @app.errorhandler(Exception)
    def internal_error(err: Exception):
        logger.exception("Unhandled exception", exc_info=err)
        # In dev, include exception details to speed up debugging
        details = None
        if current_app and current_app.debug:
            details = {"type": err.__class__.__name__, "message": str(err)}
        return error_response("INTERNAL_ERROR", "An unexpected error occurred", 500, details=details)
