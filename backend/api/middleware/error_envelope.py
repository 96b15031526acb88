"""
Error envelope middleware - Standardize all error responses.

Provides consistent error response format:
{
    "error": {
        "code": "NO_COMPARABLE_DATA",
        "message": "No competitor data found for Baner, Pune...",
        "requestId": "uuid"
    }
}

Domain errors carry their own status and code (services/errors.py);
input ValidationError maps to 400 INVALID_PARAMS.
"""

import logging
from flask import Flask, jsonify, g
from werkzeug.exceptions import HTTPException

from services.errors import MarketIntelError
from utils.normalize import ValidationError


logger = logging.getLogger('api.middleware.error')


def make_error_response(
    code: str,
    message: str,
    status_code: int,
    field: str = None,
    details: dict = None,
):
    """
    Create a standardized error response.

    Returns:
        Tuple of (response, status_code)
    """
    request_id = getattr(g, 'request_id', None)

    error = {
        "error": {
            "code": code,
            "message": message,
            "requestId": request_id,
        }
    }
    if field:
        error["error"]["field"] = field
    if details:
        error["error"]["details"] = details

    response = jsonify(error)
    if request_id:
        response.headers['X-Request-ID'] = request_id
    return response, status_code


def setup_error_handlers(app: Flask) -> None:
    """
    Set up standardized error handlers on Flask app.

    Handles:
    - MarketIntelError subclasses (status from the exception class)
    - ValidationError from input normalization (400)
    - HTTP exceptions (404, 405, ...)
    - Unhandled Python exceptions (500, logged with traceback)
    """

    @app.errorhandler(MarketIntelError)
    def handle_domain_error(error):
        if error.status_code >= 500:
            logger.error("%s: %s", error.code, error.message)
        else:
            logger.info("%s: %s", error.code, error.message)
        return make_error_response(
            error.code,
            error.message,
            error.status_code,
            details={k: v for k, v in error.details.items() if v is not None} or None,
        )

    @app.errorhandler(ValidationError)
    def handle_validation_error(error):
        return make_error_response("INVALID_PARAMS", str(error), 400, field=error.field)

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        """Handle Flask/Werkzeug HTTP exceptions."""
        # "Not Found" -> "NOT_FOUND"
        code = error.name.upper().replace(' ', '_')
        return make_error_response(code, error.description, error.code)

    @app.errorhandler(Exception)
    def handle_generic_error(error):
        """Handle unhandled Python exceptions."""
        request_id = getattr(g, 'request_id', None)
        logger.exception(
            f"Unhandled error: {error}",
            extra={
                "event": "unhandled_error",
                "request_id": request_id,
                "error_type": type(error).__name__,
            }
        )
        return make_error_response("INTERNAL_ERROR", "An unexpected error occurred", 500)
