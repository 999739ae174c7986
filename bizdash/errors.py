"""
bizdash/errors.py

Error taxonomy shared by the validation layer, the storage interface and the routes.

Every failure leaves the API as JSON with a stable "message" field:
- ValidationFailed -> 400 (+ "errors": per-field details)
- Unauthorized     -> 401
- NotFound         -> 404
- Conflict         -> 409
- Unavailable      -> 503
- anything else    -> 500 "Internal server error" (details only in the log)
"""

from __future__ import annotations

import logging
from typing import Any

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .extensions import db

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base class for errors that map onto an HTTP status and a safe message."""

    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message}


class ValidationFailed(ApiError):
    """
    Input failed validation.

    errors is a list of {"field", "code", "message"} dicts (codes: required,
    invalid_format, invalid_number) or, for batch imports, {"index", "errors"} dicts.
    """

    status_code = 400
    message = "Validation failed"

    def __init__(self, errors: list[dict[str, Any]], message: str | None = None):
        super().__init__(message)
        self.errors = errors

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "errors": self.errors}


class Unauthorized(ApiError):
    status_code = 401
    message = "Authentication required"


class NotFound(ApiError):
    status_code = 404
    message = "Not found"


class Conflict(ApiError):
    status_code = 409
    message = "Conflicts with existing data"


class Unavailable(ApiError):
    status_code = 503
    message = "Storage is temporarily unavailable"


def error_response(error: ApiError):
    return jsonify(error.to_dict()), error.status_code


def register_error_handlers(app: Flask) -> None:
    """Install JSON error handlers on the application."""

    @app.errorhandler(ApiError)
    def _handle_api_error(error: ApiError):
        return error_response(error)

    @app.errorhandler(HTTPException)
    def _handle_http_exception(error: HTTPException):
        # Covers routing 404/405, malformed JSON bodies and CSRF failures
        return jsonify({"message": error.description or error.name}), error.code or 500

    @app.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        logger.exception("Unhandled error while processing request")
        db.session.rollback()
        return jsonify({"message": ApiError.message}), 500
