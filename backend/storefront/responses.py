# Overview: JSON response envelope {status, message, data} and exception translation for routes.

from __future__ import annotations

from flask import current_app, jsonify
from sqlalchemy.exc import IntegrityError

from .errors import StorefrontError
from .extensions import db


def success_response(data=None, message: str = "OK", status_code: int = 200):
    return jsonify({"status": "success", "message": message, "data": data}), status_code


def error_response(message: str, status_code: int = 400, data=None):
    status = "fail" if status_code < 500 else "error"
    return jsonify({"status": status, "message": message, "data": data}), status_code


def domain_error_response(exc: StorefrontError):
    """Expected business failure -> 4xx envelope carrying the error's details."""
    return error_response(
        exc.message,
        exc.http_status,
        data={"error": type(exc).__name__, **exc.details},
    )


def internal_error_response(exc: Exception, log_message: str):
    """
    Unexpected failure. Unique/foreign-key violations that slipped past the
    services become 409; anything else is logged with its traceback and
    reported as 500. Only EXPOSE_ERROR_DETAILS builds echo the exception text.
    """
    db.session.rollback()
    if isinstance(exc, IntegrityError):
        current_app.logger.warning("%s: integrity error: %s", log_message, exc.orig)
        return error_response("Conflict with existing data", 409)

    current_app.logger.exception(log_message)
    data = None
    if current_app.config.get("EXPOSE_ERROR_DETAILS"):
        data = {"error": type(exc).__name__, "detail": str(exc)}
    return error_response("Internal server error", 500, data=data)
