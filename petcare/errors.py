"""Typed API errors and the Flask handlers that render them."""
from __future__ import annotations

from flask import Flask, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db


class ApiError(Exception):
    """Error carrying an HTTP status, a short error code and a message."""

    status_code = 500
    error = "server_error"

    def __init__(self, message: str, error: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if error is not None:
            self.error = error

    def to_dict(self) -> dict[str, str]:
        return {"error": self.error, "message": self.message}


class BadRequestError(ApiError):
    status_code = 400
    error = "bad_request"


class UnauthorizedError(ApiError):
    status_code = 401
    error = "unauthorized"


class ForbiddenError(ApiError):
    status_code = 403
    error = "forbidden"


class NotFoundError(ApiError):
    status_code = 404
    error = "not_found"


class ConflictError(ApiError):
    status_code = 409
    error = "conflict"


class InternalError(ApiError):
    status_code = 500
    error = "server_error"


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def _handle_api_error(exc: ApiError):
        if exc.status_code >= 500:
            current_app.logger.error("%s: %s", exc.error, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(SQLAlchemyError)
    def _handle_database_error(exc: SQLAlchemyError):
        db.session.rollback()
        current_app.logger.exception("Database operation failed", exc_info=exc)
        return jsonify({"error": "database_error"}), 500
