# --- storefront/errors.py ---
from flask import current_app
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from .extensions import db
from .utils.api import err


class ApiError(Exception):
    status_code = 400

    def __init__(self, message, status_code=None, data=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.data = data


class BadRequest(ApiError):
    status_code = 400

class Unauthorized(ApiError):
    status_code = 401

class Forbidden(ApiError):
    status_code = 403

class NotFound(ApiError):
    status_code = 404

class Conflict(ApiError):
    status_code = 409

class UpstreamError(ApiError):
    """A third-party service (payments, email, images, OAuth) failed."""
    status_code = 502


def _validation_errors(e: ValidationError):
    return [
        {"field": ".".join(str(p) for p in item["loc"]) or None, "message": item["msg"]}
        for item in e.errors()
    ]


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(e):
        return err(e.message, e.status_code, e.data)

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        errors = _validation_errors(e)
        first = errors[0] if errors else {"field": None, "message": "Invalid request"}
        msg = f"{first['field']}: {first['message']}" if first["field"] else first["message"]
        return err(msg, 400, {"errors": errors})

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return err(e.description or e.name, e.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        db.session.rollback()
        current_app.logger.exception("Unhandled error: %s", e)
        return err("Internal server error", 500)
