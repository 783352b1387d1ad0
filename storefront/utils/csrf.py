# storefront/utils/csrf.py
import hmac
import secrets

from flask import current_app, request
from itsdangerous import BadSignature, URLSafeTimedSerializer

from ..errors import Forbidden
from .api import ok

CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"
CSRF_MAX_AGE = 60 * 60 * 12
SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}


def _serializer():
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt="csrf-token")


def generate_csrf_token() -> str:
    return _serializer().dumps(secrets.token_hex(16))


def protect():
    """before_request hook: state-changing calls must echo the cookie token in a header."""
    if not current_app.config.get("CSRF_ENABLED", True) or request.method in SAFE_METHODS:
        return None
    header = request.headers.get(CSRF_HEADER) or ""
    cookie = request.cookies.get(CSRF_COOKIE) or ""
    if not header or not cookie or not hmac.compare_digest(header, cookie):
        current_app.logger.warning("CSRF check failed for %s %s", request.method, request.path)
        raise Forbidden("Invalid or missing CSRF token")
    try:
        _serializer().loads(header, max_age=CSRF_MAX_AGE)
    except BadSignature:
        raise Forbidden("Invalid or expired CSRF token")
    return None


def init_csrf(app):
    app.before_request(protect)

    @app.get("/api/csrf-token")
    def csrf_token():
        token = generate_csrf_token()
        resp = ok("CSRF token generated", {"csrf_token": token})
        resp.set_cookie(
            CSRF_COOKIE, token,
            httponly=True,
            secure=app.config.get("COOKIE_SECURE", False),
            samesite="Strict",
            max_age=CSRF_MAX_AGE,
        )
        return resp
