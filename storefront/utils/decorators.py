# ------- storefront/utils/decorators.py -------
from functools import wraps
from flask import g, jsonify
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from ..extensions import db
from ..utils.api import api_error
from ..model.user import User


def _current_user(optional=False):
    verify_jwt_in_request(optional=optional)
    uid = get_jwt_identity()
    try:
        uid = int(uid)
    except (TypeError, ValueError):
        uid = None
    return db.session.get(User, uid) if uid else None


def optional_user():
    """The authenticated user, or None for anonymous requests."""
    if "current_user" not in g:
        g.current_user = _current_user(optional=True)
    return g.current_user


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        u = _current_user()
        if not u:
            return jsonify(api_error("Unauthorized: User not found")), 401
        g.current_user = u
        return fn(*args, **kwargs)
    return wrapper


def role_required(*roles, message: str | None = None):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            u = _current_user()
            if not u:
                return jsonify(api_error("Unauthorized: User not found")), 401
            if u.role not in roles:
                return jsonify(api_error(message or "Forbidden")), 403
            g.current_user = u
            return fn(*args, **kwargs)
        return wrapper
    return decorator


admin_required = role_required("admin", message="Forbidden: Admin access required")


def verified_required(fn):
    # stack below login_required
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not g.current_user.is_verified:
            return jsonify(api_error("Please verify your email before proceeding")), 403
        return fn(*args, **kwargs)
    return wrapper
