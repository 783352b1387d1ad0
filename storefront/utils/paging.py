# --- storefront/utils/paging.py ---
from flask import request

from ..errors import BadRequest


def _int_arg(name, default):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return None


def page_args(default_limit=20, max_limit=100):
    """Read ?page&limit from the query string; bad values are a 400."""
    page = _int_arg("page", 1)
    limit = _int_arg("limit", default_limit)
    if page is None or page < 1:
        raise BadRequest("Invalid page number")
    if limit is None or limit < 1 or limit > max_limit:
        raise BadRequest(f"Invalid limit (1-{max_limit})")
    return page, limit


def page_meta(pagination, limit):
    return {
        "total": pagination.total,
        "current_page": pagination.page,
        "last_page": pagination.pages or 1,
        "per_page": limit,
        "has_next": pagination.has_next,
        "has_prev": pagination.has_prev,
    }
