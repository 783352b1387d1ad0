# storefront/cart/routes.py
import json

from flask import current_app, g, request

from ..schemas import CartAddRequest, CartMergeRequest, CartRemoveRequest, CartUpdateRequest, load
from ..services import cart_service
from ..utils.api import ok
from ..utils.decorators import login_required, optional_user
from . import bp

CART_COOKIE = "cart_data"
CART_COOKIE_MAX_AGE = 7 * 24 * 3600


# ---- helpers ---------------------------------------------------------------

def _guest_cart_raw():
    raw = request.cookies.get(CART_COOKIE)
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        current_app.logger.debug("Discarding unreadable cart cookie")
        return {}


def _current_cart(user):
    if user is not None:
        return cart_service.normalize(user.cart_data)
    return cart_service.normalize(_guest_cart_raw())


def _store(user, cart, message, status=200):
    """Persist the cart where it lives (account or cookie) and build the response."""
    if user is not None:
        cart_service.save_user_cart(user, cart)
        return ok(message, {"cart_data": cart}, status)

    resp = ok(message, {"cart_data": cart}, status)
    resp.set_cookie(
        CART_COOKIE,
        json.dumps(cart, separators=(",", ":")),
        max_age=CART_COOKIE_MAX_AGE,
        httponly=True,
        samesite="Lax",
        secure=current_app.config.get("COOKIE_SECURE", False),
    )
    return resp


# ---- routes ----------------------------------------------------------------

@bp.post("/add")
def add_to_cart():
    body = load(CartAddRequest)
    user = optional_user()
    cart = cart_service.add_item(_current_cart(user), body.product_id, body.size, body.quantity)
    current_app.logger.debug("Cart add %s/%s x%d", body.product_id, body.size, body.quantity)
    return _store(user, cart, "Added to cart")


@bp.post("/update")
def update_cart():
    body = load(CartUpdateRequest)
    user = optional_user()
    cart = cart_service.update_item(_current_cart(user), body.product_id, body.size, body.quantity)
    return _store(user, cart, "Cart updated")


@bp.post("/remove")
def remove_from_cart():
    body = load(CartRemoveRequest)
    user = optional_user()
    cart = cart_service.remove_item(_current_cart(user), body.product_id, body.size)
    return _store(user, cart, "Item removed from cart")


@bp.get("")
def get_cart():
    user = optional_user()
    cart = _current_cart(user)
    lines, total = cart_service.priced_lines(cart)
    return ok("Cart fetched", {
        "cart_data": cart,
        "items": lines,
        "total_cost": float(total),
    })


@bp.post("/merge")
@login_required
def merge_cart():
    """Fold the guest cart (body or cookie) into the signed-in user's cart."""
    body = load(CartMergeRequest)
    guest = body.cart_data if body.cart_data is not None else _guest_cart_raw()

    user = g.current_user
    merged, ignored = cart_service.merge(cart_service.normalize(user.cart_data), guest)
    cart_service.save_user_cart(user, merged)

    resp = ok("Cart merged successfully", {"cart_data": merged, "ignored_items": ignored})
    resp.delete_cookie(CART_COOKIE)
    return resp
