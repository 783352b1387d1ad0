# storefront/order/routes.py
from flask import current_app, g, request

from ..schemas import PlaceOrderRequest, StatusUpdateRequest, VerifyStripeRequest, load
from ..services import order_service
from ..utils.api import err, ok
from ..utils.decorators import admin_required, login_required
from ..utils.paging import page_args, page_meta
from . import bp


def _origin():
    """Where Stripe should send the shopper back to."""
    origin = (request.headers.get("Origin") or "").strip().rstrip("/")
    if not origin:
        return current_app.config["FRONTEND_URL"].rstrip("/")
    if not origin.startswith(("http://", "https://")):
        origin = f"https://{origin}"
    return origin


@bp.post("/place")
@login_required
def place_order():
    body = load(PlaceOrderRequest)
    order = order_service.place_cod(g.current_user, body)
    return ok("Order placed", {"order": order.as_api()}, 201)


@bp.post("/stripe")
@login_required
def place_order_stripe():
    body = load(PlaceOrderRequest)
    order, session = order_service.place_stripe(g.current_user, body, _origin())
    return ok("Checkout session created", {
        "session_url": session["url"],
        "session_id": session["id"],
        "order_id": order.id,
    })


@bp.post("/verifyStripe")
@login_required
def verify_stripe():
    body = load(VerifyStripeRequest)
    order = order_service.verify_stripe(g.current_user, body.order_id, body.session_id)
    if order is None:
        return err("Payment failed or cancelled", 400, {"order_id": body.order_id})
    return ok("Payment successful", {"order": order.as_api()})


@bp.post("/summary")
@login_required
def order_summary():
    return ok("Order summary", order_service.summary(g.current_user))


@bp.route("/userorders", methods=["GET", "POST"])
@login_required
def user_orders():
    page, limit = page_args(default_limit=10)
    paged = order_service.user_orders(g.current_user, page, limit)
    return ok("Orders fetched", {
        "orders": [o.as_api() for o in paged.items],
        "pagination": page_meta(paged, limit),
    })


# ---- admin -----------------------------------------------------------------

@bp.get("/list")
@admin_required
def all_orders():
    """
    Query params:
      - page, limit
      - sort=date-desc (default) | date-asc
    """
    page, limit = page_args(default_limit=20)
    sort = request.args.get("sort", "date-desc")
    paged = order_service.all_orders(page, limit, sort)
    return ok("Orders fetched", {
        "orders": [o.as_api(with_customer=True) for o in paged.items],
        "pagination": page_meta(paged, limit),
    })


@bp.post("/status")
@admin_required
def update_status():
    body = load(StatusUpdateRequest)
    order = order_service.set_status(body.order_id, body.status)
    return ok("Order status updated", {"order": order.as_api()})
