# storefront/services/order_service.py
from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from flask import current_app
from sqlalchemy import update
from sqlalchemy.orm.attributes import flag_modified

from ..errors import BadRequest, Conflict, NotFound
from ..extensions import db
from ..model import Order, OrderItem, OrderStatus, PaymentMethod, Product
from ..utils.money import D, round_money
from . import cart_service
from .payments import get_payments


@dataclass(frozen=True)
class LineItem:
    """What was bought, at what price. Copied into OrderItem rows as-is."""
    product_id: int
    name: str
    size: Optional[str]
    unit_price: Decimal
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return round_money(self.unit_price * self.quantity)

    def to_row(self) -> OrderItem:
        return OrderItem(
            product_id=self.product_id,
            name=self.name,
            size=self.size,
            unit_price=self.unit_price,
            quantity=self.quantity,
            line_total=self.line_total,
        )


def delivery_fee() -> Decimal:
    return round_money(current_app.config["DELIVERY_FEE"])


def validate_lines(lines, claimed_amount):
    """
    Check each requested line against the live catalog and the claimed total.

    Returns ``(line_items, total)``; raises on the first failing line or when
    the recomputed total differs from ``claimed_amount``.
    """
    ids = {line.product_id for line in lines}
    products = {p.id: p for p in Product.query.filter(Product.id.in_(ids)).all()}

    wanted = {}
    items = []
    for line in lines:
        product = products.get(line.product_id)
        if product is None:
            raise NotFound(f"Product {line.product_id} not found")

        wanted[product.id] = wanted.get(product.id, 0) + line.quantity
        if product.stock < wanted[product.id]:
            raise BadRequest(f"Insufficient stock for {product.name}. Available: {product.stock}")
        if line.price != round_money(product.price):
            raise BadRequest(f"Price mismatch for {product.name}")
        if line.size is not None and not product.offers_size(line.size):
            raise BadRequest(f"Size {line.size} is not available for {product.name}")

        items.append(LineItem(
            product_id=product.id,
            name=product.name,
            size=line.size,
            unit_price=round_money(product.price),
            quantity=line.quantity,
        ))

    total = round_money(sum((i.line_total for i in items), D(0)) + delivery_fee())
    if claimed_amount != total:
        current_app.logger.warning("Order total mismatch: claimed %s, computed %s", claimed_amount, total)
        raise BadRequest("Invalid total amount")
    return items, total


def _quantities(order: Order):
    per_product = OrderedDict()
    for item in order.items:
        if item.product_id is not None:
            per_product[item.product_id] = per_product.get(item.product_id, 0) + item.quantity
    return per_product


def _take_stock(product_id: int, quantity: int) -> bool:
    """Conditional decrement; False when fewer than ``quantity`` units are left."""
    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
    )
    return result.rowcount == 1


def _clear_cart(user):
    if user is not None:
        user.cart_data = {}
        flag_modified(user, "cart_data")


def _new_order(user, items, total, address, method: PaymentMethod) -> Order:
    order = Order(
        user_id=user.id,
        status=OrderStatus.ORDER_PLACED.value,
        delivery_fee=delivery_fee(),
        total_amount=total,
        address=address.model_dump(),
        payment_method=method.value,
        payment=False,
    )
    order.items = [i.to_row() for i in items]
    db.session.add(order)
    return order


def place_cod(user, req) -> Order:
    items, total = validate_lines(req.items, req.amount)
    order = _new_order(user, items, total, req.address, PaymentMethod.COD)
    db.session.flush()

    for product_id, qty in _quantities(order).items():
        if not _take_stock(product_id, qty):
            name = next(i.name for i in items if i.product_id == product_id)
            db.session.rollback()
            current_app.logger.warning("COD order rejected, %s sold out", name)
            raise Conflict(f"{name} just sold out")

    _clear_cart(user)
    db.session.commit()
    current_app.logger.info("Order %s placed (COD) by user %s, total %s", order.id, user.id, total)
    return order


def _verify_url(origin, order_id, success):
    return f"{origin}/verify?success={str(success).lower()}&orderId={order_id}&sessionId={{CHECKOUT_SESSION_ID}}"


def place_stripe(user, req, origin: str):
    """Persist an unpaid order and open a checkout session for it."""
    items, total = validate_lines(req.items, req.amount)
    order = _new_order(user, items, total, req.address, PaymentMethod.STRIPE)
    db.session.commit()

    payments = get_payments()
    line_items = [payments.line_item(i.name, i.unit_price, i.quantity) for i in items]
    line_items.append(payments.line_item("Delivery Charges", delivery_fee(), 1))
    try:
        session = payments.create_checkout_session(
            line_items,
            success_url=_verify_url(origin, order.id, True),
            cancel_url=_verify_url(origin, order.id, False),
            metadata={"order_id": str(order.id), "user_id": str(user.id)},
        )
    except Exception:
        order_id = order.id
        db.session.delete(order)
        db.session.commit()
        current_app.logger.error("Deleted order %s after checkout session failure", order_id)
        raise

    order.stripe_session_id = session["id"]
    db.session.commit()
    current_app.logger.info("Order %s awaiting Stripe payment (session %s)", order.id, session["id"])
    return order, session


def verify_stripe(user, order_id: int, session_id: str) -> Optional[Order]:
    """
    Settle a Stripe order from the provider's view of the session.

    Returns the paid order, or None when the payment did not go through
    (the order is deleted in that case). Verifying an order that is already
    paid changes nothing.
    """
    order = db.session.get(Order, order_id)
    if order is None or order.user_id != user.id:
        raise NotFound("Order not found")
    if order.payment_method != PaymentMethod.STRIPE.value:
        raise BadRequest("Order is not a card payment")
    if order.payment:
        return order
    if not order.stripe_session_id or session_id != order.stripe_session_id:
        raise BadRequest("Session does not belong to this order")

    status = get_payments().payment_status(session_id)
    if status != "paid":
        db.session.delete(order)
        db.session.commit()
        current_app.logger.info("Order %s deleted, Stripe status %s", order_id, status)
        return None

    for product_id, qty in _quantities(order).items():
        if not _take_stock(product_id, qty):
            # money is already captured; record the shortfall for manual follow-up
            current_app.logger.error("Paid order %s short on stock for product %s", order.id, product_id)

    order.payment = True
    order.stripe_session_id = session_id
    _clear_cart(user)
    db.session.commit()
    current_app.logger.info("Order %s paid via Stripe", order.id)
    return order


def summary(user) -> dict:
    cart = cart_service.normalize(user.cart_data)
    lines, subtotal = cart_service.priced_lines(cart, strict=True)
    fee = delivery_fee()
    return {
        "items": lines,
        "subtotal": float(subtotal),
        "delivery_fee": float(fee),
        "total_amount": float(round_money(subtotal + fee)),
    }


def user_orders(user, page: int, limit: int):
    return (
        Order.query.filter_by(user_id=user.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .paginate(page=page, per_page=limit, error_out=False)
    )


def all_orders(page: int, limit: int, sort: str = "date-desc"):
    if sort == "date-asc":
        ordering = (Order.created_at.asc(), Order.id.asc())
    elif sort == "date-desc":
        ordering = (Order.created_at.desc(), Order.id.desc())
    else:
        raise BadRequest("Invalid sort option")
    return Order.query.order_by(*ordering).paginate(page=page, per_page=limit, error_out=False)


def set_status(order_id: int, status: OrderStatus) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound("Order not found")
    previous = order.status
    order.status = status.value
    db.session.commit()
    current_app.logger.info("Order %s status %s -> %s", order.id, previous, order.status)
    return order
