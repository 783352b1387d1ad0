# storefront/services/cart_service.py
"""
Cart snapshot operations.

A cart is a plain mapping ``{product_id: {size: quantity}}`` with string
product keys and positive integer quantities. Every function here returns a
new mapping instead of mutating its argument, so the JSON column on ``User``
always sees a fresh value when the cart is saved.
"""
from copy import deepcopy

from flask import current_app
from sqlalchemy.orm.attributes import flag_modified

from ..errors import BadRequest, NotFound
from ..extensions import db
from ..model import Product
from ..utils.money import D, round_money


def _product_id(key):
    try:
        pid = int(key)
    except (TypeError, ValueError):
        return None
    return pid if pid > 0 else None


def cart_key(product_id):
    """Canonical cart key for a product id ("01" and 1 both become "1"), or None."""
    pid = _product_id(product_id)
    return str(pid) if pid else None


def normalize(raw) -> dict:
    """Drop malformed or non-positive entries from an untrusted cart mapping."""
    cart = {}
    if not isinstance(raw, dict):
        return cart
    for pid, sizes in raw.items():
        key = cart_key(pid)
        if key is None or not isinstance(sizes, dict):
            continue
        for size, qty in sizes.items():
            if isinstance(qty, int) and not isinstance(qty, bool) and qty > 0:
                kept = cart.setdefault(key, {})
                kept[str(size)] = kept.get(str(size), 0) + qty
    return cart


def quantity_of(cart: dict, product_id: str, size: str) -> int:
    return cart.get(product_id, {}).get(size, 0)


def _set(cart: dict, product_id: str, size: str, quantity: int) -> dict:
    new = deepcopy(cart)
    sizes = new.setdefault(product_id, {})
    if quantity > 0:
        sizes[size] = quantity
    else:
        sizes.pop(size, None)
    if not sizes:
        new.pop(product_id, None)
    return new


def _load_product(product_id: str) -> Product:
    pid = _product_id(product_id)
    product = db.session.get(Product, pid) if pid else None
    if not product:
        raise NotFound("Product not found")
    return product


def add_item(cart: dict, product_id: str, size: str, quantity: int) -> dict:
    product = _load_product(product_id)
    if not product.offers_size(size):
        raise BadRequest(f"Size {size} is not available for this product")

    key = str(product.id)
    existing = quantity_of(cart, key, size)
    if product.stock < quantity or product.stock < existing + quantity:
        raise BadRequest(f"Insufficient stock. Available: {product.stock}")
    return _set(cart, key, size, existing + quantity)


def update_item(cart: dict, product_id: str, size: str, quantity: int) -> dict:
    key = cart_key(product_id)
    if key is None or not quantity_of(cart, key, size):
        raise NotFound("Item not found in cart")
    if quantity == 0:
        return _set(cart, key, size, 0)

    product = _load_product(key)
    if quantity > product.stock:
        raise BadRequest(f"Insufficient stock. Available: {product.stock}")
    return _set(cart, key, size, quantity)


def remove_item(cart: dict, product_id: str, size: str) -> dict:
    key = cart_key(product_id)
    if key is None or not quantity_of(cart, key, size):
        raise NotFound("Item not found in cart")
    return _set(cart, key, size, 0)


def _products_for(cart: dict) -> dict:
    ids = [pid for pid in (_product_id(k) for k in cart) if pid]
    if not ids:
        return {}
    return {str(p.id): p for p in Product.query.filter(Product.id.in_(ids)).all()}


def priced_lines(cart: dict, strict=False):
    """
    Price every cart entry against the live catalog.

    Entries whose product is gone are skipped. Entries whose size is no
    longer offered are skipped too, unless ``strict`` is set, in which case
    they (and any entry over live stock) raise ``BadRequest``.
    Returns ``(lines, subtotal)``.
    """
    products = _products_for(cart)
    lines = []
    subtotal = D(0)
    for pid, sizes in cart.items():
        product = products.get(pid)
        if product is None:
            continue
        for size, qty in sizes.items():
            if not product.offers_size(size):
                if strict:
                    raise BadRequest(f"Size {size} is not available for {product.name}")
                continue
            if strict and qty > product.stock:
                raise BadRequest(f"Insufficient stock for {product.name}. Available: {product.stock}")
            item_total = round_money(D(product.price) * qty)
            subtotal += item_total
            lines.append({
                "product_id": product.id,
                "name": product.name,
                "price": float(product.price),
                "size": size,
                "quantity": qty,
                "item_total": float(item_total),
                "image": product.images[0].url if product.images else None,
            })
    return lines, round_money(subtotal)


def merge(account_cart: dict, guest_cart) -> tuple:
    """
    Reconcile a client-held cart into the account cart.

    Each (product, size, quantity) triple is checked on its own. Valid triples
    are added to the account quantity and the sum is clamped to live stock;
    invalid ones are collected in ``ignored`` with a reason and never abort
    the rest. Returns ``(merged_cart, ignored)``.
    """
    merged = deepcopy(account_cart)
    ignored = []
    if not isinstance(guest_cart, dict):
        return merged, ignored

    products = _products_for(guest_cart)
    for raw_key, sizes in guest_cart.items():
        raw_key = str(raw_key)
        key = cart_key(raw_key)

        def skip(size, reason):
            ignored.append({"product_id": raw_key, "size": size, "reason": reason})

        if not isinstance(sizes, dict):
            skip(None, "Invalid productId" if key is None else "Invalid size")
            continue
        if key is None:
            for size in sizes:
                skip(size, "Invalid productId")
            continue
        product = products.get(key)
        if product is None:
            for size in sizes:
                skip(size, "Product not found")
            continue

        for size, qty in sizes.items():
            if not product.offers_size(size):
                skip(size, "Invalid size")
                continue
            if not isinstance(qty, int) or isinstance(qty, bool) or qty <= 0:
                skip(size, "Invalid quantity")
                continue
            if qty > product.stock:
                skip(size, f"Insufficient stock (available: {product.stock})")
                continue
            total = min(quantity_of(merged, key, size) + qty, product.stock)
            merged = _set(merged, key, size, total)

    if ignored:
        current_app.logger.warning("Cart merge ignored %d item(s)", len(ignored))
    return merged, ignored


def save_user_cart(user, cart: dict):
    user.cart_data = cart
    flag_modified(user, "cart_data")
    db.session.commit()
    current_app.logger.info("Saved cart for user %s (%d products)", user.id, len(cart))
