# ------ storefront/model/__init__.py ------

from .user import User, RefreshToken
from .product import Product, ProductImage, Review
from .order import Order, OrderItem, OrderStatus, PaymentMethod

__all__ = [
    "User",
    "RefreshToken",
    "Product",
    "ProductImage",
    "Review",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentMethod",
]
