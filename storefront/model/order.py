import enum
from datetime import datetime
from ..extensions import db


class OrderStatus(str, enum.Enum):
    ORDER_PLACED = "Order Placed"
    PENDING = "Pending"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentMethod(str, enum.Enum):
    COD = "COD"
    STRIPE = "Stripe"


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    # kept (as NULL) when the owning account is deleted
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"), nullable=True, index=True)
    status = db.Column(db.String(20), nullable=False, default=OrderStatus.ORDER_PLACED.value, index=True)

    # Money snapshot
    delivery_fee = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)

    address = db.Column(db.JSON, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False, default=PaymentMethod.COD.value)
    payment = db.Column(db.Boolean, nullable=False, default=False)
    stripe_session_id = db.Column(db.String(255), index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    user = db.relationship("User", lazy="joined")
    items = db.relationship(
        "OrderItem",
        backref="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id.asc()",
    )

    def as_api(self, with_customer=False):
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "items": [i.as_api() for i in self.items],
            "delivery_fee": float(self.delivery_fee or 0),
            "total_amount": float(self.total_amount or 0),
            "address": self.address,
            "payment_method": self.payment_method,
            "payment": self.payment,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if with_customer and self.user:
            data["customer"] = {"name": self.user.name, "email": self.user.email}
        return data


class OrderItem(db.Model):
    """Line item frozen at placement time; not linked to live product data."""
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    product_id = db.Column(db.Integer, index=True)   # reference only, no FK constraint
    name = db.Column(db.String(255), nullable=False)
    size = db.Column(db.String(32))
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)

    def as_api(self):
        return {
            "product_id": self.product_id,
            "name": self.name,
            "size": self.size,
            "price": float(self.unit_price or 0),
            "quantity": self.quantity,
            "line_total": float(self.line_total or 0),
        }
