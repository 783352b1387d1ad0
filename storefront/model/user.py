# --- storefront/model/user.py ---
from sqlalchemy.sql import func
from ..extensions import db


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(180), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=True)   # null for Google-only accounts
    google_id = db.Column(db.String(64), unique=True, nullable=True)
    role = db.Column(db.String(50), nullable=False, default="user", index=True)  # roles: user, admin
    is_verified = db.Column(db.Boolean, nullable=False, default=False)

    # CartSnapshot: {product_id: {size: quantity}}
    cart_data = db.Column(db.JSON, nullable=False, default=dict)

    reset_password_token = db.Column(db.String(512), nullable=True)
    reset_password_expires = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    @property
    def is_admin(self):
        return self.role == "admin"

    def as_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "is_verified": self.is_verified,
            "google_linked": bool(self.google_id),
            "cart_data": self.cart_data or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class RefreshToken(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    token = db.Column(db.String(64), unique=True, nullable=False, index=True)
    expires_at = db.Column(db.DateTime, nullable=False)
