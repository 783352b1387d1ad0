# storefront/model/product.py
from sqlalchemy.sql import func
from ..extensions import db


class Product(db.Model):
    __tablename__ = "product"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False, default="")

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)

    category = db.Column(db.String(120), nullable=False, index=True)
    sub_category = db.Column(db.String(120), nullable=False, index=True)
    sizes = db.Column(db.JSON, nullable=False, default=list)     # e.g. ["S", "M", "L"]
    bestseller = db.Column(db.Boolean, default=False)

    average_rating = db.Column(db.Float, nullable=False, default=0.0)
    ratings = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, server_default=func.now(), index=True)
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    images = db.relationship(
        "ProductImage",
        backref="product",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ProductImage.position.asc()",
    )
    reviews = db.relationship(
        "Review",
        backref="product",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Review.created_at.desc()",
    )

    def offers_size(self, size) -> bool:
        return size in (self.sizes or [])

    def recompute_rating(self):
        self.ratings = len(self.reviews)
        self.average_rating = (
            sum(r.rating for r in self.reviews) / len(self.reviews) if self.reviews else 0.0
        )
        return self.average_rating

    def as_api(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": float(self.price or 0),
            "stock": self.stock,
            "category": self.category,
            "sub_category": self.sub_category,
            "sizes": list(self.sizes or []),
            "bestseller": bool(self.bestseller),
            "images": [img.url for img in self.images],
            "average_rating": self.average_rating,
            "ratings": self.ratings,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class ProductImage(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False, index=True)
    url = db.Column(db.String(1024), nullable=False)
    public_id = db.Column(db.String(255))    # image store identifier, used for deletion
    position = db.Column(db.Integer, default=0)


class Review(db.Model):
    __table_args__ = (db.UniqueConstraint("product_id", "user_id", name="uq_review_product_user"),)

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, server_default=func.now())

    user = db.relationship("User", lazy="joined")

    def as_api(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "rating": self.rating,
            "comment": self.comment,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
