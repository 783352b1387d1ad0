from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token
from werkzeug.security import generate_password_hash

from storefront import create_app
from storefront.config import TestConfig
from storefront.errors import UpstreamError
from storefront.extensions import db
from storefront.model import Order, OrderItem, OrderStatus, PaymentMethod, Product, User
from storefront.services.payments import PaymentGateway

PASSWORD = "Secret#123"
ADDRESS = {
    "first_name": "Mona",
    "last_name": "Adel",
    "email": "mona@shop.com",
    "street": "12 Nile St",
    "city": "Cairo",
    "state": "Cairo",
    "zip": "11511",
    "country": "Egypt",
    "phone_number": "+201001234567",
}


class FakePayments(PaymentGateway):
    def __init__(self):
        super().__init__("sk_test_fake", "egp")
        self.sessions = []
        self.status = "paid"
        self.fail = False

    def create_checkout_session(self, line_items, success_url, cancel_url, metadata=None):
        if self.fail:
            raise UpstreamError("Stripe error: card network unavailable")
        session_id = f"cs_test_{len(self.sessions) + 1}"
        self.sessions.append({
            "id": session_id,
            "line_items": line_items,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        })
        return {"id": session_id, "url": f"https://checkout.stripe.test/{session_id}"}

    def payment_status(self, session_id):
        return self.status


class FakeImages:
    def __init__(self):
        self.uploaded = []
        self.deleted = []

    def upload(self, file_storage):
        n = len(self.uploaded) + 1
        self.uploaded.append(file_storage.filename)
        return f"https://img.test/products/{n}.png", f"products/{n}"

    def delete(self, public_id):
        self.deleted.append(public_id)


class FakeMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    def _record(self, kind, to, token):
        if self.fail:
            raise UpstreamError("Failed to send email")
        self.sent.append({"kind": kind, "to": to, "token": token})

    def send_verification_email(self, to, token):
        self._record("verify", to, token)

    def send_password_reset_email(self, to, token):
        self._record("reset", to, token)

    def last(self, kind):
        return [m for m in self.sent if m["kind"] == kind][-1]


class FakeGoogle:
    def __init__(self):
        self.profile = {"sub": "google-123", "email": "gina@shop.com", "name": "Gina", "email_verified": True}

    def authorization_url(self, state):
        return f"https://accounts.google.test/auth?state={state}"

    def exchange_code(self, code):
        if code == "bad":
            raise UpstreamError("Google authentication failed")
        return dict(self.profile)


@pytest.fixture
def app():
    app = create_app(TestConfig)
    app.extensions["payments"] = FakePayments()
    app.extensions["images"] = FakeImages()
    app.extensions["mailer"] = FakeMailer()
    app.extensions["google_oauth"] = FakeGoogle()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def payments(app):
    return app.extensions["payments"]


@pytest.fixture
def images(app):
    return app.extensions["images"]


@pytest.fixture
def mailer(app):
    return app.extensions["mailer"]


@pytest.fixture
def make_user(app):
    def _make(email="shopper@shop.com", password=PASSWORD, role="user", verified=True, name="Shopper", cart=None):
        with app.app_context():
            u = User(
                name=name,
                email=email,
                password_hash=generate_password_hash(password) if password else None,
                role=role,
                is_verified=verified,
                cart_data=cart or {},
            )
            db.session.add(u)
            db.session.commit()
            return u.id
    return _make


@pytest.fixture
def make_product(app):
    def _make(name="Cotton Tee", price="100.00", stock=10, sizes=("S", "M", "L"),
              category="Men", sub_category="Topwear", bestseller=False, description=None):
        with app.app_context():
            p = Product(
                name=name,
                description=description or f"{name} description",
                price=Decimal(price),
                stock=stock,
                category=category,
                sub_category=sub_category,
                sizes=list(sizes),
                bestseller=bestseller,
            )
            db.session.add(p)
            db.session.commit()
            return p.id
    return _make


@pytest.fixture
def make_order(app):
    def _make(user_id, product_id, status=OrderStatus.DELIVERED, quantity=1, price="100.00"):
        with app.app_context():
            order = Order(
                user_id=user_id,
                status=status.value,
                delivery_fee=Decimal("50"),
                total_amount=Decimal(price) * quantity + Decimal("50"),
                address=ADDRESS,
                payment_method=PaymentMethod.COD.value,
            )
            order.items = [OrderItem(product_id=product_id, name="Cotton Tee", size="M",
                                     unit_price=Decimal(price), quantity=quantity,
                                     line_total=Decimal(price) * quantity)]
            db.session.add(order)
            db.session.commit()
            return order.id
    return _make


@pytest.fixture
def headers_for(app):
    def _headers(user_id):
        with app.app_context():
            token = create_access_token(identity=str(user_id))
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def user_headers(user, headers_for):
    return headers_for(user)


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@shop.com", role="admin", name="Admin")


@pytest.fixture
def admin_headers(admin, headers_for):
    return headers_for(admin)


@pytest.fixture
def fetch(app):
    """Load a row by primary key in a fresh app context."""
    def _fetch(model, pk):
        with app.app_context():
            obj = db.session.get(model, pk)
            if obj is not None:
                db.session.expunge(obj)
            return obj
    return _fetch
