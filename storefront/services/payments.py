# storefront/services/payments.py
import stripe
from flask import current_app

from ..errors import UpstreamError
from ..utils.money import to_minor_units


class PaymentGateway:
    """Thin wrapper over Stripe Checkout sessions."""

    def __init__(self, secret_key: str, currency: str):
        self.secret_key = secret_key
        self.currency = currency

    @classmethod
    def from_config(cls, config):
        return cls(config.get("STRIPE_SECRET_KEY", ""), config.get("CURRENCY", "usd"))

    def line_item(self, name: str, unit_price, quantity: int) -> dict:
        return {
            "price_data": {
                "currency": self.currency,
                "product_data": {"name": name},
                "unit_amount": to_minor_units(unit_price),
            },
            "quantity": quantity,
        }

    def create_checkout_session(self, line_items, success_url, cancel_url, metadata=None) -> dict:
        if not self.secret_key:
            raise UpstreamError("Payment provider is not configured")
        try:
            session = stripe.checkout.Session.create(
                api_key=self.secret_key,
                mode="payment",
                line_items=line_items,
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata or {},
            )
        except stripe.StripeError as e:
            current_app.logger.error("Stripe session creation failed: %s", e)
            raise UpstreamError(f"Stripe error: {e.user_message or e}")
        return {"id": session.id, "url": session.url}

    def payment_status(self, session_id: str) -> str:
        if not self.secret_key:
            raise UpstreamError("Payment provider is not configured")
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.secret_key)
        except stripe.InvalidRequestError:
            raise UpstreamError("Stripe session not found", status_code=404)
        except stripe.StripeError as e:
            current_app.logger.error("Stripe session lookup failed: %s", e)
            raise UpstreamError(f"Stripe error: {e.user_message or e}")
        return session.payment_status


def get_payments() -> PaymentGateway:
    return current_app.extensions["payments"]
