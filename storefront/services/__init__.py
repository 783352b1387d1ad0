# storefront/services/__init__.py
from .payments import PaymentGateway
from .images import ImageStore
from .mailer import Mailer
from .google_oauth import GoogleOAuthClient


def init_services(app):
    """Register third-party gateways on the app; tests swap these for fakes."""
    app.extensions["payments"] = PaymentGateway.from_config(app.config)
    app.extensions["images"] = ImageStore.from_config(app.config)
    app.extensions["mailer"] = Mailer.from_config(app.config)
    app.extensions["google_oauth"] = GoogleOAuthClient.from_config(app.config)
