# --- storefront/__init__.py ---
from flask import Flask, current_app, jsonify

from .config import Config
from .extensions import db, jwt, cors, migrate, limiter
from .utils.api import api_error


def _register_jwt_handlers():
    @jwt.unauthorized_loader
    def missing_token(reason):
        current_app.logger.debug("Missing token: %s", reason)
        return jsonify(api_error("Unauthorized: No token provided")), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        current_app.logger.debug("Invalid token: %s", reason)
        return jsonify(api_error("Unauthorized: Invalid token")), 401

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return jsonify(api_error("Unauthorized: Token expired")), 401


def create_app(config_object=Config):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)
    config_object.init_app(app)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Init extensions
    db.init_app(app)
    jwt.init_app(app)
    origins = [o.strip() for o in app.config["CORS_ORIGINS"].split(",") if o.strip()]
    cors.init_app(app, resources={r"/api/*": {"origins": origins if origins != ["*"] else "*"}},
                  supports_credentials=True)
    migrate.init_app(app, db)
    limiter.init_app(app)

    from .errors import register_error_handlers
    from .utils.csrf import init_csrf
    from .services import init_services
    from .cli import register_cli

    _register_jwt_handlers()
    register_error_handlers(app)
    init_csrf(app)
    init_services(app)
    register_cli(app)

    # Register blueprints
    from .auth import bp as auth_bp; app.register_blueprint(auth_bp)
    from .product import bp as product_bp; app.register_blueprint(product_bp)
    from .cart import bp as cart_bp; app.register_blueprint(cart_bp)
    from .order import bp as order_bp; app.register_blueprint(order_bp)

    @app.get("/")
    def health():
        return jsonify(ok=True, msg="API running")

    with app.app_context():
        from . import model  # noqa: F401
        db.create_all()

    app.logger.info("Storefront API ready (%d routes)", len(list(app.url_map.iter_rules())))
    return app
