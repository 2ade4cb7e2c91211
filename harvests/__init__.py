# harvests/__init__.py

import logging
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_cors import CORS
from .config import Config

db = SQLAlchemy()
migrate = Migrate()


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Configure logging to show INFO level messages, tagged with the request id
    from .middleware import RequestIdFilter
    app.logger.setLevel(logging.INFO)
    handler = logging.StreamHandler()
    handler.setLevel(logging.INFO)
    handler.addFilter(RequestIdFilter())
    formatter = logging.Formatter('[%(asctime)s] %(levelname)s [%(request_id)s]: %(message)s')
    handler.setFormatter(formatter)
    app.logger.addHandler(handler)

    db.init_app(app)
    migrate.init_app(app, db)

    # The SPA is served from a different origin than the API.
    CORS(app, supports_credentials=True, origins=app.config['CORS_ORIGINS'])

    # --- Request ids, request logging and JSON error handlers ---
    from .middleware import register_request_hooks, register_error_handlers
    register_request_hooks(app)
    register_error_handlers(app)

    # --- REGISTER BLUEPRINTS ---
    from .api.health import bp as health_bp
    from .api.products import bp as products_bp
    from .api.cart import bp as cart_bp
    from .api.orders import bp as orders_bp
    from .api.payments import bp as payments_bp
    from .api.webhooks import bp as webhooks_bp
    from .api.drivers import bp as drivers_bp
    from .api.jobs import bp as jobs_bp
    from .api.admin import bp as admin_bp
    from .api.invitations import bp as invitations_bp

    for blueprint in (health_bp, products_bp, cart_bp, orders_bp, payments_bp,
                      webhooks_bp, drivers_bp, jobs_bp, admin_bp, invitations_bp):
        app.register_blueprint(blueprint, url_prefix='/api')

    from .auth import bp as auth_blueprint
    app.register_blueprint(auth_blueprint, url_prefix='/auth')

    with app.app_context():
        from . import models  # noqa: F401

    return app
