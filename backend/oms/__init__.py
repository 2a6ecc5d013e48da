# backend/oms/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate
from .cache import init_cache
from .notifications import init_notifications


def create_app(bus=None, **overrides) -> Flask:
    """
    Application factory.

    Keyword overrides are applied on top of Config before any extension is
    initialized (tests pass TESTING and SQLALCHEMY_DATABASE_URI this way).
    `bus` replaces the default blinker-backed notification bus.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    app.config.update(overrides)

    logging.getLogger("oms").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    init_notifications(app, bus)
    init_cache(app)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.orders import orders_bp
    from .routes.employee import employee_bp
    from .routes.invoices import invoices_bp
    from .routes.returns import returns_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(employee_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(returns_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
