# backend/branchpos/__init__.py
import json
from decimal import Decimal

from flask import Flask
from flask.json.provider import DefaultJSONProvider

from .config import Config
from .extensions import db, migrate


class DecimalJSONProvider(DefaultJSONProvider):
    """
    JSON numbers with a fraction are parsed as Decimal, never float.

    Decimal values are serialized as strings by the default provider.
    """

    def loads(self, s, **kwargs):
        kwargs.setdefault("parse_float", Decimal)
        return json.loads(s, **kwargs)


def _configure_logging(app: Flask) -> None:
    # app.logger is the "branchpos" logger; service module loggers propagate to it
    app.logger.setLevel(str(app.config.get("LOG_LEVEL", "INFO")).upper())


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.json = DecimalJSONProvider(app)

    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    _configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.catalog import catalog_bp
    from .routes.registers import registers_bp
    from .routes.sales import sales_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(registers_bp)
    app.register_blueprint(sales_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
