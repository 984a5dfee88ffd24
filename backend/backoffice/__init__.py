# backend/backoffice/__init__.py
from flask import Flask, jsonify

from .config import Config
from .errors import EngineError
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides land before init_app: Flask-SQLAlchemy binds engines there
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.catalog import catalog_bp
    from .routes.sales import sales_bp
    from .routes.fiscal import fiscal_bp
    from .routes.ledger import ledger_bp

    app.register_blueprint(catalog_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(fiscal_bp)
    app.register_blueprint(ledger_bp)

    @app.errorhandler(EngineError)
    def handle_engine_error(e):
        return jsonify(e.to_dict()), e.status_code

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
