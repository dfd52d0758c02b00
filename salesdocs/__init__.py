"""
salesdocs/__init__.py

Flask application factory for the multi-tenant sales documents service
(quotations, proforma invoices, invoices, plus customer/product/unit master
data and expenses).

Production mindset:
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev.
- Clients are never trusted: totals are recomputed and tenant scope is
  enforced server-side on every route.

IMPORTANT:
- Domain errors (salesdocs/errors.py) are rendered here, once, as JSON.
- Flask-Login identities are prefixed ("company:<id>", "individual:<id>")
  because the two account tables have independent id sequences.
"""

from __future__ import annotations

import logging
from logging.config import dictConfig

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .errors import SalesDocsError
from .extensions import csrf, db, init_list_cache, login_manager, migrate
from .models import CompanyUser, IndividualUser

logger = logging.getLogger(__name__)

ACCOUNT_LOADERS = {
    CompanyUser.login_prefix: CompanyUser,
    IndividualUser.login_prefix: IndividualUser,
}


def create_app(config_overrides: dict | None = None) -> Flask:
    """Build the app; config_overrides is applied on top of config.Config."""
    app = Flask(__name__)
    app.config.from_object("config.Config")
    if config_overrides:
        app.config.update(config_overrides)

    dictConfig(app.config["LOGGING"])

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    init_list_cache(app)

    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str):
        """Load an organization or individual account for Flask-Login."""
        prefix, _, raw_id = (user_id or "").partition(":")
        model = ACCOUNT_LOADERS.get(prefix)
        if model is None or not raw_id.isdigit():
            return None
        return db.session.get(model, int(raw_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"message": "Authentication required"}), 401

    # ----------------------------------------------------------------------
    # Error rendering
    # ----------------------------------------------------------------------
    @app.errorhandler(SalesDocsError)
    def handle_domain_error(exc: SalesDocsError):
        db.session.rollback()
        if exc.http_status >= 500:
            logger.error("Unhandled domain error: %s", exc.message)
        return jsonify(exc.to_dict()), exc.http_status

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return jsonify({"message": exc.description}), exc.code

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.documents import documents_bp
    from .blueprints.expenses import expenses_bp
    from .blueprints.masterdata import masterdata_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(documents_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(masterdata_bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("init-db")
    def init_db_command():
        """Create all tables (dev only; use `flask db upgrade` elsewhere)."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("seed-units")
    def seed_units_command():
        """Seed default units of measure for every account."""
        from .seed import seed_units_for_all_accounts

        added = seed_units_for_all_accounts()
        click.echo(f"Default units seeded ({added} added).")

    # ----------------------------------------------------------------------
    # Home
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        return jsonify({"name": app.config["APP_NAME"], "status": "ok"})

    return app
