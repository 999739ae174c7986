"""
bizdash/__init__.py

Flask application factory for the Business Dashboard REST backend
(inventory, contacts, orders, deliveries, VAT reporting).

Architecture:
- Route handlers (blueprints) validate JSON input (schemas.py) and call the
  Storage handle; they never talk to the ORM directly.
- Storage and the session store are injected here, not imported as singletons,
  so tests and alternative deployments can pass their own.
- Every failure is answered as JSON with a stable "message" (errors.py).
"""

from __future__ import annotations

import logging
import time

import click
from flask import Flask, g, jsonify, request

from .audit import log_action
from .api import STORAGE_EXTENSION_KEY
from .errors import register_error_handlers
from .extensions import csrf, db, login_manager, migrate
from .models import User
from .security import unauthorized
from .sessions import DatabaseSessionStore, ServerSideSessionInterface, SessionStore
from .storage import Storage

logger = logging.getLogger(__name__)


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger(__name__).setLevel(level)


def create_app(
    config_object: str | object = "config.Config",
    *,
    storage: Storage | None = None,
    session_store: SessionStore | None = None,
) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)
    _configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    login_manager.init_app(app)

    # Injected collaborators
    storage = storage or Storage(db, auditor=log_action)
    app.extensions[STORAGE_EXTENSION_KEY] = storage
    app.session_interface = ServerSideSessionInterface(session_store or DatabaseSessionStore(db))

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login from the session's _user_id."""
        try:
            return storage.users.get_by_id(int(user_id))
        except (TypeError, ValueError):
            return None

    login_manager.unauthorized_handler(unauthorized)

    register_error_handlers(app)

    # ----------------------------------------------------------------------
    # Request logging (/api only)
    # ----------------------------------------------------------------------
    @app.before_request
    def _start_timer():
        g.request_started = time.perf_counter()

    @app.after_request
    def _log_request(response):
        if request.path.startswith("/api"):
            started = g.get("request_started")
            elapsed_ms = (time.perf_counter() - started) * 1000 if started is not None else 0.0
            logger.info("%s %s %s in %dms", request.method, request.path, response.status_code, elapsed_ms)
        return response

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.contacts import contacts_bp
    from .blueprints.dashboard import dashboard_bp
    from .blueprints.deliveries import deliveries_bp
    from .blueprints.orders import orders_bp
    from .blueprints.products import products_bp
    from .blueprints.vat import vat_rates_bp, vat_transactions_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(contacts_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(deliveries_bp)
    app.register_blueprint(vat_rates_bp)
    app.register_blueprint(vat_transactions_bp)
    app.register_blueprint(dashboard_bp)

    # ----------------------------------------------------------------------
    # Health
    # ----------------------------------------------------------------------
    @app.route("/api/health")
    def health():
        """Liveness + database reachability (503 when the database is down)."""
        storage.ping()
        return jsonify({"status": "ok"})

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("init-db")
    def init_db_command():
        """Create all tables (development; use `flask db upgrade` with migrations)."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("seed-vat-rates")
    def seed_vat_rates_command():
        """Seed default VAT rates."""
        from .seed import seed_default_vat_rates

        created = seed_default_vat_rates()
        click.echo(f"Default VAT rates seeded ({created} created).")

    @app.cli.command("purge-sessions")
    def purge_sessions_command():
        """Delete expired session records."""
        removed = app.session_interface.store.purge_expired()
        click.echo(f"Removed {removed} expired sessions.")

    return app
