"""
crm/__init__.py

Flask application factory for the small-business CRM.

Requirements:
- Clear architecture, stable imports.
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev.
- UI is never trusted; server-side access control is enforced (see crm/security.py).

Navigation:
- Sidebar items are filtered by role for visibility only.
  All permissions are enforced server-side in the routes.
"""

from __future__ import annotations

import logging

import click
from flask import Flask, redirect, render_template, url_for
from flask_login import current_user

from .billing import format_money
from .extensions import csrf, db, login_manager, migrate
from .logging_config import setup_logging
from .models import ROLE_ADMIN, Profile
from .security import READ, can, client_readonly_guard

logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# NAVIGATION STRUCTURE (UI visibility only; security enforced in routes)
# -------------------------------------------------------------------
NAV_ITEMS = [
    {"label": "Dashboard", "endpoint": "dashboard.index", "resource": "dashboard"},
    {"label": "Tickets", "endpoint": "tickets.list_tickets", "resource": "tickets"},
    {"label": "Tasks", "endpoint": "tasks.list_tasks", "resource": "tasks"},
    {"label": "Users", "endpoint": "users.list_users", "resource": "users"},
    {"label": "Workers", "endpoint": "workers.list_workers", "resource": "workers"},
    {"label": "Services", "endpoint": "services.list_services", "resource": "services"},
    {"label": "Invoices", "endpoint": "invoices.list_invoices", "resource": "invoices"},
    {"label": "Wiki", "endpoint": "wiki.list_articles", "resource": "wiki"},
    {"label": "Chat", "endpoint": "chat.index", "resource": "chat"},
    {"label": "Settings", "endpoint": "settings.index", "resource": "settings"},
]

ROLE_LABELS = {"admin": "Administrator", "worker": "Worker", "client": "Client"}


def create_app(config_object=None) -> Flask:
    """
    Create and configure the Flask application.

    config_object: a config class or its import path (e.g. "config.TestingConfig").
    Defaults to the class selected by FLASK_ENV.
    """
    app = Flask(__name__)

    if config_object is None:
        from config import get_config

        config_object = get_config()
    app.config.from_object(config_object)

    setup_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    login_manager.init_app(app)
    login_manager.login_view = "auth.login"
    login_manager.login_message_category = "info"

    @login_manager.user_loader
    def load_user(user_id: str) -> Profile | None:
        """Load profile for Flask-Login."""
        try:
            return db.session.get(Profile, int(user_id))
        except (TypeError, ValueError):
            return None

    # ----------------------------------------------------------------------
    # GLOBAL SECURITY NET: client read-only guard (server-side).
    # ----------------------------------------------------------------------
    @app.before_request
    def _client_guard_hook():
        """
        Client read-only enforcement (POST/PUT/PATCH/DELETE blocked).

        This is a safety net. Each route must still enforce its own permissions.
        """
        return client_readonly_guard()

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.chat import chat_bp
    from .blueprints.dashboard import dashboard_bp
    from .blueprints.invoices import invoices_bp
    from .blueprints.services import services_bp
    from .blueprints.settings import settings_bp
    from .blueprints.tasks import tasks_bp
    from .blueprints.tickets import tickets_bp
    from .blueprints.users import users_bp
    from .blueprints.wiki import wiki_bp
    from .blueprints.workers import workers_bp

    for blueprint in (
        auth_bp,
        dashboard_bp,
        tickets_bp,
        tasks_bp,
        users_bp,
        workers_bp,
        services_bp,
        invoices_bp,
        wiki_bp,
        chat_bp,
        settings_bp,
    ):
        app.register_blueprint(blueprint)

    # ----------------------------------------------------------------------
    # Error pages
    # ----------------------------------------------------------------------
    @app.errorhandler(403)
    def forbidden(_error):
        return render_template("errors/403.html"), 403

    @app.errorhandler(404)
    def not_found(_error):
        return render_template("errors/404.html"), 404

    # ----------------------------------------------------------------------
    # Context globals (navigation, money formatting)
    # ----------------------------------------------------------------------
    @app.context_processor
    def inject_globals():
        """
        Inject navigation filtered by role.

        SECURITY NOTE:
        - This only filters visibility. Routes enforce permissions.
        """
        nav_items = []
        if current_user.is_authenticated:
            nav_items = [item for item in NAV_ITEMS if can(item["resource"], READ)]

        return {
            "config": app.config,
            "nav_items": nav_items,
            "role_labels": ROLE_LABELS,
            "money": format_money,
            "can": can,
        }

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("init-db")
    def init_db_command():
        """Create missing tables (without migrations; use `flask db upgrade` once migrations exist)."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("seed-settings")
    def seed_settings_command():
        """Write default settings groups that do not exist yet."""
        from .settings_store import seed_default_settings

        created = seed_default_settings()
        click.echo(f"Default settings seeded ({created} new group(s)).")

    @app.cli.command("create-admin")
    @click.option("--email", prompt=True)
    @click.option("--first-name", default="System")
    @click.option("--last-name", default="Administrator")
    @click.password_option()
    def create_admin_command(email, first_name, last_name, password):
        """Create an admin profile that can log in."""
        email = email.strip().lower()
        if Profile.query.filter_by(email=email).first():
            raise click.ClickException(f"A profile with email {email} already exists.")

        admin = Profile(email=email, first_name=first_name, last_name=last_name, role=ROLE_ADMIN, is_active=True)
        admin.set_password(password)
        db.session.add(admin)
        db.session.commit()
        click.echo(f"Admin {email} created.")

    # ----------------------------------------------------------------------
    # Home
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        """Home: redirect to dashboard or login."""
        if current_user.is_authenticated:
            return redirect(url_for("dashboard.index"))
        return redirect(url_for("auth.login"))

    logger.debug("Application created with %s", getattr(config_object, "__name__", config_object))
    return app
