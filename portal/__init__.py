"""
Portal role/permission service
Flask Application Factory.

Usage:
    from portal import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import json
import logging
import os

import click
from flask import Flask

from portal.config import config
from portal.models import db
from portal.middleware.logging_config import configure_logging

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)

    # ── Import all models so create_all sees them ────────────────────────
    from portal.models import auth as _auth_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and not app.config["TESTING"]:
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        db.create_all()
        app.logger.debug("db.create_all() completed successfully")

    _register_cli(app)
    return app


def _register_cli(app):
    @app.cli.command("init-app-roles")
    @click.argument("app_id")
    @click.option("--owner", required=True, help="User made master of the app.")
    @click.option("--env", "envs", multiple=True, help="Env to seed default-namespace roles for.")
    @click.option("--operator", default="system", show_default=True)
    def init_app_roles_cmd(app_id, owner, envs, operator):
        """Seed the master, namespace and env roles of an app."""
        from portal.services import role_initialization_service

        created = role_initialization_service.init_app_roles(app_id, owner, operator, envs=envs)
        if created:
            click.echo(f"Initialized roles for app {app_id}")
        else:
            click.echo(f"Roles for app {app_id} already exist")

    @app.cli.command("delete-app-roles")
    @click.argument("app_id")
    @click.option("--operator", default="system", show_default=True)
    def delete_app_roles_cmd(app_id, operator):
        """Soft-delete every role and permission derived from an app."""
        from portal.services import role_permission_service

        summary = role_permission_service.delete_role_permissions_by_app_id(app_id, operator)
        click.echo(
            f"Deleted {summary['roles']} role(s) and "
            f"{summary['permissions']} permission(s) of app {app_id}"
        )

    @app.cli.command("init-system-roles")
    @click.option("--operator", default="system", show_default=True)
    def init_system_roles_cmd(operator):
        """Seed the roles that are not scoped to an app."""
        from portal.services import role_initialization_service

        role = role_initialization_service.init_create_application_role(operator)
        if role is not None:
            click.echo(f"Created role {role.role_name}")
        else:
            click.echo("System roles already exist")

    @app.cli.command("user-roles")
    @click.argument("user_id")
    def user_roles_cmd(user_id):
        """Print the live roles of a user, with their permission ids, as JSON."""
        from portal.services import role_permission_service

        roles = role_permission_service.find_user_roles(user_id)
        click.echo(json.dumps([r.to_dict(include_permissions=True) for r in roles], indent=2))
