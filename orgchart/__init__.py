"""
Application factory for the Org Chart hierarchy service.

Usage::

    from orgchart import create_app
    app = create_app()           # Uses FLASK_ENV to pick config.
    app = create_app("testing")  # Explicit config for tests.
"""

import logging
import os

from flask import Flask, jsonify

from .config import config_by_name
from .extensions import db, migrate
from .services.pending import PendingOperationTracker


def create_app(config_name: str | None = None) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config_name: One of 'development', 'testing', or 'production'.
                     Defaults to the FLASK_ENV environment variable,
                     falling back to 'development'.

    Returns:
        A fully configured Flask application instance.
    """
    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")
    config_class = config_by_name.get(config_name)
    if config_class is None:
        raise ValueError(
            f"Unknown config '{config_name}'. "
            f"Valid options: {list(config_by_name.keys())}"
        )

    app = Flask(__name__)
    app.config.from_object(config_class)

    if config_name == "production":
        config_class.validate_production_secrets(app.config)

    # -- Initialize extensions ---------------------------------------------
    _register_extensions(app)

    # -- Register blueprints -----------------------------------------------
    _register_blueprints(app)

    # -- Register error handlers -------------------------------------------
    _register_error_handlers(app)

    # -- Register custom CLI commands --------------------------------------
    _register_cli_commands(app)

    # -- Configure logging -------------------------------------------------
    _configure_logging(app)

    return app


def _register_extensions(app: Flask) -> None:
    """Bind all Flask extensions to the application instance."""
    db.init_app(app)
    migrate.init_app(app, db)

    # One in-flight tracker per process, shared by every request thread.
    app.extensions["pending_operations"] = PendingOperationTracker()

    # Imported here so the models register with the metadata before
    # ``db.create_all()`` or Alembic autogenerate runs.
    from .models import audit  # noqa: F401  pylint: disable=import-outside-toplevel


def _register_blueprints(app: Flask) -> None:
    """
    Import and register each blueprint with its URL prefix.

    Blueprints are imported inside this function to avoid circular
    imports.
    """
    # pylint: disable=import-outside-toplevel

    # Main blueprint: health check at the root.
    from .blueprints.main import bp as main_bp

    app.register_blueprint(main_bp)

    # Hierarchy: tree view, drag-and-drop mutations, export, audit.
    from .blueprints.hierarchy import bp as hierarchy_bp

    app.register_blueprint(hierarchy_bp, url_prefix="/hierarchy")


def _register_error_handlers(app: Flask) -> None:
    """Register JSON error responses for common HTTP error codes."""

    @app.errorhandler(400)
    def bad_request(error):
        """Handle 400 Bad Request errors."""
        return jsonify({"error": getattr(error, "description", "Bad request")}), 400

    @app.errorhandler(404)
    def not_found(error):  # pylint: disable=unused-argument
        """Handle 404 Not Found errors."""
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def internal_error(error):  # pylint: disable=unused-argument
        """Handle 500 Internal Server Error."""
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500


def _register_cli_commands(app: Flask) -> None:
    """Register custom Flask CLI commands (e.g., flask org-tree)."""
    from .cli import register_commands  # pylint: disable=import-outside-toplevel

    register_commands(app)


def _configure_logging(app: Flask) -> None:
    """Set the root log level from ``LOG_LEVEL``."""
    log_level = app.config.get("LOG_LEVEL", "INFO")
    logging.basicConfig(level=getattr(logging, log_level, logging.INFO))

    # Quiet down noisy libraries in development.
    if app.debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("urllib3").setLevel(logging.WARNING)
