"""
Longa marketplace API: application factory.

``create_app()`` picks its settings from FLASK_ENV; tests pass
``"testing"`` explicitly. Every response, errors included, is JSON.
"""

import logging
import os
from importlib import import_module

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .config import config_by_name
from .extensions import csrf, db, login_manager, migrate

# (blueprint package, URL prefix), registered in this order.
BLUEPRINTS = (
    ("main", None),
    ("auth", "/auth"),
    ("catalog", "/catalog"),
    ("bookings", "/bookings"),
    ("providers", "/providers"),
    ("packages", "/packages"),
    ("payments", "/payments"),
    ("payouts", "/payouts"),
    ("notifications", "/notifications"),
    ("admin", "/admin"),
)

# Fixed bodies for status codes whose werkzeug description is not shown.
ERROR_MESSAGES = {
    401: "Authentication required.",
    403: "You do not have permission to do that.",
    404: "Not found.",
    405: "Method not allowed.",
    500: "Internal server error.",
}

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def create_app(config_name: str | None = None) -> Flask:
    """
    Build a configured Flask app.

    Args:
        config_name: 'development', 'testing' or 'production'. Falls back
                     to FLASK_ENV, then 'development'.

    Raises:
        ValueError:   For an unknown config name.
        RuntimeError: When production secrets are missing.
    """
    config_name = config_name or os.environ.get("FLASK_ENV", "development")
    try:
        config_class = config_by_name[config_name]
    except KeyError:
        raise ValueError(
            f"Unknown config '{config_name}'; expected one of {sorted(config_by_name)}."
        ) from None

    app = Flask(__name__)
    app.config.from_object(config_class)
    if config_name == "production":
        config_class.validate_production_secrets(app.config)

    _configure_logging(app)
    _init_extensions(app)
    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cli_commands(app)

    app.logger.info("Longa API ready (%s config)", config_name)
    return app


def _init_extensions(app: Flask) -> None:
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)

    from .models.user import User  # pylint: disable=import-outside-toplevel

    @login_manager.user_loader
    def load_user(user_id: str):
        # Deactivated accounts lose their session on the next request.
        user = db.session.get(User, int(user_id))
        return user if user is not None and user.is_active else None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": ERROR_MESSAGES[401]}), 401


def _register_blueprints(app: Flask) -> None:
    """
    Import each blueprint package lazily, so models and services can
    import ``db`` at module level without a cycle.
    """
    for name, url_prefix in BLUEPRINTS:
        module = import_module(f".blueprints.{name}", __name__)
        app.register_blueprint(module.bp, url_prefix=url_prefix)


def _register_error_handlers(app: Flask) -> None:
    """Render HTTP errors as ``{"error": message}``."""

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        # Routing redirects are HTTPExceptions too.
        if error.code is None or error.code < 400:
            return error
        if error.code == 400:
            message = error.description or "Bad request."
        else:
            message = ERROR_MESSAGES.get(error.code, error.name)
        return jsonify({"error": message}), error.code

    @app.errorhandler(500)
    def internal_error(error):  # pylint: disable=unused-argument
        db.session.rollback()
        app.logger.exception("Unhandled error")
        return jsonify({"error": ERROR_MESSAGES[500]}), 500


def _register_cli_commands(app: Flask) -> None:
    """``flask expire-bookings``, ``flask run-payouts``, seed commands, ..."""
    # pylint: disable=import-outside-toplevel
    from .cli import register_commands
    from .seed_dev_data import register_seed_commands

    register_commands(app)
    register_seed_commands(app)


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, app.config.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
