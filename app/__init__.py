"""
Application factory for the ALEKS Coins portal.

This module provides create_app() which initializes Flask, extensions,
logging, error handlers, and registers blueprints.
"""

import os
import logging
from logging.handlers import RotatingFileHandler

from flask import Flask, request
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# Validate required environment variables
required_env_vars = ["SECRET_KEY", "DATABASE_URL", "FLASK_ENV", "ADMIN_PASSWORD"]
missing_vars = [var for var in required_env_vars if not os.getenv(var)]
if missing_vars:
    raise RuntimeError(
        "Missing required environment variables: " + ", ".join(missing_vars)
    )


from app.utils.constants import MIN_DAILY_MINUTES, MIN_DAILY_TOPICS  # noqa: E402
from app.utils.errors import ProgressError  # noqa: E402
from app.utils.helpers import error_response, progress_error_response  # noqa: E402


def _env_number(name, default):
    """Read a numeric env var, falling back to ``default`` when unset or invalid."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}")
    return int(value) if value.is_integer() else value


# -------------------- APPLICATION FACTORY --------------------

def create_app():
    """
    Application factory function.

    Creates and configures the Flask application, initializes extensions,
    sets up logging, and registers blueprints and CLI commands.

    Returns:
        Flask: Configured Flask application instance
    """
    app = Flask(__name__)

    # -------------------- CONFIGURATION --------------------
    app.config.from_mapping(
        DEBUG=False,
        ENV=os.environ["FLASK_ENV"],
        SECRET_KEY=os.environ["SECRET_KEY"],
        SQLALCHEMY_DATABASE_URI=os.environ["DATABASE_URL"],
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        SESSION_COOKIE_SECURE=os.environ["FLASK_ENV"] == "production",
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        ADMIN_PASSWORD=os.environ["ADMIN_PASSWORD"],
        MIN_DAILY_MINUTES=_env_number("MIN_DAILY_MINUTES", MIN_DAILY_MINUTES),
        MIN_DAILY_TOPICS=_env_number("MIN_DAILY_TOPICS", MIN_DAILY_TOPICS),
        COURSE_TIMEZONE=os.getenv("COURSE_TIMEZONE", "America/Chicago"),
        MAX_CONTENT_LENGTH=10 * 1024 * 1024,
    )

    # -------------------- EXTENSIONS --------------------
    from app.extensions import db, migrate, csrf, limiter

    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    limiter.init_app(app)

    # -------------------- LOGGING --------------------
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_name, logging.INFO)
    log_format = os.getenv(
        "LOG_FORMAT",
        "[%(asctime)s] %(levelname)s in %(module)s: %(message)s",
    )

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(logging.Formatter(log_format))

    app.logger.setLevel(log_level)
    # Prevent duplicate log entries by clearing handlers first
    app.logger.handlers.clear()
    app.logger.addHandler(stream_handler)

    if os.getenv("FLASK_ENV", app.config.get("ENV")) == "production":
        log_file = os.getenv("LOG_FILE", "app.log")
        file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(log_format))
        app.logger.addHandler(file_handler)

    # -------------------- ERROR HANDLERS --------------------
    @app.errorhandler(ProgressError)
    def handle_progress_error(exc):
        app.logger.warning(f"{type(exc).__name__} on {request.path}: {exc}")
        return progress_error_response(exc)

    @app.errorhandler(404)
    def handle_not_found(exc):
        return error_response("Not found", 404)

    @app.errorhandler(405)
    def handle_method_not_allowed(exc):
        return error_response("Method not allowed", 405)

    @app.errorhandler(413)
    def handle_too_large(exc):
        return error_response("Upload too large", 413)

    @app.errorhandler(429)
    def handle_rate_limited(exc):
        return error_response("Too many requests. Please try again later.", 429)

    # -------------------- REGISTER BLUEPRINTS --------------------
    from app.routes.main import main_bp
    from app.routes.student import student_bp
    from app.routes.admin import admin_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(student_bp)
    app.register_blueprint(admin_bp)

    # Public student API carries no session; admin routes stay CSRF protected
    csrf.exempt(student_bp)

    # -------------------- SECURITY HEADERS --------------------
    @app.after_request
    def set_security_headers(response):
        """Add baseline security headers to all HTTP responses."""
        response.headers['X-Frame-Options'] = 'SAMEORIGIN'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        if app.config.get('ENV') == 'production':
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return response

    # -------------------- CLI COMMANDS --------------------
    from app import cli_commands
    cli_commands.init_app(app)

    return app


# Create a default application instance for compatibility with `flask run` and wsgi
app = create_app()

# Re-export commonly used objects for convenience
from app.extensions import db  # noqa: E402
from app.models import (  # noqa: E402
    AdminSetting,
    CoinAdjustment,
    DayOverride,
    ExamPeriod,
    StudentPeriodRecord,
    StudentRequest,
)

__all__ = [
    "app",
    "create_app",
    "db",
    "AdminSetting",
    "CoinAdjustment",
    "DayOverride",
    "ExamPeriod",
    "StudentPeriodRecord",
    "StudentRequest",
]
