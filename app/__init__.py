"""
Application factory for the FRISK portal.

This module provides create_app() which initializes Flask, extensions,
logging, request hooks, error handlers and registers blueprints.
"""

import os
import logging
from datetime import timedelta
from logging.handlers import RotatingFileHandler

from flask import Flask, g, redirect, request
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# Validate required environment variables
required_env_vars = ["SECRET_KEY", "DATABASE_URL", "ENCRYPTION_KEY"]
missing_vars = [var for var in required_env_vars if not os.getenv(var)]
if missing_vars:
    raise RuntimeError(
        "Missing required environment variables: " + ", ".join(missing_vars)
    )


def _int_env(name, default):
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be an integer, got {value!r}")


# -------------------- APPLICATION FACTORY --------------------

def create_app():
    """
    Application factory function.

    Creates and configures the Flask application, initializes extensions,
    sets up logging, installs the navigation guard and registers blueprints.

    Returns:
        Flask: Configured Flask application instance
    """
    app = Flask(__name__)

    # -------------------- CONFIGURATION --------------------
    app.config.from_mapping(
        DEBUG=False,
        ENV=os.getenv("FLASK_ENV", "production"),
        SECRET_KEY=os.environ["SECRET_KEY"],
        SQLALCHEMY_DATABASE_URI=os.environ["DATABASE_URL"],
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        SESSION_COOKIE_SECURE=True,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        PERMANENT_SESSION_LIFETIME=timedelta(hours=12),
        SESSION_TIMEOUT_MINUTES=_int_env("SESSION_TIMEOUT_MINUTES", 60),
        APP_TIMEZONE=os.getenv("APP_TIMEZONE", "Asia/Seoul"),
        STORAGE_ROOT=os.getenv("STORAGE_ROOT", os.path.join(app.instance_path, "storage")),
        SIGNED_URL_EXPIRY_SECONDS=_int_env("SIGNED_URL_EXPIRY_SECONDS", 3600),
        # Largest upload (10MB evidence) plus multipart overhead
        MAX_CONTENT_LENGTH=11 * 1024 * 1024,
        RESEND_API_KEY=os.getenv("RESEND_API_KEY"),
        EMAIL_FROM=os.getenv("EMAIL_FROM", "FRISK <noreply@frisk.app>"),
        WTF_CSRF_HEADERS=["X-CSRFToken", "X-CSRF-Token"],
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

    if app.config.get("ENV") == "production":
        log_file = os.getenv("LOG_FILE", "app.log")
        file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(log_format))
        app.logger.addHandler(file_handler)

    # -------------------- NAVIGATION GUARD --------------------
    @app.before_request
    def reset_request_identity():
        """Identity is resolved once per request, never carried over."""
        g.pop("identity", None)

    @app.before_request
    def enforce_route_access():
        """
        Redirect page navigations the caller may not make.

        API routes are excluded; they authorize through their own decorators
        and repositories and answer with JSON errors instead of redirects.
        """
        path = request.path
        if path.startswith("/api/") or path.startswith("/static/"):
            return None

        from app.access import resolve_navigation
        from app.auth import get_current_identity

        target = resolve_navigation(path, get_current_identity())
        if target and target != path:
            app.logger.debug(f"Navigation to {path} redirected to {target}")
            return redirect(target)
        return None

    # -------------------- ERROR HANDLERS --------------------
    from app.errors import register_error_handlers
    register_error_handlers(app)

    # -------------------- REGISTER BLUEPRINTS --------------------
    from app.routes.main import main_bp
    from app.routes.auth import auth_bp
    from app.routes.students import students_bp
    from app.routes.absences import absences_bp
    from app.routes.checkin import checkin_bp
    from app.routes.reports import reports_bp
    from app.routes.admin import admin_bp
    from app.routes.files import files_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(students_bp)
    app.register_blueprint(absences_bp)
    app.register_blueprint(checkin_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(files_bp)

    # -------------------- SECURITY HEADERS --------------------
    @app.after_request
    def set_security_headers(response):
        """
        Add security headers to all HTTP responses.

        - HSTS: Force HTTPS connections
        - X-Frame-Options: Prevent clickjacking
        - X-Content-Type-Options: Prevent MIME sniffing attacks
        - CSP: Mitigate XSS attacks
        - Referrer-Policy: Control referrer information leakage
        """
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        response.headers['X-Frame-Options'] = 'SAMEORIGIN'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'

        csp_directives = [
            "default-src 'self'",
            "script-src 'self'",
            "style-src 'self' 'unsafe-inline'",
            "img-src 'self' data:",
            "connect-src 'self'",
            "frame-ancestors 'self'",
            "base-uri 'self'",
            "form-action 'self'",
        ]
        response.headers['Content-Security-Policy'] = "; ".join(csp_directives)

        permissions = [
            "geolocation=()",
            "microphone=()",
            "camera=()",
            "payment=()",
            "usb=()",
        ]
        response.headers['Permissions-Policy'] = ", ".join(permissions)

        # Signed file links and personal data must not be cached by intermediaries
        if request.path.startswith('/api/') or request.path.startswith('/files/'):
            response.headers.setdefault('Cache-Control', 'no-store')

        return response

    # -------------------- CLI COMMANDS --------------------
    from app import cli_commands
    cli_commands.init_app(app)

    return app


# Create a default application instance for gunicorn and the test suite
app = create_app()

# Re-export commonly used objects for convenience
from app.extensions import db  # noqa: E402
from app.models import Student, University, User  # noqa: E402

__all__ = [
    "app",
    "create_app",
    "db",
    "Student",
    "University",
    "User",
]
