"""
Error taxonomy and JSON error handlers.

Every failure a view can produce is a werkzeug HTTPException subclass so
Flask maps it to a status code. Clients receive a generic message; the
underlying cause is logged and, for server errors, stored in ErrorLog.
"""

import time
import traceback

from flask import current_app, jsonify, request
from werkzeug.exceptions import (
    BadRequest,
    Forbidden as _Forbidden,
    HTTPException,
    InternalServerError,
    NotFound as _NotFound,
    Unauthorized,
)


class Unauthenticated(Unauthorized):
    description = "Authentication is required."


class ProfileNotFound(_Forbidden):
    description = "User profile not found. Please contact an administrator."


class Forbidden(_Forbidden):
    description = "You do not have permission to perform this action."


class NotFound(_NotFound):
    description = "The requested resource was not found."


class Conflict(BadRequest):
    """Uniqueness or dependent-row violation. Reported as a 400 with a specific message."""
    description = "The request conflicts with existing data."


class ValidationError(BadRequest):
    description = "The request data is invalid."


class UpstreamFailure(InternalServerError):
    """The database, file storage or e-mail provider failed."""
    description = "A server error occurred. Please try again later."


def error_response(message, status_code):
    return jsonify({"status": "error", "message": message}), status_code


def log_error_to_db(error_type=None, error_message=None, stack_trace=None):
    """
    Save error information to the database for later review.
    This function should not raise exceptions to avoid recursive error loops.
    """
    from app.extensions import db
    from app.models import ErrorLog
    from app.utils.ip_handler import get_request_info

    try:
        info = get_request_info()
        error_log = ErrorLog(
            error_type=error_type,
            error_message=error_message,
            request_path=request.path,
            request_method=request.method,
            user_agent=(info['user_agent'] or '')[:500] or None,
            ip_address=info['ip_address'],
            stack_trace=stack_trace,
        )
        db.session.add(error_log)
        db.session.commit()
        return error_log.id
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to log error to database: {str(e)}")
        return None


def register_error_handlers(app):
    """Attach the JSON error handlers to the application."""
    from app.extensions import db

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        if error.code == 429:
            return _rate_limited_response(error)

        if error.code >= 500:
            app.logger.error(f"{error.code} {error.name}: {request.path}")
        elif error.code in (401, 403):
            app.logger.warning(f"{error.code} {error.name}: {request.method} {request.path}")

        response, status = error_response(error.description, error.code)
        return response, status

    @app.errorhandler(Exception)
    def handle_unexpected_exception(error):
        app.logger.exception("500 Internal Server Error occurred")
        db.session.rollback()
        log_error_to_db(
            error_type=type(error).__name__,
            error_message=str(error),
            stack_trace=traceback.format_exc(),
        )
        return error_response(InternalServerError.description, 500)


def _rate_limited_response(error):
    from app.extensions import limiter

    retry_after = 60
    current_limit = limiter.current_limit
    if current_limit is not None:
        retry_after = max(1, int(current_limit.reset_at - time.time()))

    current_app.logger.warning(f"Rate limit exceeded: {request.method} {request.path}")
    response, status = error_response(
        "Too many requests. Please try again later.", 429
    )
    response.headers['Retry-After'] = str(retry_after)
    return response, status
