"""
Common utility functions for the portal.

This module provides reusable helper functions for:
- Date/time formatting (ISO-8601 with UTC)
- Reading JSON request bodies
- Pagination arguments
"""

from datetime import timezone

from flask import request

from app.errors import ValidationError


def format_utc_iso(dt):
    """Return a UTC ISO-8601 string (with trailing Z) for a datetime or None."""
    if not dt:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def format_date(value):
    return value.isoformat() if value else None


def get_json_body():
    """Return the request JSON object or raise ValidationError."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def get_pagination_args(default_per_page=50, max_per_page=200):
    try:
        page = int(request.args.get('page', 1))
        per_page = int(request.args.get('per_page', default_per_page))
    except ValueError:
        raise ValidationError("page and per_page must be integers.")
    if page < 1:
        page = 1
    per_page = max(1, min(per_page, max_per_page))
    return page, per_page
