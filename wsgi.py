"""
WSGI entry point for the FRISK portal.

For gunicorn: wsgi:app
"""

from app import app  # noqa: F401
