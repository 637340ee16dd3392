"""
Shared Flask extension instances.

Centralized to avoid circular imports. Extensions are initialized
here but configured in create_app().
"""

import os
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_wtf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize extensions (without binding to an app yet)
db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()


# Initialize rate limiter
# Uses proxy-aware IP detection so counters are per real client
def get_real_ip_for_limiter():
    """Get real IP for rate limiting, handling reverse proxies."""
    try:
        from app.utils.ip_handler import get_real_ip
        return get_real_ip()
    except RuntimeError:
        return get_remote_address()


# Counter storage is pluggable: memory for a single process,
# Redis when several workers must share the same windows.
if os.environ.get('RATELIMIT_STORAGE_URI'):
    storage_uri = os.environ.get('RATELIMIT_STORAGE_URI')
elif os.environ.get('REDIS_URL'):
    storage_uri = os.environ.get('REDIS_URL')
else:
    storage_uri = 'memory://'

# Named limit profiles shared by the blueprints
LOGIN_LIMIT = "5 per minute"
SENSITIVE_LIMIT = "10 per minute"
PASSWORD_CHANGE_LIMIT = "3 per hour"
API_LIMIT = "100 per minute"

limiter = Limiter(
    key_func=get_real_ip_for_limiter,
    default_limits=[API_LIMIT],
    storage_uri=storage_uri,
    strategy="fixed-window",
    headers_enabled=True,
)

# Uploads and notification sends share one window per client
sensitive_limit = limiter.shared_limit(SENSITIVE_LIMIT, scope="sensitive")
