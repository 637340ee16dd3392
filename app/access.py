"""
Route access control for page navigation.

Decides, for every non-API navigation, whether the caller may see the
requested path or must be redirected. The decision is recomputed from the
database-backed identity on each request; nothing is cached between
requests.
"""

from app.models import Role

ROLE_HOME_PATHS = {
    Role.ADMIN: '/admin',
    Role.AGENCY: '/agency',
    Role.UNIVERSITY: '/university',
}

LOGIN_PATH = '/login'

PROTECTED_PREFIXES = ('/admin', '/agency', '/university', '/settings')

PUBLIC_PREFIXES = (
    LOGIN_PATH,
    '/health',
    '/api/auth/login',
    '/api/auth/logout',
    '/files/',
    '/static/',
)

ROLE_ALLOWED_PREFIXES = {
    Role.AGENCY: ('/agency', '/settings'),
    Role.UNIVERSITY: ('/university', '/settings'),
}


def _matches(path, prefix):
    if prefix.endswith('/'):
        return path.startswith(prefix)
    return path == prefix or path.startswith(prefix + '/')


def is_public_path(path):
    return any(_matches(path, prefix) for prefix in PUBLIC_PREFIXES)


def is_protected_path(path):
    return any(_matches(path, prefix) for prefix in PROTECTED_PREFIXES)


def home_path_for(role):
    """Return the dashboard path for ``role``."""
    return ROLE_HOME_PATHS.get(role, LOGIN_PATH)


def is_path_allowed(path, role):
    """Return True if ``role`` may navigate to ``path``. Admin may go anywhere."""
    if role == Role.ADMIN:
        return True
    prefixes = ROLE_ALLOWED_PREFIXES.get(role, ())
    return any(_matches(path, prefix) for prefix in prefixes)


def resolve_navigation(path, identity):
    """
    Return the redirect target for a navigation to ``path``, or None to let
    the request through.

    ``identity`` is the resolved caller, or None when not signed in.
    """
    if identity is None:
        if is_protected_path(path):
            return LOGIN_PATH
        return None

    home = home_path_for(identity.role)
    if path == '/' or _matches(path, LOGIN_PATH):
        return home
    if is_protected_path(path) and not is_path_allowed(path, identity.role):
        return home
    return None
