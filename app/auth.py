"""
Authentication and authorization utilities for the FRISK portal.

Contains identity resolution, the role/university-scope guard, view
decorators and session timeout logic. The session cookie only carries the
account id; the role and university scope are re-read from the database on
every request.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Optional

from flask import current_app, g, session

from app.errors import Forbidden, ProfileNotFound, Unauthenticated
from app.models import Role


# -------------------- SESSION CONFIGURATION --------------------

SESSION_TIMEOUT_MINUTES = 60

ALL_ROLES = frozenset({Role.ADMIN, Role.AGENCY, Role.UNIVERSITY})
STAFF_ROLES = frozenset({Role.ADMIN, Role.AGENCY})
ADMIN_ONLY = frozenset({Role.ADMIN})


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, as resolved from the database for this request."""
    id: int
    email: str
    role: Role
    university_id: Optional[int]

    @property
    def is_admin(self):
        return self.role == Role.ADMIN

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role.value,
            "university_id": self.university_id,
        }


# -------------------- SESSION MANAGEMENT --------------------

def start_session(user):
    """Bind a fresh session to ``user``. Clears anything left from a previous login."""
    now = datetime.now(timezone.utc).isoformat()
    session.clear()
    session['user_id'] = user.id
    session['login_time'] = now
    session['last_activity'] = now
    session.permanent = True
    g.pop('identity', None)


def end_session():
    session.clear()
    g.pop('identity', None)


def _session_expired(now):
    last_activity = session.get('last_activity')
    if not last_activity:
        return True
    timeout = current_app.config.get('SESSION_TIMEOUT_MINUTES', SESSION_TIMEOUT_MINUTES)
    try:
        last_activity = datetime.fromisoformat(last_activity)
    except (TypeError, ValueError):
        return True
    return (now - last_activity) > timedelta(minutes=timeout)


def resolve_identity():
    """
    Resolve the caller for the current request.

    Raises:
        Unauthenticated: no session, or the session has timed out.
        ProfileNotFound: the session points at an account that no longer
            exists; the session is cleared.
    """
    cached = g.get('identity')
    if cached is not None:
        return cached

    user_id = session.get('user_id')
    if not user_id:
        raise Unauthenticated()

    now = datetime.now(timezone.utc)
    if _session_expired(now):
        current_app.logger.info(f"Session expired for user {user_id}")
        end_session()
        raise Unauthenticated("Session expired. Please log in again.")

    from app.extensions import db
    from app.models import User

    user = db.session.get(User, user_id)
    if user is None:
        current_app.logger.warning(f"Session references missing user {user_id}; clearing session")
        end_session()
        raise ProfileNotFound()

    session['last_activity'] = now.isoformat()
    identity = Identity(
        id=user.id,
        email=user.email,
        role=user.role,
        university_id=user.university_id,
    )
    g.identity = identity
    return identity


def get_current_identity():
    """Return the resolved identity, or None when the caller is not signed in."""
    try:
        return resolve_identity()
    except (Unauthenticated, ProfileNotFound):
        return None


# -------------------- AUTHORIZATION GUARD --------------------

def require_role(identity, allowed_roles):
    """Raise Forbidden unless ``identity.role`` is in ``allowed_roles``."""
    if identity.role not in allowed_roles:
        current_app.logger.warning(
            f"Role {identity.role.value} denied (user {identity.id}); allowed: "
            f"{sorted(r.value for r in allowed_roles)}"
        )
        raise Forbidden()


def require_university_scope(identity, university_id):
    """
    Raise Forbidden when a university user targets another university's data.

    Admin and agency users pass for every university.
    """
    if identity.role != Role.UNIVERSITY:
        return
    if identity.university_id is None or identity.university_id != university_id:
        current_app.logger.warning(
            f"University scope denied for user {identity.id}: "
            f"own={identity.university_id} target={university_id}"
        )
        raise Forbidden()


def guarded(*roles):
    """
    Decorator for repository methods: checks ``self.identity`` against
    ``roles`` before the method body runs.
    """
    allowed = frozenset(roles) if roles else ALL_ROLES

    def decorator(f):
        @wraps(f)
        def decorated_function(self, *args, **kwargs):
            require_role(self.identity, allowed)
            return f(self, *args, **kwargs)
        decorated_function.allowed_roles = allowed
        return decorated_function
    return decorator


# -------------------- AUTHENTICATION DECORATORS --------------------

def login_required(f):
    """
    Decorator to require an authenticated session for a view.

    Enforces the inactivity timeout and stores the resolved Identity on
    ``flask.g.identity``.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        resolve_identity()
        return f(*args, **kwargs)
    return decorated_function


def roles_required(*roles):
    """Decorator to require one of ``roles`` for a view."""
    allowed = frozenset(roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            identity = resolve_identity()
            require_role(identity, allowed)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def admin_required(f):
    """Decorator to require the admin role for a view."""
    return roles_required(Role.ADMIN)(f)
