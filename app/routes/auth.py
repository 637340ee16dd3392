"""
Authentication API routes.

Login, logout, current identity and password change. Login attempts are
throttled per client IP before credentials are examined.
"""

from datetime import datetime, timezone

from flask import Blueprint, current_app, g, jsonify, session
from flask_wtf.csrf import generate_csrf

from app import audit
from app.access import LOGIN_PATH, home_path_for
from app.auth import end_session, get_current_identity, login_required, start_session
from app.errors import Unauthenticated, ValidationError
from app.extensions import LOGIN_LIMIT, PASSWORD_CHANGE_LIMIT, db, limiter
from app.models import User
from app.repositories import UserRepository
from app.utils.helpers import get_json_body
from app.utils.validation import text_value

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password."


@auth_bp.route('/csrf-token', methods=['GET'])
def csrf_token():
    return jsonify({"status": "success", "csrf_token": generate_csrf()})


@auth_bp.route('/login', methods=['POST'])
@limiter.limit(LOGIN_LIMIT)
def login():
    data = get_json_body()
    email = text_value(data.get('email'), 'email').strip().lower()
    password = text_value(data.get('password'), 'password')
    if not email or not password:
        raise ValidationError("Email and password are required.")

    user = User.query.filter(db.func.lower(User.email) == email).first()
    if user is None or not user.check_password(password):
        current_app.logger.warning(f"Failed login attempt for {email}")
        audit.log_login_failure(email, 'invalid_credentials')
        raise Unauthenticated(INVALID_CREDENTIALS_MESSAGE)

    start_session(user)
    user.last_login = datetime.now(timezone.utc)
    db.session.commit()

    current_app.logger.info(f"User {user.id} ({user.role.value}) logged in")
    audit.log_login_success(user.id, user.email)

    return jsonify({
        "status": "success",
        "redirect_path": home_path_for(user.role),
        "user": {"id": user.id, "email": user.email, "role": user.role.value},
    })


@auth_bp.route('/logout', methods=['POST'])
def logout():
    identity = get_current_identity()
    if identity is not None:
        audit.log_logout(identity.id, identity.email)
        current_app.logger.info(f"User {identity.id} logged out")
    end_session()
    return jsonify({"status": "success", "redirect_path": LOGIN_PATH})


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify({"status": "success", "user": g.identity.to_dict()})


@auth_bp.route('/password', methods=['POST'])
@login_required
@limiter.limit(PASSWORD_CHANGE_LIMIT)
def change_password():
    data = get_json_body()
    UserRepository(g.identity).change_own_password(
        data.get('current_password'),
        data.get('new_password'),
    )
    # Keep the session but restart the inactivity window
    session['last_activity'] = datetime.now(timezone.utc).isoformat()
    audit.log_update(g.identity.id, 'user', g.identity.id, ['password'])
    return jsonify({"status": "success", "message": "Password updated."})
