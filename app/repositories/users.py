"""
User account management (admin only).
"""

from app.auth import ADMIN_ONLY, guarded
from app.errors import Conflict, Forbidden, NotFound, ValidationError
from app.extensions import db
from app.models import Role, University, User
from app.repositories.base import Repository, transaction
from app.utils.validation import parse_enum, parse_int, text_value, validate_email, validate_password

DUPLICATE_EMAIL_MESSAGE = "An account with this email already exists."


def serialize_user(user):
    from app.utils.helpers import format_utc_iso

    return {
        "id": user.id,
        "email": user.email,
        "role": user.role.value,
        "university_id": user.university_id,
        "university_name": user.university.name if user.university else None,
        "created_at": format_utc_iso(user.created_at),
        "last_login": format_utc_iso(user.last_login),
    }


class UserRepository(Repository):

    def _resolve_scope(self, role, raw_university_id):
        """University accounts must name an existing university; others carry none."""
        if role != Role.UNIVERSITY:
            return None
        university_id = parse_int(raw_university_id, 'university_id', required=False)
        if university_id is None:
            raise ValidationError("university_id is required for university accounts.")
        if db.session.get(University, university_id) is None:
            raise ValidationError("University not found.")
        return university_id

    def _admin_count(self):
        return User.query.filter_by(role=Role.ADMIN).count()

    @guarded(*ADMIN_ONLY)
    def list(self):
        return User.query.order_by(User.created_at.desc(), User.id.desc()).all()

    @guarded(*ADMIN_ONLY)
    def get(self, user_id):
        user = db.session.get(User, user_id)
        if user is None:
            raise NotFound("User not found.")
        return user

    @guarded(*ADMIN_ONLY)
    def create(self, data):
        email = validate_email(data.get('email'))
        password = data.get('password') or ''
        if not password:
            raise ValidationError("password is required.")
        validate_password(password)
        if not data.get('role'):
            raise ValidationError("role is required.")
        role = parse_enum(Role, data.get('role'), 'role')
        university_id = self._resolve_scope(role, data.get('university_id'))

        if User.query.filter(db.func.lower(User.email) == email).first() is not None:
            raise Conflict(DUPLICATE_EMAIL_MESSAGE)

        user = User(email=email, role=role, university_id=university_id)
        user.set_password(password)
        with transaction(DUPLICATE_EMAIL_MESSAGE):
            db.session.add(user)
        return user

    @guarded(*ADMIN_ONLY)
    def update(self, user_id, data):
        """Change a user's role and/or university scope."""
        user = self.get(user_id)
        role = user.role
        if 'role' in data:
            role = parse_enum(Role, data.get('role'), 'role')
        raw_university_id = data.get('university_id', user.university_id)
        university_id = self._resolve_scope(role, raw_university_id)

        if user.role == Role.ADMIN and role != Role.ADMIN and self._admin_count() <= 1:
            raise Conflict("Cannot change the role of the last admin account.")

        changed = []
        with transaction():
            if role != user.role:
                user.role = role
                changed.append('role')
            if university_id != user.university_id:
                user.university_id = university_id
                changed.append('university_id')
        return user, changed

    @guarded(*ADMIN_ONLY)
    def delete(self, user_id):
        if user_id == self.actor_id:
            raise Forbidden("You cannot delete your own account.")
        user = self.get(user_id)
        if user.role == Role.ADMIN and self._admin_count() <= 1:
            raise Conflict("Cannot delete the last admin account.")
        with transaction():
            db.session.delete(user)
        return user

    def change_own_password(self, current_password, new_password):
        """Any signed-in user may change their own password."""
        user = db.session.get(User, self.actor_id)
        if user is None:
            raise NotFound("User not found.")
        current_password = text_value(current_password, 'current_password')
        if not current_password or not user.check_password(current_password):
            raise ValidationError("Current password is incorrect.")
        validate_password(new_password)
        if user.check_password(new_password):
            raise ValidationError("New password must be different from the current password.")
        with transaction():
            user.set_password(new_password)
        return user
