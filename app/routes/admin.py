"""
Admin API routes: universities (reference data), user accounts and the
audit log.

University listing is open to every signed-in user so forms can offer the
choices; all changes are admin-only.
"""

from flask import Blueprint, current_app, g, jsonify, request

from app import audit
from app.auth import admin_required, login_required
from app.extensions import db
from app.models import AuditAction, User
from app.repositories import AuditLogRepository, UniversityRepository, UserRepository
from app.repositories.audit_logs import serialize_audit_log
from app.repositories.universities import serialize_university
from app.repositories.users import serialize_user
from app.utils.helpers import get_json_body, get_pagination_args
from app.utils.validation import parse_enum, parse_int

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')


# -------------------- UNIVERSITIES --------------------

@admin_bp.route('/universities', methods=['GET'])
@login_required
def list_universities():
    universities = UniversityRepository(g.identity).list()
    include_contacts = g.identity.is_admin
    return jsonify({
        "status": "success",
        "universities": [serialize_university(u, include_contacts=include_contacts) for u in universities],
    })


@admin_bp.route('/universities', methods=['POST'])
@admin_required
def create_university():
    university = UniversityRepository(g.identity).create(get_json_body())
    current_app.logger.info(f"University {university.id} created by user {g.identity.id}")
    return jsonify({
        "status": "success",
        "university": serialize_university(university, include_contacts=True),
    }), 201


@admin_bp.route('/universities/<int:university_id>', methods=['GET'])
@admin_required
def get_university(university_id):
    university = UniversityRepository(g.identity).get(university_id)
    return jsonify({
        "status": "success",
        "university": serialize_university(university, include_contacts=True),
    })


@admin_bp.route('/universities/<int:university_id>', methods=['PUT', 'PATCH'])
@admin_required
def update_university(university_id):
    university, changed = UniversityRepository(g.identity).update(university_id, get_json_body())
    if changed:
        audit.log_update(g.identity.id, 'university', university.id, changed)
    return jsonify({
        "status": "success",
        "university": serialize_university(university, include_contacts=True),
    })


@admin_bp.route('/universities/<int:university_id>', methods=['DELETE'])
@admin_required
def delete_university(university_id):
    UniversityRepository(g.identity).delete(university_id)
    current_app.logger.info(f"University {university_id} deleted by user {g.identity.id}")
    audit.log_delete(g.identity.id, 'university', university_id)
    return jsonify({"status": "success", "message": "University deleted."})


# -------------------- USERS --------------------

@admin_bp.route('/users', methods=['GET'])
@admin_required
def list_users():
    users = UserRepository(g.identity).list()
    return jsonify({"status": "success", "users": [serialize_user(u) for u in users]})


@admin_bp.route('/users', methods=['POST'])
@admin_required
def create_user():
    user = UserRepository(g.identity).create(get_json_body())
    current_app.logger.info(f"User {user.id} ({user.role.value}) created by user {g.identity.id}")
    return jsonify({"status": "success", "user": serialize_user(user)}), 201


@admin_bp.route('/users/<int:user_id>', methods=['PUT', 'PATCH'])
@admin_required
def update_user(user_id):
    user, changed = UserRepository(g.identity).update(user_id, get_json_body())
    if changed:
        audit.log_update(g.identity.id, 'user', user.id, changed)
    return jsonify({"status": "success", "user": serialize_user(user)})


@admin_bp.route('/users/<int:user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    UserRepository(g.identity).delete(user_id)
    current_app.logger.info(f"User {user_id} deleted by user {g.identity.id}")
    audit.log_delete(g.identity.id, 'user', user_id)
    return jsonify({"status": "success", "message": "User deleted."})


# -------------------- AUDIT LOG --------------------

@admin_bp.route('/audit-logs', methods=['GET'])
@admin_required
def list_audit_logs():
    repo = AuditLogRepository(g.identity)
    page, per_page = get_pagination_args()
    action_type = None
    if request.args.get('action_type'):
        action_type = parse_enum(AuditAction, request.args['action_type'], 'action_type')
    user_id = parse_int(request.args.get('user_id'), 'user_id', required=False)

    entries, total = repo.list(action_type=action_type, user_id=user_id, page=page, per_page=per_page)
    actor_ids = {e.user_id for e in entries if e.user_id is not None}
    emails = {}
    if actor_ids:
        emails = dict(db.session.query(User.id, User.email).filter(User.id.in_(actor_ids)).all())

    return jsonify({
        "status": "success",
        "logs": [serialize_audit_log(e, emails) for e in entries],
        "page": page,
        "per_page": per_page,
        "total": total,
        "counts": repo.counts(),
    })
