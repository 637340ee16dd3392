"""
Student API routes, including the consent-form upload.
"""

from flask import Blueprint, current_app, g, jsonify, request

from app import audit
from app.auth import STAFF_ROLES, login_required, roles_required
from app.errors import NotFound
from app.extensions import sensitive_limit
from app.models import StudentProgram, StudentStatus
from app.repositories import StudentRepository
from app.repositories.students import serialize_student
from app.services.storage import (
    CONSENT_BUCKET,
    CONSENT_MAX_BYTES,
    build_object_path,
    get_storage,
    validate_upload,
)
from app.utils.helpers import get_json_body
from app.utils.validation import parse_enum, parse_int

students_bp = Blueprint('students', __name__, url_prefix='/api/students')


@students_bp.route('', methods=['GET'])
@login_required
def list_students():
    args = request.args
    program = parse_enum(StudentProgram, args['program'], 'program') if args.get('program') else None
    status = parse_enum(StudentStatus, args['status'], 'status') if args.get('status') else None
    students = StudentRepository(g.identity).list(
        university_id=parse_int(args.get('university_id'), 'university_id', required=False),
        program=program,
        status=status,
        search=(args.get('search') or '').strip() or None,
    )
    return jsonify({
        "status": "success",
        "students": [serialize_student(s) for s in students],
        "count": len(students),
    })


@students_bp.route('', methods=['POST'])
@roles_required(*STAFF_ROLES)
def create_student():
    student = StudentRepository(g.identity).create(get_json_body())
    current_app.logger.info(f"Student {student.id} created by user {g.identity.id}")
    return jsonify({"status": "success", "student": serialize_student(student)}), 201


@students_bp.route('/<int:student_id>', methods=['GET'])
@login_required
def get_student(student_id):
    student = StudentRepository(g.identity).get(student_id)
    return jsonify({"status": "success", "student": serialize_student(student)})


@students_bp.route('/<int:student_id>', methods=['PUT', 'PATCH'])
@roles_required(*STAFF_ROLES)
def update_student(student_id):
    student, changed = StudentRepository(g.identity).update(student_id, get_json_body())
    if changed:
        audit.log_update(g.identity.id, 'student', student.id, changed)
    return jsonify({
        "status": "success",
        "student": serialize_student(student),
        "changed_fields": changed,
    })


@students_bp.route('/<int:student_id>', methods=['DELETE'])
@roles_required(*STAFF_ROLES)
def delete_student(student_id):
    StudentRepository(g.identity).soft_delete(student_id)
    current_app.logger.info(f"Student {student_id} soft-deleted by user {g.identity.id}")
    audit.log_delete(g.identity.id, 'student', student_id)
    return jsonify({"status": "success", "message": "Student deleted."})


# -------------------- CONSENT FORM --------------------

@students_bp.route('/<int:student_id>/consent', methods=['GET'])
@login_required
def get_consent_file(student_id):
    student = StudentRepository(g.identity).get(student_id)
    if not student.consent_file_path:
        raise NotFound("No consent file uploaded.")
    url = get_storage().create_signed_url(
        CONSENT_BUCKET,
        student.consent_file_path,
        download_name=f"consent_{student.student_no}.{student.consent_file_path.rsplit('.', 1)[-1]}",
    )
    audit.log_download(g.identity.id, 'consent_file', student.consent_file_path, student.id)
    return jsonify({"status": "success", "url": url})


@students_bp.route('/<int:student_id>/consent', methods=['POST'])
@roles_required(*STAFF_ROLES)
@sensitive_limit
def upload_consent_file(student_id):
    """Upload or replace a student's consent form (PDF or image, max 5MB)."""
    repo = StudentRepository(g.identity)
    student = repo.get(student_id)
    upload = request.files.get('file')
    data, content_type, extension = validate_upload(upload, CONSENT_MAX_BYTES)

    storage = get_storage()
    path = build_object_path(student.id, extension)
    storage.upload(CONSENT_BUCKET, path, data)
    try:
        previous = repo.set_consent_file(student.id, path)
    except Exception:
        if not storage.remove(CONSENT_BUCKET, [path]):
            current_app.logger.error(f"Orphaned consent upload {path} needs manual cleanup")
        raise

    if previous:
        storage.remove(CONSENT_BUCKET, [previous])

    audit.log_upload(g.identity.id, 'consent_file', upload.filename, student.id)
    return jsonify({"status": "success", "message": "Consent file uploaded."}), 201


@students_bp.route('/<int:student_id>/consent', methods=['DELETE'])
@roles_required(*STAFF_ROLES)
def delete_consent_file(student_id):
    previous = StudentRepository(g.identity).clear_consent_file(student_id)
    get_storage().remove(CONSENT_BUCKET, [previous])
    audit.log_delete(g.identity.id, 'consent_file', student_id)
    return jsonify({"status": "success", "message": "Consent file deleted."})
