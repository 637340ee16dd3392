"""
Absence API routes: absences, evidence files and absence notifications.
"""

from flask import Blueprint, current_app, g, jsonify, request

from app import audit
from app.auth import STAFF_ROLES, login_required, roles_required
from app.errors import UpstreamFailure, ValidationError
from app.extensions import sensitive_limit
from app.models import AbsenceReason
from app.repositories import AbsenceRepository
from app.repositories.absences import serialize_absence, serialize_absence_file
from app.services.notifications import send_absence_notification
from app.services.storage import (
    ABSENCE_BUCKET,
    EVIDENCE_MAX_BYTES,
    build_object_path,
    get_storage,
    validate_upload,
)
from app.utils.helpers import get_json_body
from app.utils.validation import parse_bool, parse_date, parse_enum, parse_int

absences_bp = Blueprint('absences', __name__, url_prefix='/api')


@absences_bp.route('/absences', methods=['GET'])
@login_required
def list_absences():
    args = request.args
    absences = AbsenceRepository(g.identity).list(
        student_id=parse_int(args.get('student_id'), 'student_id', required=False),
        university_id=parse_int(args.get('university_id'), 'university_id', required=False),
        start_date=parse_date(args['start_date'], 'start_date') if args.get('start_date') else None,
        end_date=parse_date(args['end_date'], 'end_date') if args.get('end_date') else None,
        reason=parse_enum(AbsenceReason, args['reason'], 'reason') if args.get('reason') else None,
    )
    return jsonify({
        "status": "success",
        "absences": [serialize_absence(a) for a in absences],
        "count": len(absences),
    })


@absences_bp.route('/absences', methods=['POST'])
@roles_required(*STAFF_ROLES)
def create_absence():
    data = get_json_body()
    absence = AbsenceRepository(g.identity).create(data)
    current_app.logger.info(f"Absence {absence.id} recorded for student {absence.student_id}")

    response = {"status": "success", "absence": serialize_absence(absence)}
    if parse_bool(data.get('send_notification', False)):
        result = send_absence_notification(absence)
        response["notification_sent"] = result.success
        if not result.success:
            response["notification_error"] = result.error
    return jsonify(response), 201


@absences_bp.route('/absences/<int:absence_id>', methods=['GET'])
@login_required
def get_absence(absence_id):
    absence = AbsenceRepository(g.identity).get(absence_id)
    return jsonify({"status": "success", "absence": serialize_absence(absence, include_files=True)})


@absences_bp.route('/absences/<int:absence_id>', methods=['DELETE'])
@roles_required(*STAFF_ROLES)
def delete_absence(absence_id):
    AbsenceRepository(g.identity).delete(absence_id)
    current_app.logger.info(f"Absence {absence_id} deleted by user {g.identity.id}")
    audit.log_delete(g.identity.id, 'absence', absence_id)
    return jsonify({"status": "success", "message": "Absence deleted."})


# -------------------- EVIDENCE FILES --------------------

@absences_bp.route('/absences/<int:absence_id>/files', methods=['GET'])
@login_required
def list_absence_files(absence_id):
    storage = get_storage()
    files = AbsenceRepository(g.identity).list_files(absence_id)
    return jsonify({
        "status": "success",
        "files": [
            serialize_absence_file(
                f, storage.create_signed_url(ABSENCE_BUCKET, f.file_path, download_name=f.original_name)
            )
            for f in files
        ],
    })


@absences_bp.route('/absences/<int:absence_id>/files', methods=['POST'])
@roles_required(*STAFF_ROLES)
@sensitive_limit
def upload_absence_file(absence_id):
    """Attach an evidence document (PDF or image, max 10MB) to an absence."""
    repo = AbsenceRepository(g.identity)
    absence = repo.get(absence_id)
    upload = request.files.get('file')
    data, content_type, extension = validate_upload(upload, EVIDENCE_MAX_BYTES)

    storage = get_storage()
    path = build_object_path(absence.id, extension)
    storage.upload(ABSENCE_BUCKET, path, data)
    try:
        absence_file = repo.add_file(absence.id, path, upload.filename, content_type, len(data))
    except Exception:
        if not storage.remove(ABSENCE_BUCKET, [path]):
            current_app.logger.error(f"Orphaned evidence upload {path} needs manual cleanup")
        raise

    audit.log_upload(g.identity.id, 'absence_file', upload.filename, absence.id)
    return jsonify({"status": "success", "file": serialize_absence_file(absence_file)}), 201


@absences_bp.route('/absences/<int:absence_id>/files', methods=['DELETE'])
@roles_required(*STAFF_ROLES)
def delete_absence_file(absence_id):
    file_id = parse_int(request.args.get('file_id'), 'file_id')
    AbsenceRepository(g.identity).delete_file(absence_id, file_id)
    audit.log_delete(g.identity.id, 'absence_file', file_id)
    return jsonify({"status": "success", "message": "File deleted."})


# -------------------- NOTIFICATIONS --------------------

@absences_bp.route('/notify/absence', methods=['POST'])
@roles_required(*STAFF_ROLES)
@sensitive_limit
def notify_absence():
    data = get_json_body()
    absence = AbsenceRepository(g.identity).get(parse_int(data.get('absence_id'), 'absence_id'))
    if not absence.student.university.contacts:
        raise ValidationError("No contacts registered for this university.")

    result = send_absence_notification(absence)
    if not result.success:
        raise UpstreamFailure("Failed to send the notification e-mail.")
    return jsonify({"status": "success", "sent": True, "message_id": result.message_id})
