"""
Quarterly check-in API routes (admin and agency).
"""

from flask import Blueprint, g, jsonify, request

from app.auth import STAFF_ROLES, roles_required
from app.errors import ValidationError
from app.repositories.checkins import serialize_checkin
from app.repositories.students import serialize_student
from app.services.checkin import checkin_detail, perform_checkin, quarter_student_statuses, quarter_summary
from app.utils.dates import bucket_for, local_today, quarter_of
from app.utils.helpers import format_utc_iso, get_json_body
from app.utils.validation import parse_int, parse_year

checkin_bp = Blueprint('checkin', __name__, url_prefix='/api/checkin')


@checkin_bp.route('', methods=['POST'])
@roles_required(*STAFF_ROLES)
def submit_checkin():
    data = get_json_body()
    student_id = parse_int(data.get('student_id'), 'student_id')
    checkin, changed = perform_checkin(g.identity, student_id, data)
    return jsonify({
        "status": "success",
        "checkin": serialize_checkin(checkin),
        "changed_fields": changed,
    })


def _quarter_args():
    today = local_today()
    year = parse_year(request.args.get('year'), today.year)
    quarter = parse_int(request.args.get('quarter'), 'quarter', required=False) or quarter_of(today)
    if quarter not in (1, 2, 3, 4):
        raise ValidationError("quarter must be between 1 and 4.")
    return year, quarter


@checkin_bp.route('', methods=['GET'])
@roles_required(*STAFF_ROLES)
def checkin_summary():
    year, quarter = _quarter_args()
    return jsonify({"status": "success", "summary": quarter_summary(g.identity, year, quarter)})


@checkin_bp.route('/students', methods=['GET'])
@roles_required(*STAFF_ROLES)
def checkin_students():
    """Enrolled students split by whether this quarter's check-in is done."""
    year, quarter = _quarter_args()
    statuses = quarter_student_statuses(g.identity, year, quarter)

    def serialize(rows):
        return [dict(serialize_student(student), checkin=serialize_checkin(checkin)) for student, checkin in rows]

    return jsonify({
        "status": "success",
        "quarter": bucket_for(year, quarter),
        "checked": serialize(statuses["checked"]),
        "unchecked": serialize(statuses["unchecked"]),
    })


@checkin_bp.route('/<int:student_id>', methods=['GET'])
@roles_required(*STAFF_ROLES)
def get_checkin(student_id):
    detail = checkin_detail(g.identity, student_id)
    return jsonify({
        "status": "success",
        "student": serialize_student(detail["student"]),
        "current": serialize_checkin(detail["current"]),
        "history": [serialize_checkin(c) for c in detail["history"]],
        "contact_changes": [
            {
                "field": change.field_name.value,
                "old_value": change.old_value,
                "new_value": change.new_value,
                "changed_by": change.changed_by,
                "check_in_date": change.check_in_date.isoformat() if change.check_in_date else None,
                "created_at": format_utc_iso(change.created_at),
            }
            for change in detail["contact_changes"]
        ],
    })
