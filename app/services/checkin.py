"""
Quarterly check-in workflow.

A verifier confirms a student's phone, address and e-mail once per quarter.
Changed values are written to the contact change log and their verified
flag is forced to false. The contact updates, change-log rows and the
check-in upsert commit together or not at all.
"""

from flask import current_app

from app import audit
from app.auth import STAFF_ROLES, require_role
from app.errors import UpstreamFailure
from app.models import ContactField
from app.repositories.base import transaction
from app.repositories.checkins import CheckinRepository
from app.repositories.students import StudentRepository, apply_contact_changes
from app.utils.dates import local_today
from app.utils.validation import parse_bool

VERIFIED_FLAGS = {
    ContactField.PHONE: 'phone_verified',
    ContactField.ADDRESS: 'address_verified',
    ContactField.EMAIL: 'email_verified',
}


def perform_checkin(identity, student_id, submission, today=None):
    """
    Record this quarter's check-in for a student.

    Args:
        identity: the verifier (admin or agency).
        student_id: id of a non-deleted student.
        submission: dict with optional ``phone``/``address``/``email`` values
            and ``phone_verified``/``address_verified``/``email_verified`` flags.
            Omitted contact fields are treated as unchanged.
        today: override for the local date (defaults to today in APP_TIMEZONE).

    Returns:
        tuple: (QuarterlyCheckin, list of changed field names)

    Raises:
        Forbidden, NotFound, ValidationError, UpstreamFailure
    """
    require_role(identity, STAFF_ROLES)
    today = today or local_today()

    students = StudentRepository(identity)
    checkins = CheckinRepository(identity)
    student = students.get(student_id)

    flags = {
        name: parse_bool(submission.get(name, False))
        for name in VERIFIED_FLAGS.values()
    }

    try:
        with transaction():
            changed = apply_contact_changes(student, submission, identity.id, check_in_date=today)
            for field in changed:
                flags[VERIFIED_FLAGS[field]] = False
            checkin = checkins.upsert_current(student.id, today, **flags)
    except UpstreamFailure:
        current_app.logger.error(f"Check-in for student {student.id} rolled back")
        raise

    changed_names = [field.value for field in changed]
    current_app.logger.info(
        f"Check-in {checkin.quarter_bucket} recorded for student {student.id} by user {identity.id}"
        + (f"; changed: {', '.join(changed_names)}" if changed_names else "")
    )
    audit.log_update(identity.id, "checkin", student.id, changed_names)
    return checkin, changed_names


def checkin_detail(identity, student_id, today=None):
    """Current check-in, check-in history and contact change history of a student."""
    require_role(identity, STAFF_ROLES)
    today = today or local_today()
    students = StudentRepository(identity)
    checkins = CheckinRepository(identity)
    student = students.get(student_id)
    return {
        "student": student,
        "current": checkins.current_for(student.id, today),
        "history": checkins.history_for(student.id),
        "contact_changes": students.contact_history(student.id),
    }


def quarter_summary(identity, year, quarter):
    require_role(identity, STAFF_ROLES)
    return CheckinRepository(identity).summary(year, quarter)


def quarter_student_statuses(identity, year, quarter):
    """Split enrolled students into checked and unchecked for one quarter."""
    require_role(identity, STAFF_ROLES)
    checked, unchecked = [], []
    for student, checkin in CheckinRepository(identity).student_statuses(year, quarter):
        (checked if checkin is not None else unchecked).append((student, checkin))
    return {"checked": checked, "unchecked": unchecked}
