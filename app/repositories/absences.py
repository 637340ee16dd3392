"""
Absence and evidence-file data access.

Absences inherit visibility from their student: absences of soft-deleted
students are hidden, and university users only see their own university.
"""

from flask import current_app

from app.auth import STAFF_ROLES, guarded, require_university_scope
from app.errors import Conflict, NotFound
from app.extensions import db
from app.models import Absence, AbsenceFile, AbsenceReason, Role, Student
from app.repositories.base import Repository, transaction
from app.services.storage import ABSENCE_BUCKET, get_storage
from app.utils.validation import optional_text, parse_date, parse_enum, parse_int

DUPLICATE_ABSENCE_MESSAGE = "An absence is already registered for this student on that date."


def serialize_absence(absence, include_files=False):
    from app.utils.helpers import format_date, format_utc_iso

    student = absence.student
    data = {
        "id": absence.id,
        "student_id": absence.student_id,
        "student_name": student.name,
        "student_no": student.student_no,
        "university_id": student.university_id,
        "university_name": student.university.name if student.university else None,
        "absence_date": format_date(absence.absence_date),
        "reason": absence.reason.value,
        "note": absence.note,
        "created_by": absence.created_by,
        "created_at": format_utc_iso(absence.created_at),
        "file_count": len(absence.files),
    }
    if include_files:
        data["files"] = [serialize_absence_file(f) for f in absence.files]
    return data


def serialize_absence_file(absence_file, signed_url=None):
    from app.utils.helpers import format_utc_iso

    data = {
        "id": absence_file.id,
        "absence_id": absence_file.absence_id,
        "original_name": absence_file.original_name,
        "content_type": absence_file.content_type,
        "size_bytes": absence_file.size_bytes,
        "created_at": format_utc_iso(absence_file.created_at),
    }
    if signed_url is not None:
        data["url"] = signed_url
    return data


class AbsenceRepository(Repository):

    def _visible(self):
        query = (
            Absence.query
            .join(Student, Absence.student_id == Student.id)
            .filter(Student.deleted_at.is_(None))
        )
        if self.identity.role == Role.UNIVERSITY:
            query = query.filter(Student.university_id == self.identity.university_id)
        return query

    @guarded()
    def list(self, student_id=None, university_id=None, start_date=None, end_date=None, reason=None):
        query = self._visible()
        if student_id is not None:
            query = query.filter(Absence.student_id == student_id)
        if university_id is not None and self.identity.role != Role.UNIVERSITY:
            query = query.filter(Student.university_id == university_id)
        if start_date is not None:
            query = query.filter(Absence.absence_date >= start_date)
        if end_date is not None:
            query = query.filter(Absence.absence_date <= end_date)
        if reason is not None:
            query = query.filter(Absence.reason == reason)
        return query.order_by(Absence.absence_date.desc(), Absence.id.desc()).all()

    @guarded()
    def get(self, absence_id):
        absence = db.session.get(Absence, absence_id)
        if absence is None or absence.student.is_deleted:
            raise NotFound("Absence not found.")
        require_university_scope(self.identity, absence.student.university_id)
        return absence

    @guarded(*STAFF_ROLES)
    def create(self, data):
        student_id = parse_int(data.get('student_id'), 'student_id')
        absence_date = parse_date(data.get('absence_date'), 'absence_date')
        reason = parse_enum(AbsenceReason, data.get('reason'), 'reason')
        note = optional_text(data, 'note', 1000)

        student = db.session.get(Student, student_id)
        if student is None or student.is_deleted:
            raise NotFound("Student not found.")

        exists = db.session.query(
            Absence.query.filter_by(student_id=student.id, absence_date=absence_date).exists()
        ).scalar()
        if exists:
            raise Conflict(DUPLICATE_ABSENCE_MESSAGE)

        absence = Absence(
            student_id=student.id,
            absence_date=absence_date,
            reason=reason,
            note=note,
            created_by=self.actor_id,
        )
        with transaction(DUPLICATE_ABSENCE_MESSAGE):
            db.session.add(absence)
        return absence

    @guarded(*STAFF_ROLES)
    def delete(self, absence_id):
        """Delete an absence, its evidence rows and the stored evidence files."""
        absence = self.get(absence_id)
        paths = [f.file_path for f in absence.files]
        with transaction():
            db.session.delete(absence)
        if paths and not get_storage().remove(ABSENCE_BUCKET, paths):
            current_app.logger.error(f"Evidence files of absence {absence_id} need manual cleanup: {paths}")
        return absence

    # -------------------- EVIDENCE FILES --------------------

    @guarded()
    def list_files(self, absence_id):
        return self.get(absence_id).files

    @guarded()
    def get_file(self, absence_id, file_id):
        absence = self.get(absence_id)
        absence_file = next((f for f in absence.files if f.id == file_id), None)
        if absence_file is None:
            raise NotFound("File not found.")
        return absence_file

    @guarded(*STAFF_ROLES)
    def add_file(self, absence_id, file_path, original_name, content_type, size_bytes):
        """
        Record metadata for an evidence file that is already in storage.
        The caller removes the stored object if this raises.
        """
        absence = self.get(absence_id)
        absence_file = AbsenceFile(
            absence_id=absence.id,
            file_path=file_path,
            original_name=original_name[:255],
            content_type=content_type,
            size_bytes=size_bytes,
        )
        with transaction():
            db.session.add(absence_file)
        return absence_file

    @guarded(*STAFF_ROLES)
    def delete_file(self, absence_id, file_id):
        absence_file = self.get_file(absence_id, file_id)
        path = absence_file.file_path
        with transaction():
            db.session.delete(absence_file)
        if not get_storage().remove(ABSENCE_BUCKET, [path]):
            current_app.logger.error(f"Evidence file {path} needs manual cleanup")
        return absence_file
