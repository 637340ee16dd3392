"""
Student data access.

All reads exclude soft-deleted students and, for university users, students
of other universities. Writes are restricted to admin and agency users.
"""

from datetime import datetime, timezone

from app.auth import STAFF_ROLES, guarded, require_university_scope
from app.errors import NotFound, ValidationError, Conflict
from app.extensions import db
from app.models import (
    ContactChangeLog,
    ContactField,
    Role,
    Student,
    StudentProgram,
    StudentStatus,
    University,
)
from app.repositories.base import Repository, transaction
from app.utils.validation import (
    parse_enum,
    parse_int,
    require_text,
    validate_optional_email,
)

DUPLICATE_STUDENT_MESSAGE = (
    "A student with this student number is already registered "
    "for this university and program."
)

CONTACT_FIELDS = (ContactField.PHONE, ContactField.ADDRESS, ContactField.EMAIL)


def normalize_contact_value(field, value):
    """Trim a submitted contact value; phone and address may not be blank."""
    if field == ContactField.EMAIL:
        return validate_optional_email(value)
    value = '' if value is None else str(value).strip()
    if not value:
        raise ValidationError(f"{field.value} is required.")
    if len(value) > 255:
        raise ValidationError(f"{field.value} must be at most 255 characters.")
    return value


def apply_contact_changes(student, submitted, actor_id, check_in_date=None):
    """
    Compare submitted contact values against the student's stored ones.

    For each field present in ``submitted`` whose value differs, a
    ContactChangeLog row is added to the session and the student is updated.
    Nothing is committed here.

    Returns:
        list[ContactField]: fields that changed.
    """
    changed = []
    for field in CONTACT_FIELDS:
        if field.value not in submitted:
            continue
        new_value = normalize_contact_value(field, submitted[field.value])
        old_value = getattr(student, field.value)
        if new_value == old_value:
            continue
        db.session.add(ContactChangeLog(
            student_id=student.id,
            field_name=field,
            old_value=old_value,
            new_value=new_value,
            changed_by=actor_id,
            check_in_date=check_in_date,
        ))
        setattr(student, field.value, new_value)
        changed.append(field)
    return changed


def serialize_student(student, include_contact=True):
    from app.utils.helpers import format_utc_iso

    data = {
        "id": student.id,
        "university_id": student.university_id,
        "university_name": student.university.name if student.university else None,
        "student_no": student.student_no,
        "name": student.name,
        "department": student.department,
        "program": student.program.value,
        "status": student.status.value,
        "has_consent_file": bool(student.consent_file_path),
        "created_at": format_utc_iso(student.created_at),
        "updated_at": format_utc_iso(student.updated_at),
    }
    if include_contact:
        data.update(phone=student.phone, address=student.address, email=student.email)
    return data


class StudentRepository(Repository):

    def _visible(self):
        query = Student.query.filter(Student.deleted_at.is_(None))
        if self.identity.role == Role.UNIVERSITY:
            query = query.filter(Student.university_id == self.identity.university_id)
        return query

    def _duplicate_exists(self, university_id, program, student_no, exclude_id=None):
        query = Student.query.filter(
            Student.university_id == university_id,
            Student.program == program,
            Student.student_no == student_no,
            Student.deleted_at.is_(None),
        )
        if exclude_id is not None:
            query = query.filter(Student.id != exclude_id)
        return db.session.query(query.exists()).scalar()

    @guarded()
    def list(self, university_id=None, program=None, status=None, search=None):
        query = self._visible()
        if university_id is not None and self.identity.role != Role.UNIVERSITY:
            query = query.filter(Student.university_id == university_id)
        if program is not None:
            query = query.filter(Student.program == program)
        if status is not None:
            query = query.filter(Student.status == status)
        if search:
            pattern = f"%{search}%"
            query = query.filter(db.or_(Student.name.ilike(pattern), Student.student_no.ilike(pattern)))
        return query.order_by(Student.created_at.desc(), Student.id.desc()).all()

    @guarded()
    def get(self, student_id):
        """Return a visible student. NotFound when absent or soft-deleted, Forbidden out of scope."""
        student = db.session.get(Student, student_id)
        if student is None or student.is_deleted:
            raise NotFound("Student not found.")
        require_university_scope(self.identity, student.university_id)
        return student

    @guarded(*STAFF_ROLES)
    def create(self, data):
        university_id = parse_int(data.get('university_id'), 'university_id')
        student_no = require_text(data, 'student_no', 50)
        name = require_text(data, 'name', 100)
        department = require_text(data, 'department', 100)
        program = parse_enum(StudentProgram, require_text(data, 'program', 20), 'program')
        status = StudentStatus.ENROLLED
        if data.get('status'):
            status = parse_enum(StudentStatus, data['status'], 'status')
        phone = normalize_contact_value(ContactField.PHONE, data.get('phone'))
        address = normalize_contact_value(ContactField.ADDRESS, data.get('address'))
        email = normalize_contact_value(ContactField.EMAIL, data.get('email'))

        if db.session.get(University, university_id) is None:
            raise ValidationError("University not found.")
        if self._duplicate_exists(university_id, program, student_no):
            raise Conflict(DUPLICATE_STUDENT_MESSAGE)

        student = Student(
            university_id=university_id,
            student_no=student_no,
            name=name,
            department=department,
            program=program,
            status=status,
            phone=phone,
            address=address,
            email=email,
        )
        with transaction(DUPLICATE_STUDENT_MESSAGE):
            db.session.add(student)
        return student

    @guarded(*STAFF_ROLES)
    def update(self, student_id, data):
        """
        Partially update a student. Contact changes are logged with no
        check-in date.

        Returns:
            tuple: (student, list of changed field names)
        """
        student = self.get(student_id)
        changed = []

        with transaction(DUPLICATE_STUDENT_MESSAGE):
            for field, max_length in (('name', 100), ('department', 100), ('student_no', 50)):
                if field in data:
                    value = require_text(data, field, max_length)
                    if value != getattr(student, field):
                        setattr(student, field, value)
                        changed.append(field)

            if 'program' in data:
                program = parse_enum(StudentProgram, data['program'], 'program')
                if program != student.program:
                    student.program = program
                    changed.append('program')

            if 'status' in data:
                status = parse_enum(StudentStatus, data['status'], 'status')
                if status != student.status:
                    student.status = status
                    changed.append('status')

            if 'university_id' in data:
                university_id = parse_int(data['university_id'], 'university_id')
                if university_id != student.university_id:
                    if db.session.get(University, university_id) is None:
                        raise ValidationError("University not found.")
                    student.university_id = university_id
                    changed.append('university_id')

            if {'student_no', 'program', 'university_id'} & set(changed):
                with db.session.no_autoflush:
                    duplicate = self._duplicate_exists(student.university_id, student.program,
                                                       student.student_no, exclude_id=student.id)
                if duplicate:
                    raise Conflict(DUPLICATE_STUDENT_MESSAGE)

            contact_changes = apply_contact_changes(student, data, self.actor_id)
            changed.extend(field.value for field in contact_changes)
            if changed:
                student.updated_at = datetime.now(timezone.utc)
        return student, changed

    @guarded(*STAFF_ROLES)
    def soft_delete(self, student_id):
        student = self.get(student_id)
        with transaction():
            student.deleted_at = datetime.now(timezone.utc)
        return student

    @guarded(*STAFF_ROLES)
    def set_consent_file(self, student_id, path):
        """Point the student at a new consent file. Returns the replaced path, if any."""
        student = self.get(student_id)
        previous = student.consent_file_path
        with transaction():
            student.consent_file_path = path
        return previous

    @guarded(*STAFF_ROLES)
    def clear_consent_file(self, student_id):
        student = self.get(student_id)
        previous = student.consent_file_path
        if not previous:
            raise ValidationError("No consent file to delete.")
        with transaction():
            student.consent_file_path = None
        return previous

    @guarded()
    def contact_history(self, student_id):
        student = self.get(student_id)
        return (
            ContactChangeLog.query
            .filter_by(student_id=student.id)
            .order_by(ContactChangeLog.created_at.desc(), ContactChangeLog.id.desc())
            .all()
        )
