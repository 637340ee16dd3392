"""
Database models for the FRISK portal.

All SQLAlchemy models are defined here with proper relationships and properties.
Times are stored as UTC in the database. Student contact details and their
change history are encrypted at rest with PIIEncryptedType.
"""

from datetime import datetime, timezone
import enum

from sqlalchemy import event
from werkzeug.security import check_password_hash, generate_password_hash

from app.extensions import db
from app.utils.encryption import PIIEncryptedType


def _utc_now():
    """Helper function for timezone-aware datetime defaults in SQLAlchemy models."""
    return datetime.now(timezone.utc)


class _ValueEnum(enum.Enum):
    """Enum stored and serialized by its lowercase value."""

    @classmethod
    def from_string(cls, value):
        """Convert string to enum, raising ValueError if invalid."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(f"Invalid {cls.__name__}: {value}")


def _enum_column(enum_cls, name):
    return db.Enum(enum_cls, name=name, values_callable=lambda x: [e.value for e in x])


# -------------------- ENUMS --------------------

class Role(_ValueEnum):
    ADMIN = 'admin'
    AGENCY = 'agency'
    UNIVERSITY = 'university'


class StudentProgram(_ValueEnum):
    LANGUAGE = 'language'
    BACHELOR = 'bachelor'
    MASTER = 'master'
    PHD = 'phd'


class StudentStatus(_ValueEnum):
    ENROLLED = 'enrolled'
    GRADUATED = 'graduated'
    COMPLETED = 'completed'
    WITHDRAWN = 'withdrawn'
    EXPELLED = 'expelled'


class AbsenceReason(_ValueEnum):
    ILLNESS = 'illness'
    PERSONAL = 'personal'
    OTHER = 'other'

    @property
    def label(self):
        return {
            AbsenceReason.ILLNESS: 'Illness',
            AbsenceReason.PERSONAL: 'Personal',
            AbsenceReason.OTHER: 'Other',
        }[self]


class ContactField(_ValueEnum):
    PHONE = 'phone'
    ADDRESS = 'address'
    EMAIL = 'email'


class AuditAction(_ValueEnum):
    LOGIN = 'login'
    LOGOUT = 'logout'
    DOWNLOAD = 'download'
    UPLOAD = 'upload'
    UPDATE = 'update'
    DELETE = 'delete'


# -------------------- ACCOUNTS --------------------

class User(db.Model):
    """
    A portal account: credentials plus the profile used for authorization.

    The role and university scope are read from this row on every request;
    nothing about them is trusted from the session cookie.
    """
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(254), nullable=False, unique=True)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(_enum_column(Role, 'user_role'), nullable=False)
    university_id = db.Column(db.Integer, db.ForeignKey('universities.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=_utc_now, nullable=False)
    last_login = db.Column(db.DateTime, nullable=True)

    university = db.relationship('University', back_populates='users')

    __table_args__ = (
        db.Index('ix_users_role', 'role'),
        db.Index('ix_users_university_id', 'university_id'),
    )

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def __repr__(self):
        return f'<User {self.email} ({self.role.value})>'


# -------------------- REFERENCE DATA --------------------

class University(db.Model):
    __tablename__ = 'universities'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    created_at = db.Column(db.DateTime, default=_utc_now, nullable=False)

    users = db.relationship('User', back_populates='university', lazy='dynamic')
    contacts = db.relationship(
        'UniversityContact',
        back_populates='university',
        cascade='all, delete-orphan',
        order_by='UniversityContact.id',
    )
    students = db.relationship('Student', back_populates='university', lazy='dynamic')

    @property
    def primary_contact(self):
        return next((c for c in self.contacts if c.is_primary), None)

    def __repr__(self):
        return f'<University {self.name}>'


class UniversityContact(db.Model):
    """Notification recipient at a university. At most two, exactly one primary."""
    __tablename__ = 'university_contacts'

    id = db.Column(db.Integer, primary_key=True)
    university_id = db.Column(db.Integer, db.ForeignKey('universities.id', ondelete='CASCADE'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(254), nullable=False)
    phone = db.Column(db.String(50), nullable=True)
    is_primary = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=_utc_now, nullable=False)

    university = db.relationship('University', back_populates='contacts')

    __table_args__ = (
        db.Index('ix_university_contacts_university_id', 'university_id'),
    )


# -------------------- STUDENTS --------------------

class Student(db.Model):
    """
    A tracked foreign student.

    Students are never physically removed; ``deleted_at`` marks a soft delete
    and every read path filters on it. Student numbers are unique per
    (university, program) among non-deleted rows.
    """
    __tablename__ = 'students'

    id = db.Column(db.Integer, primary_key=True)
    university_id = db.Column(db.Integer, db.ForeignKey('universities.id'), nullable=False)
    student_no = db.Column(db.String(50), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    department = db.Column(db.String(100), nullable=False)
    program = db.Column(_enum_column(StudentProgram, 'student_program'), nullable=False)
    status = db.Column(_enum_column(StudentStatus, 'student_status'), default=StudentStatus.ENROLLED, nullable=False)

    # Contact details (encrypted)
    phone = db.Column(PIIEncryptedType(key_env_var='ENCRYPTION_KEY'), nullable=False)
    address = db.Column(PIIEncryptedType(key_env_var='ENCRYPTION_KEY'), nullable=False)
    email = db.Column(PIIEncryptedType(key_env_var='ENCRYPTION_KEY'), nullable=True)

    consent_file_path = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=_utc_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utc_now, onupdate=_utc_now, nullable=False)
    deleted_at = db.Column(db.DateTime, nullable=True)

    university = db.relationship('University', back_populates='students')
    absences = db.relationship('Absence', back_populates='student', lazy='dynamic')
    checkins = db.relationship('QuarterlyCheckin', back_populates='student', lazy='dynamic')

    __table_args__ = (
        db.Index(
            'uq_students_university_program_student_no',
            'university_id', 'program', 'student_no',
            unique=True,
            postgresql_where=db.text('deleted_at IS NULL'),
            sqlite_where=db.text('deleted_at IS NULL'),
        ),
        db.Index('ix_students_university_id', 'university_id'),
        db.Index('ix_students_deleted_at', 'deleted_at'),
    )

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    def __repr__(self):
        return f'<Student {self.student_no} {self.name}>'


class Absence(db.Model):
    """One absence per student per calendar date."""
    __tablename__ = 'absences'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    absence_date = db.Column(db.Date, nullable=False)
    reason = db.Column(_enum_column(AbsenceReason, 'absence_reason'), nullable=False)
    note = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, default=_utc_now, nullable=False)

    student = db.relationship('Student', back_populates='absences')
    creator = db.relationship('User')
    files = db.relationship(
        'AbsenceFile',
        back_populates='absence',
        cascade='all, delete-orphan',
        order_by='AbsenceFile.id',
    )

    __table_args__ = (
        db.UniqueConstraint('student_id', 'absence_date', name='uq_absences_student_date'),
        db.Index('ix_absences_absence_date', 'absence_date'),
    )


class AbsenceFile(db.Model):
    """Evidence document attached to an absence (stored in the absence-files bucket)."""
    __tablename__ = 'absence_files'

    id = db.Column(db.Integer, primary_key=True)
    absence_id = db.Column(db.Integer, db.ForeignKey('absences.id', ondelete='CASCADE'), nullable=False)
    file_path = db.Column(db.String(255), nullable=False)
    original_name = db.Column(db.String(255), nullable=False)
    content_type = db.Column(db.String(100), nullable=True)
    size_bytes = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=_utc_now, nullable=False)

    absence = db.relationship('Absence', back_populates='files')

    __table_args__ = (
        db.Index('ix_absence_files_absence_id', 'absence_id'),
    )


class QuarterlyCheckin(db.Model):
    """
    Verification of a student's contact details for one calendar quarter.

    ``quarter_bucket`` (e.g. ``2026-Q4``) keys the upsert so repeated
    check-ins within a quarter update the same row.
    """
    __tablename__ = 'quarterly_checkins'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    quarter_bucket = db.Column(db.String(8), nullable=False)
    check_in_date = db.Column(db.Date, nullable=False)
    phone_verified = db.Column(db.Boolean, default=False, nullable=False)
    address_verified = db.Column(db.Boolean, default=False, nullable=False)
    email_verified = db.Column(db.Boolean, default=False, nullable=False)
    checked_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, default=_utc_now, nullable=False)

    student = db.relationship('Student', back_populates='checkins')

    __table_args__ = (
        db.UniqueConstraint('student_id', 'quarter_bucket', name='uq_quarterly_checkins_student_bucket'),
        db.Index('ix_quarterly_checkins_check_in_date', 'check_in_date'),
    )


# -------------------- APPEND-ONLY HISTORY --------------------

class ContactChangeLog(db.Model):
    """
    History of changes to a student's phone/address/email.

    Append-only. ``check_in_date`` is set when the change came from a
    quarterly check-in and NULL for a direct profile edit.
    """
    __tablename__ = 'contact_change_logs'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False)
    field_name = db.Column(_enum_column(ContactField, 'contact_field'), nullable=False)
    old_value = db.Column(PIIEncryptedType(key_env_var='ENCRYPTION_KEY'), nullable=True)
    new_value = db.Column(PIIEncryptedType(key_env_var='ENCRYPTION_KEY'), nullable=True)
    changed_by = db.Column(db.Integer, nullable=True)  # actor id, kept after account deletion
    check_in_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime, default=_utc_now, nullable=False)

    __table_args__ = (
        db.Index('ix_contact_change_logs_student_id', 'student_id'),
    )


class AuditLog(db.Model):
    """Append-only security event record."""
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True)  # actor id, kept after account deletion
    action_type = db.Column(_enum_column(AuditAction, 'audit_action'), nullable=False)
    details = db.Column(db.JSON, nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, default=_utc_now, nullable=False, index=True)

    __table_args__ = (
        db.Index('ix_audit_logs_action_type', 'action_type'),
        db.Index('ix_audit_logs_user_id', 'user_id'),
    )


class AppendOnlyViolation(Exception):
    """Raised when code attempts to modify or delete an append-only record."""


def _reject_modification(mapper, connection, target):
    raise AppendOnlyViolation(f"{type(target).__name__} records are append-only")


for _model in (AuditLog, ContactChangeLog):
    event.listen(_model, 'before_update', _reject_modification)
    event.listen(_model, 'before_delete', _reject_modification)


# -------------------- OPERATIONS --------------------

class ErrorLog(db.Model):
    __tablename__ = 'error_logs'
    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(db.DateTime, default=_utc_now, nullable=False, index=True)
    error_type = db.Column(db.String(100), nullable=True)  # Exception class name
    error_message = db.Column(db.Text, nullable=True)
    request_path = db.Column(db.String(500), nullable=True)
    request_method = db.Column(db.String(10), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    stack_trace = db.Column(db.Text, nullable=True)
