"""
Data-access layer. One repository per entity, each constructed with the
caller's Identity and guarded on every method.
"""

from app.repositories.absences import AbsenceRepository
from app.repositories.audit_logs import AuditLogRepository
from app.repositories.checkins import CheckinRepository
from app.repositories.students import StudentRepository
from app.repositories.universities import UniversityRepository
from app.repositories.users import UserRepository

__all__ = [
    'AbsenceRepository',
    'AuditLogRepository',
    'CheckinRepository',
    'StudentRepository',
    'UniversityRepository',
    'UserRepository',
]
