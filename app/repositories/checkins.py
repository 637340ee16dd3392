"""
Quarterly check-in data access.

At most one check-in exists per (student, quarter bucket); the store's
unique constraint backs that, and writes use INSERT ... ON CONFLICT so two
concurrent verifiers converge on one row.
"""

from datetime import datetime, timezone

from sqlalchemy import func

from app.auth import STAFF_ROLES, guarded
from app.extensions import db
from app.models import QuarterlyCheckin, Student, StudentStatus
from app.repositories.base import Repository
from app.utils.dates import bucket_for, quarter_bucket

_UPSERT_DIALECTS = ('postgresql', 'sqlite')


def _dialect_insert(dialect_name):
    if dialect_name == 'postgresql':
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert
    return insert


def serialize_checkin(checkin):
    from app.utils.helpers import format_date, format_utc_iso

    if checkin is None:
        return None
    return {
        "id": checkin.id,
        "student_id": checkin.student_id,
        "quarter": checkin.quarter_bucket,
        "check_in_date": format_date(checkin.check_in_date),
        "phone_verified": checkin.phone_verified,
        "address_verified": checkin.address_verified,
        "email_verified": checkin.email_verified,
        "checked_by": checkin.checked_by,
        "created_at": format_utc_iso(checkin.created_at),
    }


class CheckinRepository(Repository):

    @guarded(*STAFF_ROLES)
    def current_for(self, student_id, today):
        """Return the check-in for the quarter containing ``today``, or None."""
        return QuarterlyCheckin.query.filter_by(
            student_id=student_id,
            quarter_bucket=quarter_bucket(today),
        ).first()

    @guarded(*STAFF_ROLES)
    def history_for(self, student_id):
        return (
            QuarterlyCheckin.query
            .filter_by(student_id=student_id)
            .order_by(QuarterlyCheckin.check_in_date.desc())
            .all()
        )

    @guarded(*STAFF_ROLES)
    def upsert_current(self, student_id, today, phone_verified, address_verified, email_verified):
        """
        Create or update the check-in for the quarter containing ``today``.

        Flushes but does not commit; the caller owns the transaction.
        The first verifier stays recorded in ``checked_by``.
        """
        bucket = quarter_bucket(today)
        flags = {
            'check_in_date': today,
            'phone_verified': phone_verified,
            'address_verified': address_verified,
            'email_verified': email_verified,
        }
        dialect_name = db.session.get_bind().dialect.name

        if dialect_name in _UPSERT_DIALECTS:
            db.session.flush()
            insert = _dialect_insert(dialect_name)
            stmt = insert(QuarterlyCheckin.__table__).values(
                student_id=student_id,
                quarter_bucket=bucket,
                checked_by=self.actor_id,
                created_at=datetime.now(timezone.utc),
                **flags,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=['student_id', 'quarter_bucket'],
                set_=flags,
            )
            db.session.execute(stmt)
            return (
                QuarterlyCheckin.query
                .filter_by(student_id=student_id, quarter_bucket=bucket)
                .populate_existing()
                .one()
            )

        # Other dialects: row lock on the existing check-in, then update or insert
        checkin = (
            QuarterlyCheckin.query
            .filter_by(student_id=student_id, quarter_bucket=bucket)
            .with_for_update()
            .first()
        )
        if checkin is None:
            checkin = QuarterlyCheckin(
                student_id=student_id,
                quarter_bucket=bucket,
                checked_by=self.actor_id,
                **flags,
            )
            db.session.add(checkin)
        else:
            for key, value in flags.items():
                setattr(checkin, key, value)
        db.session.flush()
        return checkin

    @guarded(*STAFF_ROLES)
    def summary(self, year, quarter):
        """Completion figures for enrolled, non-deleted students in one quarter."""
        enrolled = Student.query.filter(
            Student.deleted_at.is_(None),
            Student.status == StudentStatus.ENROLLED,
        )
        total = enrolled.count()
        checked = (
            db.session.query(func.count(func.distinct(QuarterlyCheckin.student_id)))
            .join(Student, QuarterlyCheckin.student_id == Student.id)
            .filter(
                QuarterlyCheckin.quarter_bucket == bucket_for(year, quarter),
                Student.deleted_at.is_(None),
                Student.status == StudentStatus.ENROLLED,
            )
            .scalar()
        ) or 0
        completion_rate = round(checked / total * 100) if total else 0
        return {
            "year": year,
            "quarter": quarter,
            "total_students": total,
            "checked_students": checked,
            "unchecked_students": total - checked,
            "completion_rate": completion_rate,
        }

    @guarded(*STAFF_ROLES)
    def student_statuses(self, year, quarter):
        """
        Enrolled, non-deleted students paired with their check-in for one quarter.

        Returns (student, checkin) rows ordered by name; ``checkin`` is None
        for students not yet checked in.
        """
        return (
            db.session.query(Student, QuarterlyCheckin)
            .outerjoin(QuarterlyCheckin, db.and_(
                QuarterlyCheckin.student_id == Student.id,
                QuarterlyCheckin.quarter_bucket == bucket_for(year, quarter),
            ))
            .filter(
                Student.deleted_at.is_(None),
                Student.status == StudentStatus.ENROLLED,
            )
            .order_by(Student.name, Student.id)
            .all()
        )
