"""
Tests for the quarterly check-in workflow.
"""

from datetime import date, datetime, timezone

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.auth import Identity
from app.errors import Forbidden, UpstreamFailure
from app.models import (
    AuditAction,
    AuditLog,
    ContactChangeLog,
    QuarterlyCheckin,
    Role,
    Student,
    StudentStatus,
)
from app.repositories.checkins import CheckinRepository
from app.services.checkin import perform_checkin
from app.utils.dates import quarter_bucket


def _identity(user):
    return Identity(id=user.id, email=user.email, role=user.role, university_id=user.university_id)


def test_changed_phone_is_logged_and_unverified(client, agency_user, university, make_student, login_as):
    student = make_student(university, phone='010-1111-2222')
    login_as(agency_user)

    resp = client.post('/api/checkin', json={
        'student_id': student.id,
        'phone': '010-9999-8888',
        'phone_verified': True,
        'address_verified': True,
        'email_verified': True,
    })
    assert resp.status_code == 200
    assert resp.json['changed_fields'] == ['phone']
    checkin = resp.json['checkin']
    assert checkin['phone_verified'] is False
    assert checkin['address_verified'] is True
    assert checkin['email_verified'] is True
    assert checkin['checked_by'] == agency_user.id

    change = ContactChangeLog.query.one()
    assert change.old_value == '010-1111-2222'
    assert change.new_value == '010-9999-8888'
    assert change.check_in_date is not None
    assert db.session.get(Student, student.id).phone == '010-9999-8888'


def test_unchanged_values_keep_submitted_flags(client, agency_user, university, make_student, login_as):
    student = make_student(university, phone='010-1111-2222', email='minji@example.com')
    login_as(agency_user)

    resp = client.post('/api/checkin', json={
        'student_id': student.id,
        'phone': ' 010-1111-2222 ',
        'email': 'minji@example.com',
        'phone_verified': True,
        'email_verified': True,
    })
    assert resp.status_code == 200
    assert resp.json['changed_fields'] == []
    assert resp.json['checkin']['phone_verified'] is True
    assert resp.json['checkin']['address_verified'] is False
    assert ContactChangeLog.query.count() == 0


def test_second_checkin_in_quarter_overwrites(client, admin_user, agency_user, university, make_student):
    student = make_student(university)
    today = date(2026, 11, 3)

    perform_checkin(_identity(agency_user), student.id, {'phone_verified': True}, today=today)
    perform_checkin(_identity(admin_user), student.id,
                    {'address_verified': True}, today=date(2026, 12, 20))

    rows = QuarterlyCheckin.query.filter_by(student_id=student.id).all()
    assert len(rows) == 1
    row = rows[0]
    assert row.quarter_bucket == '2026-Q4'
    assert row.check_in_date == date(2026, 12, 20)
    assert row.phone_verified is False
    assert row.address_verified is True
    # The first verifier stays recorded
    assert row.checked_by == agency_user.id


def test_new_quarter_creates_new_row(client, agency_user, university, make_student):
    student = make_student(university)
    identity = _identity(agency_user)

    perform_checkin(identity, student.id, {}, today=date(2026, 9, 30))
    perform_checkin(identity, student.id, {}, today=date(2026, 10, 1))

    buckets = sorted(c.quarter_bucket for c in QuarterlyCheckin.query.all())
    assert buckets == ['2026-Q3', '2026-Q4']


def test_failed_upsert_rolls_back_contact_changes(monkeypatch, client, agency_user, university,
                                                  make_student, login_as):
    student = make_student(university, phone='010-1111-2222')

    def broken_upsert(self, *args, **kwargs):
        raise SQLAlchemyError("connection lost")

    monkeypatch.setattr(CheckinRepository, 'upsert_current', broken_upsert)
    login_as(agency_user)

    resp = client.post('/api/checkin', json={'student_id': student.id, 'phone': '010-9999-8888'})
    assert resp.status_code == 500
    assert db.session.get(Student, student.id).phone == '010-1111-2222'
    assert ContactChangeLog.query.count() == 0
    assert QuarterlyCheckin.query.count() == 0
    assert AuditLog.query.filter_by(action_type=AuditAction.UPDATE).count() == 0


def test_failed_upsert_raises_upstream_failure(monkeypatch, client, agency_user, university, make_student):
    student = make_student(university)

    def broken_upsert(self, *args, **kwargs):
        raise SQLAlchemyError("boom")

    monkeypatch.setattr(CheckinRepository, 'upsert_current', broken_upsert)
    with pytest.raises(UpstreamFailure):
        perform_checkin(_identity(agency_user), student.id, {'email': 'new@example.com'})


def test_university_user_cannot_check_in(client, university_user, university, make_student, login_as):
    student = make_student(university)
    with pytest.raises(Forbidden):
        perform_checkin(_identity(university_user), student.id, {'phone': '010-0000-0000'})

    login_as(university_user)
    assert client.post('/api/checkin', json={'student_id': student.id}).status_code == 403
    assert client.get(f'/api/checkin/{student.id}').status_code == 403
    assert QuarterlyCheckin.query.count() == 0
    assert db.session.get(Student, student.id).phone == '010-1111-2222'


def test_checkin_records_audit(client, agency_user, university, make_student, login_as):
    student = make_student(university)
    login_as(agency_user)
    client.post('/api/checkin', json={'student_id': student.id, 'address': 'New address 7'})

    entry = AuditLog.query.filter_by(action_type=AuditAction.UPDATE).one()
    assert entry.details == {'target': 'checkin', 'target_id': student.id, 'changes': ['address']}


def test_checkin_detail(client, agency_user, university, make_student, login_as):
    student = make_student(university)
    login_as(agency_user)
    client.post('/api/checkin', json={'student_id': student.id, 'phone': '010-2222-3333'})

    resp = client.get(f'/api/checkin/{student.id}')
    assert resp.status_code == 200
    assert resp.json['current']['student_id'] == student.id
    assert len(resp.json['history']) == 1
    assert resp.json['contact_changes'][0]['field'] == 'phone'
    assert resp.json['contact_changes'][0]['new_value'] == '010-2222-3333'


def test_quarter_summary(client, agency_user, university, make_student):
    checked = make_student(university, student_no='1')
    make_student(university, student_no='2')
    make_student(university, student_no='3')
    graduated = make_student(university, student_no='4')
    graduated.status = StudentStatus.GRADUATED
    db.session.commit()

    identity = _identity(agency_user)
    perform_checkin(identity, checked.id, {}, today=date(2026, 2, 10))

    summary = CheckinRepository(identity).summary(2026, 1)
    assert summary == {
        'year': 2026,
        'quarter': 1,
        'total_students': 3,
        'checked_students': 1,
        'unchecked_students': 2,
        'completion_rate': 33,
    }


def test_summary_endpoint_validates_quarter(client, agency_user, login_as):
    login_as(agency_user)
    assert client.get('/api/checkin?year=2026&quarter=5').status_code == 400
    assert client.get('/api/checkin?year=0&quarter=1').status_code == 400
    resp = client.get('/api/checkin?year=2026&quarter=2')
    assert resp.status_code == 200
    assert resp.json['summary']['total_students'] == 0



def test_student_statuses_split_by_quarter(client, agency_user, university, other_university, make_student):
    done = make_student(university, student_no='1', name='Bui Thi Lan')
    pending = make_student(other_university, student_no='2', name='Ahn Jisoo')
    last_quarter_only = make_student(university, student_no='3', name='Choi Minho')
    graduated = make_student(university, student_no='4', name='Graduate')
    graduated.status = StudentStatus.GRADUATED
    deleted = make_student(university, student_no='5', name='Deleted')
    deleted.deleted_at = datetime.now(timezone.utc)
    db.session.commit()

    identity = _identity(agency_user)
    perform_checkin(identity, done.id, {'phone_verified': True}, today=date(2026, 5, 20))
    perform_checkin(identity, last_quarter_only.id, {}, today=date(2026, 3, 31))

    rows = CheckinRepository(identity).student_statuses(2026, 2)
    assert [(student.id, checkin is not None) for student, checkin in rows] == [
        (pending.id, False),
        (done.id, True),
        (last_quarter_only.id, False),
    ]


def test_student_status_endpoint(client, agency_user, university, make_student, login_as):
    done = make_student(university, student_no='1', name='Bui Thi Lan')
    pending = make_student(university, student_no='2', name='Ahn Jisoo')
    perform_checkin(_identity(agency_user), done.id, {'email_verified': True}, today=date(2026, 8, 3))
    login_as(agency_user)

    resp = client.get('/api/checkin/students?year=2026&quarter=3')
    assert resp.status_code == 200
    assert resp.json['quarter'] == '2026-Q3'
    assert [s['id'] for s in resp.json['unchecked']] == [pending.id]
    assert resp.json['unchecked'][0]['checkin'] is None
    checked = resp.json['checked'][0]
    assert checked['id'] == done.id
    assert checked['checkin']['email_verified'] is True
    assert checked['phone'] == '010-1111-2222'

    assert client.get('/api/checkin/students?quarter=7').status_code == 400


def test_university_user_cannot_list_student_statuses(client, university_user, login_as):
    login_as(university_user)
    assert client.get('/api/checkin/students').status_code == 403

def test_quarter_bucket_boundaries():
    assert quarter_bucket(date(2026, 1, 1)) == '2026-Q1'
    assert quarter_bucket(date(2026, 3, 31)) == '2026-Q1'
    assert quarter_bucket(date(2026, 4, 1)) == '2026-Q2'
    assert quarter_bucket(date(2026, 12, 31)) == '2026-Q4'


def test_agency_identity_has_no_scope():
    identity = Identity(id=1, email='a@b.c', role=Role.AGENCY, university_id=None)
    assert not identity.is_admin
