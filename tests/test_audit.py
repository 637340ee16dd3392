"""
Tests for the audit recorder and the append-only history tables.
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app import audit, db
from app.models import AppendOnlyViolation, AuditAction, AuditLog, ContactChangeLog, ContactField


def test_record_stores_entry(client, admin_user):
    assert audit.log_download(admin_user.id, 'report', 'report_x_2026_01.pdf', 3) is True
    entry = AuditLog.query.one()
    assert entry.action_type == AuditAction.DOWNLOAD
    assert entry.details == {'file_type': 'report', 'file_name': 'report_x_2026_01.pdf', 'related_id': 3}
    assert entry.ip_address is None


def test_record_captures_forwarded_ip(client, admin_user, login_as):
    login_as(admin_user)
    client.post('/api/auth/logout', headers={'X-Forwarded-For': '203.0.113.9, 10.0.0.1'})
    entry = AuditLog.query.filter_by(action_type=AuditAction.LOGOUT).one()
    assert entry.ip_address == '203.0.113.9'


def test_audit_entries_cannot_be_updated(client, admin_user):
    audit.log_logout(admin_user.id, admin_user.email)
    entry = AuditLog.query.one()
    entry.ip_address = '198.51.100.1'
    with pytest.raises(AppendOnlyViolation):
        db.session.commit()
    db.session.rollback()
    assert AuditLog.query.one().ip_address is None


def test_audit_entries_cannot_be_deleted(client, admin_user):
    audit.log_logout(admin_user.id, admin_user.email)
    db.session.delete(AuditLog.query.one())
    with pytest.raises(AppendOnlyViolation):
        db.session.commit()
    db.session.rollback()
    assert AuditLog.query.count() == 1


def test_contact_change_log_is_append_only(client, university, make_student):
    student = make_student(university)
    db.session.add(ContactChangeLog(
        student_id=student.id,
        field_name=ContactField.EMAIL,
        old_value='a@example.com',
        new_value='b@example.com',
    ))
    db.session.commit()

    change = ContactChangeLog.query.one()
    change.new_value = 'c@example.com'
    with pytest.raises(AppendOnlyViolation):
        db.session.commit()
    db.session.rollback()


def test_audit_failure_does_not_raise(monkeypatch, client, admin_user):
    def fail_commit():
        raise SQLAlchemyError("database unavailable")

    monkeypatch.setattr(db.session, 'commit', fail_commit)
    assert audit.log_update(admin_user.id, 'student', 1, ['name']) is False


def test_audit_failure_does_not_undo_primary_action(monkeypatch, client, agency_user, university,
                                                    make_student, login_as):
    from app.models import Student

    student = make_student(university)
    monkeypatch.setattr(audit, 'record', lambda *args, **kwargs: False)
    login_as(agency_user)

    resp = client.put(f'/api/students/{student.id}', json={'name': 'Renamed'})
    assert resp.status_code == 200
    assert db.session.get(Student, student.id).name == 'Renamed'


def test_audit_count_never_decreases(client, agency_user, university, make_student, login_as):
    student = make_student(university)
    login_as(agency_user)
    counts = [AuditLog.query.count()]

    client.put(f'/api/students/{student.id}', json={'name': 'A'})
    counts.append(AuditLog.query.count())
    client.delete(f'/api/students/{student.id}')
    counts.append(AuditLog.query.count())
    client.post('/api/auth/logout')
    counts.append(AuditLog.query.count())

    assert counts == sorted(counts)
    assert counts[-1] == 3
