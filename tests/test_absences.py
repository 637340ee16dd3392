"""
Tests for absence records and absence notifications.
"""

from datetime import date

from app import db
from app.models import Absence, AbsenceReason, AuditAction, AuditLog
from app.services import notifications


def _record(client, student, absence_date='2026-03-02', reason='illness', **extra):
    payload = {'student_id': student.id, 'absence_date': absence_date, 'reason': reason}
    payload.update(extra)
    return client.post('/api/absences', json=payload)


def test_agency_records_absence(client, agency_user, university, make_student, login_as):
    student = make_student(university)
    login_as(agency_user)

    resp = _record(client, student, note='Flu')
    assert resp.status_code == 201
    absence = resp.json['absence']
    assert absence['absence_date'] == '2026-03-02'
    assert absence['reason'] == 'illness'
    assert absence['created_by'] == agency_user.id
    assert 'notification_sent' not in resp.json


def test_one_absence_per_student_per_day(client, agency_user, university, make_student, login_as):
    student = make_student(university)
    login_as(agency_user)
    assert _record(client, student).status_code == 201

    resp = _record(client, student, reason='personal')
    assert resp.status_code == 400
    assert 'already registered' in resp.json['message']
    assert Absence.query.count() == 1


def test_invalid_absence_input(client, agency_user, university, make_student, login_as):
    student = make_student(university)
    login_as(agency_user)
    assert _record(client, student, absence_date='02/03/2026').status_code == 400
    assert _record(client, student, reason='vacation').status_code == 400
    assert client.post('/api/absences', json={'absence_date': '2026-03-02', 'reason': 'other'}).status_code == 400
    assert Absence.query.count() == 0


def test_list_filters_and_scope(client, agency_user, university_user, university, other_university,
                                make_student, login_as):
    own = make_student(university, student_no='A-1')
    foreign = make_student(other_university, student_no='B-1')
    for student, day, reason in (
        (own, date(2026, 3, 2), AbsenceReason.ILLNESS),
        (own, date(2026, 4, 10), AbsenceReason.PERSONAL),
        (foreign, date(2026, 3, 5), AbsenceReason.OTHER),
    ):
        db.session.add(Absence(student_id=student.id, absence_date=day, reason=reason))
    db.session.commit()

    login_as(agency_user)
    assert client.get('/api/absences').json['count'] == 3
    resp = client.get('/api/absences?start_date=2026-03-01&end_date=2026-03-31')
    assert resp.json['count'] == 2
    resp = client.get('/api/absences?reason=personal')
    assert [a['absence_date'] for a in resp.json['absences']] == ['2026-04-10']

    login_as(university_user)
    resp = client.get('/api/absences')
    assert {a['student_id'] for a in resp.json['absences']} == {own.id}

    foreign_absence = Absence.query.filter_by(student_id=foreign.id).one()
    assert client.get(f'/api/absences/{foreign_absence.id}').status_code == 403


def test_absences_of_deleted_students_are_hidden(client, agency_user, university, make_student, login_as):
    student = make_student(university)
    login_as(agency_user)
    absence_id = _record(client, student).json['absence']['id']
    client.delete(f'/api/students/{student.id}')

    assert client.get('/api/absences').json['count'] == 0
    assert client.get(f'/api/absences/{absence_id}').status_code == 404


def test_delete_absence(client, agency_user, university, make_student, login_as):
    student = make_student(university)
    login_as(agency_user)
    absence_id = _record(client, student).json['absence']['id']

    assert client.delete(f'/api/absences/{absence_id}').status_code == 200
    assert Absence.query.count() == 0
    entry = AuditLog.query.filter_by(action_type=AuditAction.DELETE).one()
    assert entry.details == {'target': 'absence', 'target_id': absence_id}


def test_university_user_cannot_record_absence(client, university_user, university, make_student, login_as):
    student = make_student(university)
    login_as(university_user)
    assert _record(client, student).status_code == 403
    assert Absence.query.count() == 0


# -------------------- NOTIFICATIONS --------------------

class _FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = str(self._payload)

    def json(self):
        return self._payload


def test_notification_in_log_only_mode(client, agency_user, university, make_student, login_as):
    student = make_student(university)
    login_as(agency_user)

    resp = _record(client, student, send_notification=True)
    assert resp.status_code == 201
    assert resp.json['notification_sent'] is True


def test_notify_endpoint_sends_to_all_contacts(monkeypatch, app, client, agency_user,
                                               make_university, make_student, login_as):
    university = make_university('Korea University', contacts=['a@korea.test', 'b@korea.test'])
    student = make_student(university, name='Tran Thi Mai')
    absence = Absence(student_id=student.id, absence_date=date(2026, 5, 4), reason=AbsenceReason.PERSONAL)
    db.session.add(absence)
    db.session.commit()

    sent = {}

    def fake_post(url, headers, json, timeout):
        sent.update(url=url, headers=headers, json=json, timeout=timeout)
        return _FakeResponse(200, {'id': 'msg_123'})

    monkeypatch.setattr(notifications.requests, 'post', fake_post)
    app.config['RESEND_API_KEY'] = 're_test_key'
    login_as(agency_user)

    resp = client.post('/api/notify/absence', json={'absence_id': absence.id})
    assert resp.status_code == 200
    assert resp.json['message_id'] == 'msg_123'
    assert sent['url'] == notifications.RESEND_API_URL
    assert sent['headers']['Authorization'] == 'Bearer re_test_key'
    assert sent['json']['to'] == ['a@korea.test', 'b@korea.test']
    assert sent['json']['subject'] == '[Absence notice] Tran Thi Mai - 2026-05-04'
    assert 'Personal' in sent['json']['html']


def test_notify_without_contacts(client, agency_user, other_university, make_student, login_as):
    student = make_student(other_university)
    absence = Absence(student_id=student.id, absence_date=date(2026, 5, 4), reason=AbsenceReason.OTHER)
    db.session.add(absence)
    db.session.commit()
    login_as(agency_user)

    resp = client.post('/api/notify/absence', json={'absence_id': absence.id})
    assert resp.status_code == 400
    assert 'No contacts' in resp.json['message']


def test_notify_provider_failure(monkeypatch, app, client, agency_user, university, make_student, login_as):
    student = make_student(university)
    absence = Absence(student_id=student.id, absence_date=date(2026, 5, 4), reason=AbsenceReason.ILLNESS)
    db.session.add(absence)
    db.session.commit()

    monkeypatch.setattr(notifications.requests, 'post', lambda *a, **kw: _FakeResponse(500, {'error': 'x'}))
    app.config['RESEND_API_KEY'] = 're_test_key'
    login_as(agency_user)

    resp = client.post('/api/notify/absence', json={'absence_id': absence.id})
    assert resp.status_code == 500
    assert resp.json['status'] == 'error'


def test_send_email_handles_network_error(monkeypatch, app, client):
    def raise_timeout(*args, **kwargs):
        raise notifications.requests.Timeout("timed out")

    monkeypatch.setattr(notifications.requests, 'post', raise_timeout)
    app.config['RESEND_API_KEY'] = 're_test_key'
    result = notifications.send_email(['x@example.com'], 'Subject', '<p>Hi</p>')
    assert result.success is False
    assert result.error
