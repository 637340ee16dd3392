"""
Tests for admin management of universities, user accounts and the audit log.
"""

from app import db
from app.models import AuditAction, AuditLog, Role, University, UniversityContact, User
from conftest import TEST_PASSWORD


# -------------------- UNIVERSITIES --------------------

def test_create_university_with_contacts(client, admin_user, login_as):
    login_as(admin_user)
    resp = client.post('/api/admin/universities', json={
        'name': 'Yonsei University',
        'contacts': [
            {'name': 'Office A', 'email': 'A@yonsei.test'},
            {'name': 'Office B', 'email': 'b@yonsei.test', 'is_primary': True},
        ],
    })
    assert resp.status_code == 201
    contacts = resp.json['university']['contacts']
    assert [c['email'] for c in contacts] == ['a@yonsei.test', 'b@yonsei.test']
    assert [c['is_primary'] for c in contacts] == [False, True]


def test_first_contact_becomes_primary_by_default(client, admin_user, login_as):
    login_as(admin_user)
    resp = client.post('/api/admin/universities', json={
        'name': 'Yonsei University',
        'contacts': [{'name': 'Office A', 'email': 'a@yonsei.test'}, {'name': 'B', 'email': 'b@yonsei.test'}],
    })
    assert [c['is_primary'] for c in resp.json['university']['contacts']] == [True, False]


def test_university_validation(client, admin_user, university, login_as):
    login_as(admin_user)
    assert client.post('/api/admin/universities', json={'name': 'X'}).status_code == 400
    assert client.post('/api/admin/universities', json={'name': 'seoul national university'}).status_code == 400
    resp = client.post('/api/admin/universities', json={
        'name': 'Too Many Contacts',
        'contacts': [{'name': str(i), 'email': f'{i}@x.test'} for i in range(3)],
    })
    assert resp.status_code == 400
    assert 'at most 2' in resp.json['message']

    resp = client.post('/api/admin/universities', json={'name': ['x', 'y']})
    assert resp.status_code == 400
    assert resp.json['message'] == 'name must be a string.'
    resp = client.post('/api/admin/universities', json={
        'name': 'Chonnam National University',
        'contacts': [{'name': 'Office', 'email': 7}],
    })
    assert resp.status_code == 400


def test_update_university_replaces_contacts(client, admin_user, university, login_as):
    login_as(admin_user)
    resp = client.put(f'/api/admin/universities/{university.id}', json={
        'name': 'SNU',
        'contacts': [{'name': 'New Office', 'email': 'new@snu.test'}],
    })
    assert resp.status_code == 200
    assert resp.json['university']['name'] == 'SNU'
    assert UniversityContact.query.count() == 1
    assert UniversityContact.query.one().email == 'new@snu.test'

    entry = AuditLog.query.filter_by(action_type=AuditAction.UPDATE).one()
    assert entry.details['changes'] == ['contacts', 'name']


def test_delete_university_with_students_conflicts(client, admin_user, university, make_student, login_as):
    make_student(university)
    login_as(admin_user)

    resp = client.delete(f'/api/admin/universities/{university.id}')
    assert resp.status_code == 400
    assert 'student' in resp.json['message']
    assert db.session.get(University, university.id) is not None


def test_delete_university_with_archived_students_conflicts(client, admin_user, university,
                                                            make_student, login_as):
    student = make_student(university)
    login_as(admin_user)
    client.delete(f'/api/students/{student.id}')

    resp = client.delete(f'/api/admin/universities/{university.id}')
    assert resp.status_code == 400
    assert db.session.get(University, university.id) is not None


def test_delete_university_with_users_conflicts(client, admin_user, university, university_user, login_as):
    login_as(admin_user)
    resp = client.delete(f'/api/admin/universities/{university.id}')
    assert resp.status_code == 400
    assert 'user account' in resp.json['message']


def test_delete_empty_university(client, admin_user, university, login_as):
    login_as(admin_user)
    resp = client.delete(f'/api/admin/universities/{university.id}')
    assert resp.status_code == 200
    assert University.query.count() == 0
    assert UniversityContact.query.count() == 0


def test_any_user_can_list_universities(client, university, university_user, login_as):
    login_as(university_user)
    resp = client.get('/api/admin/universities')
    assert resp.status_code == 200
    assert resp.json['universities'][0]['name'] == university.name
    assert 'contacts' not in resp.json['universities'][0]


# -------------------- USERS --------------------

def test_create_university_account_requires_scope(client, admin_user, university, login_as):
    login_as(admin_user)
    resp = client.post('/api/admin/users', json={
        'email': 'new@snu.test', 'password': TEST_PASSWORD, 'role': 'university',
    })
    assert resp.status_code == 400

    resp = client.post('/api/admin/users', json={
        'email': 'new@snu.test', 'password': TEST_PASSWORD, 'role': 'university',
        'university_id': university.id,
    })
    assert resp.status_code == 201
    assert resp.json['user']['university_id'] == university.id


def test_created_user_can_log_in(client, admin_user, login_as):
    login_as(admin_user)
    client.post('/api/admin/users', json={
        'email': 'Agent@Frisk.test', 'password': 'Str0ng-pass', 'role': 'agency',
    })
    client.post('/api/auth/logout')

    resp = client.post('/api/auth/login', json={'email': 'agent@frisk.test', 'password': 'Str0ng-pass'})
    assert resp.status_code == 200
    assert resp.json['redirect_path'] == '/agency'


def test_duplicate_email_and_weak_password(client, admin_user, agency_user, login_as):
    login_as(admin_user)
    resp = client.post('/api/admin/users', json={
        'email': 'agency@frisk.test', 'password': TEST_PASSWORD, 'role': 'agency',
    })
    assert resp.status_code == 400
    assert 'already exists' in resp.json['message']

    resp = client.post('/api/admin/users', json={
        'email': 'weak@frisk.test', 'password': 'password', 'role': 'agency',
    })
    assert resp.status_code == 400
    assert User.query.count() == 2


def test_update_user_role(client, admin_user, agency_user, university, login_as):
    login_as(admin_user)
    resp = client.put(f'/api/admin/users/{agency_user.id}', json={
        'role': 'university', 'university_id': university.id,
    })
    assert resp.status_code == 200
    assert resp.json['user']['role'] == 'university'
    assert db.session.get(User, agency_user.id).university_id == university.id


def test_last_admin_is_protected(client, admin_user, login_as):
    login_as(admin_user)
    resp = client.put(f'/api/admin/users/{admin_user.id}', json={'role': 'agency'})
    assert resp.status_code == 400
    assert db.session.get(User, admin_user.id).role == Role.ADMIN

    resp = client.delete(f'/api/admin/users/{admin_user.id}')
    assert resp.status_code == 403


def test_delete_user(client, admin_user, agency_user, login_as):
    agency_id = agency_user.id
    login_as(admin_user)
    resp = client.delete(f'/api/admin/users/{agency_id}')
    assert resp.status_code == 200
    assert db.session.get(User, agency_id) is None

    entry = AuditLog.query.filter_by(action_type=AuditAction.DELETE).one()
    assert entry.details == {'target': 'user', 'target_id': agency_id}


# -------------------- AUDIT LOG --------------------

def test_audit_log_listing(client, admin_user, agency_user, login_as):
    client.post('/api/auth/login', json={'email': 'agency@frisk.test', 'password': TEST_PASSWORD})
    client.post('/api/auth/logout')
    client.post('/api/auth/login', json={'email': 'agency@frisk.test', 'password': 'nope'})

    login_as(admin_user)
    resp = client.get('/api/admin/audit-logs')
    assert resp.status_code == 200
    assert resp.json['total'] == 3
    assert resp.json['counts'] == {'total': 3, 'logins': 2, 'downloads': 0}

    resp = client.get(f'/api/admin/audit-logs?action_type=logout&user_id={agency_user.id}')
    logs = resp.json['logs']
    assert len(logs) == 1
    assert logs[0]['user_email'] == 'agency@frisk.test'

    resp = client.get('/api/admin/audit-logs?per_page=1&page=2')
    assert len(resp.json['logs']) == 1

    assert client.get('/api/admin/audit-logs?action_type=hack').status_code == 400


def test_audit_log_is_admin_only(client, agency_user, login_as):
    login_as(agency_user)
    assert client.get('/api/admin/audit-logs').status_code == 403
