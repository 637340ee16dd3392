import pytest
from sqlalchemy.exc import SQLAlchemyError
from app import db


def test_health_ok(client):
    resp = client.get('/health')
    assert resp.status_code == 200
    assert resp.data == b'ok'


def test_health_db_error(monkeypatch, client):
    def raise_error(*args, **kwargs):
        raise SQLAlchemyError("fail")
    monkeypatch.setattr(db.session, 'execute', raise_error)
    resp = client.get('/health')
    assert resp.status_code == 500
    assert resp.is_json
    assert resp.json['error'] == 'Database error'


def test_security_headers_present(client):
    resp = client.get('/health')
    assert resp.headers['X-Frame-Options'] == 'SAMEORIGIN'
    assert resp.headers['X-Content-Type-Options'] == 'nosniff'
    assert 'max-age' in resp.headers['Strict-Transport-Security']
    assert "default-src 'self'" in resp.headers['Content-Security-Policy']


def test_api_responses_are_not_cached(client):
    resp = client.get('/api/auth/me')
    assert resp.status_code == 401
    assert resp.headers['Cache-Control'] == 'no-store'


@pytest.mark.parametrize('path', ['/api/students', '/api/absences', '/api/checkin'])
def test_api_requires_authentication(client, path):
    resp = client.get(path)
    assert resp.status_code == 401
    assert resp.json['status'] == 'error'


def test_unknown_route_returns_json_404(client):
    resp = client.get('/api/does-not-exist')
    assert resp.status_code == 404
    assert resp.json == {"status": "error", "message": resp.json['message']}


def test_unexpected_error_is_logged_and_hidden(monkeypatch, client, admin_user, login_as):
    from app.models import ErrorLog
    from app.repositories import StudentRepository

    def explode(self, *args, **kwargs):
        raise RuntimeError("secret internal detail")

    monkeypatch.setattr(StudentRepository, 'list', explode)
    login_as(admin_user)
    resp = client.get('/api/students')
    assert resp.status_code == 500
    assert 'secret internal detail' not in resp.get_data(as_text=True)
    entry = ErrorLog.query.one()
    assert entry.error_type == 'RuntimeError'
    assert entry.request_path == '/api/students'
