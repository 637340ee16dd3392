import os
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Override env vars for testing
os.environ["SECRET_KEY"] = "test-secret"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["FLASK_ENV"] = "testing"
os.environ["RATELIMIT_STORAGE_URI"] = "memory://"
os.environ.pop("RESEND_API_KEY", None)

# Use a valid Fernet key (32 url-safe base64-encoded bytes)
os.environ.setdefault("ENCRYPTION_KEY", "jhe53bcYZI4_MZS4Kb8hu8-xnQHHvwqSX8LN4sDtzbw=")


sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
from app import app as flask_app, db
from app.extensions import limiter
from app.models import Role, Student, StudentProgram, University, UniversityContact, User

TEST_PASSWORD = "Passw0rd!"


@pytest.fixture
def app(tmp_path):
    """Provide the Flask app instance for tests."""
    flask_app.config.update(
        TESTING=True,
        WTF_CSRF_ENABLED=False,
        SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
        ENV="testing",
        SESSION_COOKIE_SECURE=False,
        STORAGE_ROOT=str(tmp_path / "storage"),
        RESEND_API_KEY=None,
    )
    yield flask_app


@pytest.fixture
def client(app):
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    limiter.reset()
    client = app.test_client()
    yield client
    db.session.rollback()
    db.drop_all()
    ctx.pop()


# SQLite pragma event listener for foreign key constraints
# Registered at module level and persists across all tests
from sqlalchemy import event
from sqlalchemy.engine import Engine


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite connections."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


event.listen(Engine, "connect", _enable_sqlite_foreign_keys)


# -------------------- FACTORIES --------------------

@pytest.fixture
def make_university(client):
    def _make(name="Seoul National University", contacts=None):
        university = University(name=name)
        for i, email in enumerate(contacts or []):
            university.contacts.append(UniversityContact(
                name=f"Contact {i + 1}",
                email=email,
                is_primary=(i == 0),
            ))
        db.session.add(university)
        db.session.commit()
        return university
    return _make


@pytest.fixture
def make_user(client):
    def _make(email, role, university=None, password=TEST_PASSWORD):
        user = User(
            email=email,
            role=role,
            university_id=university.id if university is not None else None,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def make_student(client):
    def _make(university, student_no="2024000001", name="Kim Minji",
              program=StudentProgram.BACHELOR, phone="010-1111-2222",
              address="1 Gwanak-ro, Seoul", email="minji@example.com"):
        student = Student(
            university_id=university.id,
            student_no=student_no,
            name=name,
            department="Computer Science",
            program=program,
            phone=phone,
            address=address,
            email=email,
        )
        db.session.add(student)
        db.session.commit()
        return student
    return _make


@pytest.fixture
def login_as(client):
    """Bind the test client session to ``user`` without going through the login endpoint."""
    def _login(user):
        with client.session_transaction() as sess:
            sess.clear()
            sess["user_id"] = user.id
            sess["last_activity"] = datetime.now(timezone.utc).isoformat()
        return user
    return _login


@pytest.fixture
def admin_user(make_user):
    return make_user("admin@frisk.test", Role.ADMIN)


@pytest.fixture
def agency_user(make_user):
    return make_user("agency@frisk.test", Role.AGENCY)


@pytest.fixture
def university(make_university):
    return make_university("Seoul National University", contacts=["intl@snu.test"])


@pytest.fixture
def other_university(make_university):
    return make_university("Busan National University")


@pytest.fixture
def university_user(make_user, university):
    return make_user("staff@snu.test", Role.UNIVERSITY, university=university)
