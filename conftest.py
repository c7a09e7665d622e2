# conftest.py

import os
import tempfile

import pytest

# Set testing environment BEFORE importing app so the module-level app is
# built from TestingConfig against an in-memory database
os.environ["FLASK_ENV"] = "testing"

# Now import app and other modules after environment is set
from app import create_app
from config import TestingConfig
from roster_app.models import Organization, StaffMember, User, UserRole, db
from roster_app.models.staff import generate_placeholder_external_id
from roster_app.utils.permissions import caller_from_user
from roster_app.utils.units import ResolvedUnit


@pytest.fixture(scope="function")
def app():
    """Create and configure a test Flask application"""
    import uuid

    # Create a unique temporary database file for each test
    db_fd, temp_db = tempfile.mkstemp(suffix=f"_{uuid.uuid4().hex[:8]}.db")

    try:
        flask_app = create_app(
            TestingConfig,
            overrides={
                "TESTING": True,
                "SQLALCHEMY_DATABASE_URI": f"sqlite:///{temp_db}",
                "SECRET_KEY": "test-secret-key-for-testing-only",
                "IMPORTER_ENABLED": True,
                "UNIT_DIRECTORY_TTL_SECONDS": 0,
                "ENABLE_FILE_LOGGING": False,
                "ENABLE_CONSOLE_LOGGING": False,
                "LOG_LEVEL": "DEBUG",
            },
        )

        with flask_app.app_context():
            # Drop any existing tables to ensure clean state
            db.drop_all()
            db.create_all()
            yield flask_app
            db.session.remove()
            db.drop_all()
            db.engine.dispose()
    finally:
        # Always close and remove the temporary database file, even on error
        try:
            os.close(db_fd)
        except OSError:
            pass
        for suffix in ("", "-wal", "-shm"):
            try:
                if os.path.exists(temp_db + suffix):
                    os.unlink(temp_db + suffix)
            except OSError:
                pass


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    """Create a test client for the Flask application"""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application"""
    return app.test_cli_runner()


@pytest.fixture
def school_a(app):
    org = Organization(name="School A", slug="school-a", external_code="20301001", district="North")
    db.session.add(org)
    db.session.commit()
    return org


@pytest.fixture
def school_b(app):
    org = Organization(name="School B", slug="school-b", external_code="20301002", district="South")
    db.session.add(org)
    db.session.commit()
    return org


@pytest.fixture
def admin_user(app):
    """Administrator without a home unit"""
    user = User(username="admin", email="admin@example.com", role=UserRole.ADMINISTRATOR, is_active=True)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def operator_user(app, school_a):
    """Operator whose home unit is School A"""
    user = User(
        username="operator-a",
        email="operator-a@example.com",
        role=UserRole.OPERATOR,
        organization_id=school_a.id,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def admin_token(admin_user):
    token = admin_user.issue_api_token()
    db.session.commit()
    return token


@pytest.fixture
def operator_token(operator_user):
    token = operator_user.issue_api_token()
    db.session.commit()
    return token


@pytest.fixture
def admin_caller(admin_user):
    return caller_from_user(admin_user)


@pytest.fixture
def operator_caller(operator_user):
    return caller_from_user(operator_user)


@pytest.fixture
def auth_headers():
    """Build an ``Authorization`` header for a bearer token"""

    def _headers(token):
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def staff_factory(app):
    """Persist a staff record directly, bypassing the importer"""

    def _factory(name, *, unit, external_id=None, is_active=True, **attributes):
        record = StaffMember(
            external_id=external_id or generate_placeholder_external_id(),
            name=name,
            is_active=is_active,
            **attributes,
        )
        if isinstance(unit, Organization):
            record.assign_unit(ResolvedUnit(organization_id=unit.id, name=unit.name))
        else:
            record.assign_unit(unit)
        db.session.add(record)
        db.session.commit()
        return record

    return _factory


@pytest.fixture
def twin_schools(app):
    """Two distinct organizations sharing one display name"""
    north = Organization(name="MI Maarif", slug="mi-maarif-north", external_code="20309001", district="North")
    south = Organization(name="MI Maarif", slug="mi-maarif-south", external_code="20309002", district="South")
    db.session.add_all([north, south])
    db.session.commit()
    return north, south


@pytest.fixture
def south_operator_caller(twin_schools):
    """Operator whose home unit is the second of the twin schools"""
    _, south = twin_schools
    user = User(username="operator-south", role=UserRole.OPERATOR, organization_id=south.id, is_active=True)
    db.session.add(user)
    db.session.commit()
    return caller_from_user(user)
