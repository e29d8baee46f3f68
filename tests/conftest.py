"""
Shared pytest fixtures for the Employee Journey Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_user: factory for committed User rows
    - employee / mentor / admin: pre-created users
    - new_journey / existing_journey: started journeys (dicts with phases)

Engine services commit their own units of work and roll back on failure, so
every fixture row is committed before a service is called.
"""

from datetime import datetime

import pytest

from app import create_app
from app.models import db as _db
from app.models.auth import CAPABILITY_ADMIN, CAPABILITY_EMPLOYEE, User
from app.models.journey import EmployeeType
from app.services import journey_service

# Fixed clock used by most tests.
T0 = datetime(2025, 1, 6, 9, 0, 0)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Return a factory creating committed users with unique emails."""
    counter = {"n": 0}

    def _make(full_name=None, department="Engineering", roles=None, **kwargs):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            email=kwargs.pop("email", f"user{n}@example.com"),
            full_name=full_name or f"User {n}",
            department=department,
            system_roles=roles or [CAPABILITY_EMPLOYEE],
            **kwargs,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def employee(make_user):
    return make_user(full_name="Ada Employee", email="ada@example.com")


@pytest.fixture()
def mentor(make_user):
    return make_user(full_name="Grace Mentor", email="grace@example.com")


@pytest.fixture()
def admin(make_user):
    return make_user(
        full_name="Hal Admin", email="hal@example.com", department="People Ops",
        roles=[CAPABILITY_ADMIN, CAPABILITY_EMPLOYEE],
    )


@pytest.fixture()
def new_journey(employee):
    """A started NEW_EMPLOYEE journey on the default 7-phase template."""
    return journey_service.create_journey(
        employee.id, EmployeeType.NEW_EMPLOYEE, start_date=T0, now=T0,
    )


@pytest.fixture()
def existing_journey(make_user):
    """A started EXISTING_EMPLOYEE journey on the default 5-phase template."""
    veteran = make_user(full_name="Vera Veteran", department="Operations")
    return journey_service.create_journey(
        veteran.id, EmployeeType.EXISTING_EMPLOYEE, start_date=T0, now=T0,
    )
