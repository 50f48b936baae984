"""
Pytest fixtures for spa registry backend tests.

Provides a fresh in-memory database per test, a ManualClock installed as the
app clock, seeded roles/permissions/users, and auth header helpers.
"""

from datetime import datetime

import pytest

from spa_registry import create_app
from spa_registry.extensions import db
from spa_registry.services import permission_service, registry_service
from spa_registry.services.auth_service import assign_role, create_default_roles, create_user
from spa_registry.time_utils import ManualClock


START = datetime(2026, 3, 2, 9, 0, 0)
PASSWORD = "Password123!"


@pytest.fixture(scope='function')
def clock():
    return ManualClock(START)


@pytest.fixture(scope='function')
def app(clock):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'SCHEDULER_ENABLED': False,
    }, clock=clock)

    with app.app_context():
        db.create_all()
        create_default_roles()
        permission_service.initialize_permissions()
        permission_service.assign_default_role_permissions()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def spa(app):
    return registry_service.register_spa("Lotus Wellness Spa", "owner@lotus.lk")


@pytest.fixture(scope='function')
def other_spa(app):
    return registry_service.register_spa("Blue Lagoon Spa", "owner@bluelagoon.lk")


@pytest.fixture(scope='function')
def therapist(spa):
    return registry_service.register_therapist(spa.id, "Nimali Perera", "199012345678")


@pytest.fixture(scope='function')
def users(app, spa):
    """lsa_admin, lsa_officer and a spa_admin scoped to the spa fixture."""
    admin = create_user("admin", "admin@lsa.local", PASSWORD)
    assign_role(admin.id, "lsa_admin")

    officer = create_user("officer", "officer@lsa.local", PASSWORD)
    assign_role(officer.id, "lsa_officer")

    spa_admin = create_user("spaadmin", "admin@lotus.lk", PASSWORD, spa_id=spa.id)
    assign_role(spa_admin.id, "spa_admin")

    return {"admin": admin.id, "officer": officer.id, "spaadmin": spa_admin.id}


@pytest.fixture(scope='function')
def login(client, users):
    """Log a seeded user in and return Authorization headers."""
    def _login(username: str) -> dict:
        response = client.post("/api/auth/login", json={"username": username, "password": PASSWORD})
        assert response.status_code == 200, response.get_json()
        return {"Authorization": f"Bearer {response.get_json()['token']}"}
    return _login
