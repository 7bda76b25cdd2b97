"""
Test configuration for the clinic auth service.
"""
import os

# Settings are read at import time, so the test environment goes first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret-key-that-is-at-least-32-characters"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret-key-at-least-32-characters"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("BOOTSTRAP_ADMIN_EMAIL", None)
os.environ.pop("BOOTSTRAP_ADMIN_PASSWORD", None)

import pytest
from fastapi.testclient import TestClient

from clinic_auth.auth.credential_store import CredentialStore
from clinic_auth.auth.models import AccountStatus, UserRole
from clinic_auth.database import Database
from clinic_auth.main import create_app

TEST_PASSWORD = "Password123!"


@pytest.fixture(scope="function")
def database():
    """
    Create a fresh in-memory database for each test.
    """
    database = Database("sqlite://").connect()
    database.create_all()
    yield database
    if database.is_connected:
        database.drop_all()
    database.close()


@pytest.fixture(scope="function")
def db(database):
    """
    A session for arranging data and inspecting it directly.
    """
    session = database.session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def app(database):
    return create_app(database=database)


@pytest.fixture(scope="function")
def client(app):
    """
    Create a test client; the app's lifespan runs on enter and exit.
    """
    with TestClient(app) as client:
        yield client


@pytest.fixture
def make_user(db):
    """
    Factory creating a committed user (and profile) directly in the database.
    """
    def _make_user(
        email="patient@example.com",
        password=TEST_PASSWORD,
        role=UserRole.PATIENT,
        status=AccountStatus.ACTIVE,
        first_name="Pat",
        last_name="Smith",
    ):
        store = CredentialStore(db)
        user = store.create_user(email=email, password=password, role=role, status=status)
        store.create_profile(
            user,
            first_name=first_name,
            last_name=last_name,
            specialization="Chiropractic" if role == UserRole.DOCTOR else None,
        )
        db.commit()
        return user

    return _make_user


@pytest.fixture
def login(client):
    """
    Log in through the API and return the response data (user, tokens).
    """
    def _login(email, password=TEST_PASSWORD, remember_me=False):
        response = client.post(
            "/auth/login",
            json={"email": email, "password": password, "remember_me": remember_me},
        )
        assert response.status_code == 200, response.text
        return response.json()["data"]

    return _login
