"""
Tests for first admin creation at startup.
"""
from clinic_auth.auth.models import User, UserRole
from clinic_auth.config import settings
from clinic_auth.core.bootstrap import admin_exists, bootstrap_admin_if_needed


def test_bootstrap_creates_admin(db, monkeypatch):
    monkeypatch.setattr(settings, "bootstrap_admin_email", "Admin@Clinic.com")
    monkeypatch.setattr(settings, "bootstrap_admin_password", "AdminPass123!")

    assert admin_exists(db) is False
    bootstrap_admin_if_needed(db)

    admin = db.query(User).filter(User.role == UserRole.ADMIN).one()
    assert admin.email == "admin@clinic.com"
    assert admin.is_verified is True


def test_bootstrap_runs_once(db, monkeypatch):
    monkeypatch.setattr(settings, "bootstrap_admin_email", "admin@clinic.com")
    monkeypatch.setattr(settings, "bootstrap_admin_password", "AdminPass123!")

    bootstrap_admin_if_needed(db)
    monkeypatch.setattr(settings, "bootstrap_admin_email", "second@clinic.com")
    bootstrap_admin_if_needed(db)

    assert db.query(User).filter(User.role == UserRole.ADMIN).count() == 1


def test_bootstrap_without_credentials_is_skipped(db):
    bootstrap_admin_if_needed(db)
    assert admin_exists(db) is False


def test_bootstrap_admin_can_log_in(client, monkeypatch, db):
    monkeypatch.setattr(settings, "bootstrap_admin_email", "admin@clinic.com")
    monkeypatch.setattr(settings, "bootstrap_admin_password", "AdminPass123!")
    bootstrap_admin_if_needed(db)

    response = client.post("/auth/login", json={"email": "admin@clinic.com", "password": "AdminPass123!"})

    assert response.status_code == 200
    assert response.json()["data"]["user"]["role"] == "admin"
    assert response.json()["data"]["profile"] is None
