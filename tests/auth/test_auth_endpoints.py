"""
Tests for the /auth endpoints.
"""
from clinic_auth.auth import service
from clinic_auth.auth.models import AccountStatus, UserRole

TEST_PASSWORD = "Password123!"


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


def _register_payload(**overrides):
    payload = {
        "email": "dr@x.com",
        "password": TEST_PASSWORD,
        "confirm_password": TEST_PASSWORD,
        "first_name": "Dana",
        "last_name": "Ray",
        "role": "doctor",
        "specialization": "Chiropractic",
    }
    payload.update(overrides)
    return payload


def test_doctor_session_lifecycle(client):
    """Register, log in, use a protected route, log out, and get locked out."""
    response = client.post("/auth/register", json=_register_payload())
    assert response.status_code == 201

    response = client.post("/auth/login", json={"email": "dr@x.com", "password": TEST_PASSWORD})
    assert response.status_code == 200
    assert "accessToken" in response.cookies
    assert "refreshToken" in response.cookies
    data = response.json()["data"]
    access_token = data["access_token"]
    assert data["refresh_token"]

    client.cookies.clear()
    response = client.get("/users", headers=_bearer(access_token))
    assert response.status_code == 200

    response = client.post("/auth/logout", headers=_bearer(access_token))
    assert response.status_code == 200

    response = client.get("/users", headers=_bearer(access_token))
    assert response.status_code == 401
    assert response.json()["errorCode"] == "4005"


def test_register_response_envelope(client):
    response = client.post("/auth/register", json=_register_payload(email="Pat@Example.com", role="patient"))

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["statusCode"] == 201
    assert body["message"] == "User registered successfully"
    user = body["data"]["user"]
    assert user["email"] == "pat@example.com"
    assert user["username"] == "pat"
    assert user["role"] == "patient"
    assert "password_hash" not in user
    assert body["data"]["profile"]["first_name"] == "Dana"
    assert body["data"]["token_type"] == "bearer"


def test_register_duplicate_email(client):
    client.post("/auth/register", json=_register_payload())
    response = client.post("/auth/register", json=_register_payload())

    assert response.status_code == 409
    assert response.json()["errorCode"] == "4091"


def test_register_validation_errors(client):
    cases = [
        _register_payload(confirm_password="Different123!"),
        _register_payload(specialization=None),
        _register_payload(password="weakpassword"),
        _register_payload(role="admin"),
        _register_payload(email="not-an-email"),
        _register_payload(first_name="R2D2"),
    ]
    for payload in cases:
        response = client.post("/auth/register", json=payload)
        assert response.status_code == 400, payload
        body = response.json()
        assert body["success"] is False
        assert body["errorCode"] == "4001"
        assert body["errors"]


def test_login_failures_share_one_response(client, make_user):
    make_user()

    unknown = client.post("/auth/login", json={"email": "ghost@example.com", "password": TEST_PASSWORD})
    wrong = client.post("/auth/login", json={"email": "patient@example.com", "password": "WrongPassword1!"})

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json()
    assert unknown.json()["errorCode"] == "4011"


def test_missing_token(client):
    response = client.get("/auth/me")
    assert response.status_code == 401
    assert response.json()["errorCode"] == "4001"


def test_garbage_token(client):
    response = client.get("/auth/me", headers=_bearer("not.a.token"))
    assert response.status_code == 401
    assert response.json()["errorCode"] == "4003"


def test_expired_token(client, make_user):
    from datetime import timedelta

    from clinic_auth.auth.models import TokenType
    from clinic_auth.auth.tokens import issue_token
    from clinic_auth.config import settings
    from clinic_auth.core.security import utcnow

    user = make_user()
    token = issue_token(
        {"user_id": user.id},
        settings.jwt_secret,
        timedelta(minutes=15),
        TokenType.ACCESS,
        issued_at=utcnow() - timedelta(hours=1),
    )

    response = client.get("/auth/me", headers=_bearer(token))
    assert response.status_code == 401
    assert response.json()["errorCode"] == "4002"


def test_cookie_authentication(client, make_user, login):
    make_user()
    login("patient@example.com")

    # the login response set the cookies on the client
    response = client.get("/auth/me")
    assert response.status_code == 200
    assert response.json()["data"]["user"]["email"] == "patient@example.com"


def test_header_wins_over_cookie(client, make_user, login):
    make_user()
    make_user(email="other@example.com")
    other = login("other@example.com")
    login("patient@example.com")

    response = client.get("/auth/me", headers=_bearer(other["access_token"]))
    assert response.json()["data"]["user"]["email"] == "other@example.com"


def test_me_returns_profile(client, make_user, login):
    make_user(role=UserRole.DOCTOR, email="dr@x.com", first_name="Dana", last_name="Ray")
    tokens = login("dr@x.com")

    response = client.get("/auth/me", headers=_bearer(tokens["access_token"]))

    data = response.json()["data"]
    assert data["user"]["role"] == "doctor"
    assert data["profile"]["specialization"] == "Chiropractic"


def test_verify_endpoint(client, make_user, login):
    make_user()
    tokens = login("patient@example.com")

    response = client.post("/auth/verify", headers=_bearer(tokens["access_token"]))

    data = response.json()["data"]
    assert data["valid"] is True
    assert data["user"]["role"] == "patient"
    assert "token" not in data["user"]


def test_refresh_rotation_and_replay(client, make_user, login):
    make_user()
    tokens = login("patient@example.com")
    client.cookies.clear()

    first = client.post("/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
    assert first.status_code == 200
    new_tokens = first.json()["data"]
    assert new_tokens["refresh_token"] != tokens["refresh_token"]
    assert new_tokens["access_token"] != tokens["access_token"]

    client.cookies.clear()
    replay = client.post("/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
    assert replay.status_code == 401
    assert replay.json()["errorCode"] == "4013"


def test_refresh_from_cookie(client, make_user, login):
    make_user()
    login("patient@example.com")

    response = client.post("/auth/refresh-token")
    assert response.status_code == 200


def test_refresh_without_token(client):
    response = client.post("/auth/refresh-token")
    assert response.status_code == 401
    assert response.json()["errorCode"] == "4013"


def test_refresh_immediately_after_login(client, make_user, login):
    make_user()
    tokens = login("patient@example.com")
    client.cookies.clear()

    response = client.post("/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})

    assert response.status_code == 200
    me = client.get("/auth/me", headers=_bearer(response.json()["data"]["access_token"]))
    assert me.status_code == 200


def test_logout_is_lenient_and_clears_cookies(client, make_user, login):
    make_user()
    login("patient@example.com")

    response = client.post("/auth/logout")
    assert response.status_code == 200
    assert response.json()["success"] is True
    set_cookie = response.headers.get_list("set-cookie")
    assert any(header.startswith("accessToken=") for header in set_cookie)

    # no token at all still succeeds
    client.cookies.clear()
    assert client.post("/auth/logout").status_code == 200
    assert client.post("/auth/logout", headers=_bearer("garbage")).status_code == 200


def test_logout_revokes_refresh_token_from_body(client, make_user, login):
    make_user()
    tokens = login("patient@example.com")
    client.cookies.clear()

    client.post(
        "/auth/logout",
        headers=_bearer(tokens["access_token"]),
        json={"refresh_token": tokens["refresh_token"]},
    )

    response = client.post("/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 401


def test_revoke_all_sessions(client, make_user, login):
    make_user()
    first = login("patient@example.com")
    second = login("patient@example.com")
    client.cookies.clear()

    response = client.post("/auth/revoke-refresh-token", headers=_bearer(second["access_token"]))
    assert response.status_code == 200
    assert response.json()["data"]["revoked_sessions"] == 4

    assert client.get("/auth/me", headers=_bearer(first["access_token"])).status_code == 401


def test_forgot_password_is_generic(client, make_user):
    make_user()

    known = client.post("/auth/forgot-password", json={"email": "patient@example.com"})
    unknown = client.post("/auth/forgot-password", json={"email": "ghost@example.com"})

    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()


def test_reset_password_flow(client, db, make_user, login):
    make_user()
    tokens = login("patient@example.com")
    client.cookies.clear()
    reset_token = service.forgot_password(db, "patient@example.com")

    check = client.get("/auth/verify-reset-token", params={"token": reset_token})
    assert check.status_code == 200
    assert check.json()["data"]["email"] == "patient@example.com"

    response = client.post(
        "/auth/reset-password",
        json={"token": reset_token, "new_password": "BrandNew123!", "confirm_password": "BrandNew123!"},
    )
    assert response.status_code == 200

    me = client.get("/auth/me", headers=_bearer(tokens["access_token"]))
    assert me.status_code == 401
    assert me.json()["errorCode"] == "4005"

    again = client.post(
        "/auth/reset-password",
        json={"token": reset_token, "new_password": "Another123!", "confirm_password": "Another123!"},
    )
    assert again.status_code == 400
    assert again.json()["errorCode"] == "4020"

    login("patient@example.com", password="BrandNew123!")


def test_change_password(client, make_user, login):
    make_user()
    tokens = login("patient@example.com")
    client.cookies.clear()

    wrong = client.post(
        "/auth/change-password",
        headers=_bearer(tokens["access_token"]),
        json={"current_password": "Nope1234!", "new_password": "BrandNew123!", "confirm_password": "BrandNew123!"},
    )
    assert wrong.status_code == 400

    response = client.post(
        "/auth/change-password",
        headers=_bearer(tokens["access_token"]),
        json={"current_password": TEST_PASSWORD, "new_password": "BrandNew123!", "confirm_password": "BrandNew123!"},
    )
    assert response.status_code == 200
    assert client.get("/auth/me", headers=_bearer(tokens["access_token"])).status_code == 401


def test_verify_email_endpoint(client, make_user):
    from clinic_auth.auth.tokens import issue_email_verification_token

    user = make_user()
    token = issue_email_verification_token(user)

    response = client.post("/auth/verify-email", json={"token": token})
    assert response.status_code == 200
    assert response.json()["data"]["user"]["is_verified"] is True

    bad = client.post("/auth/verify-email", json={"token": "junk"})
    assert bad.status_code == 401
    assert bad.json()["errorCode"] == "4003"


def test_session_endpoint_with_optional_auth(client, make_user, login):
    anonymous = client.get("/auth/session")
    assert anonymous.status_code == 200
    assert anonymous.json()["data"] == {"authenticated": False, "user": None}

    make_user()
    tokens = login("patient@example.com")
    client.cookies.clear()

    signed_in = client.get("/auth/session", headers=_bearer(tokens["access_token"]))
    assert signed_in.json()["data"]["authenticated"] is True
    assert signed_in.json()["data"]["user"]["email"] == "patient@example.com"

    revoked = client.post("/auth/logout", headers=_bearer(tokens["access_token"]))
    assert revoked.status_code == 200
    after = client.get("/auth/session", headers=_bearer(tokens["access_token"]))
    assert after.status_code == 200
    assert after.json()["data"]["authenticated"] is False


def test_suspended_user_token_is_rejected(client, db, make_user, login):
    user = make_user()
    tokens = login("patient@example.com")
    client.cookies.clear()

    user.status = AccountStatus.SUSPENDED
    db.commit()

    response = client.get("/auth/me", headers=_bearer(tokens["access_token"]))
    assert response.status_code == 401
    assert response.json()["errorCode"] == "4015"
