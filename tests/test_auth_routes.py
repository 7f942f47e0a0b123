from datetime import datetime, timedelta, timezone

import jwt
import pytest


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def test_register_creates_user_and_parent_profile(client, registered_parent) -> None:
    login = client.post("/auth/login", json={"email": "a@x.com", "password": "secret123"}).json()

    me = client.get("/auth/me", headers=_bearer(login["token"]))

    assert me.status_code == 200
    user = me.json()["user"]
    assert user["role"] == "parent"
    assert user["firstName"] == "Ann"
    assert user["roleDetails"] is not None
    assert user["lastLogin"] is not None


def test_register_duplicate_email_returns_400(client, registered_parent) -> None:
    response = client.post("/auth/register", json={**registered_parent, "email": "A@X.com"})

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "message": "User already exists with this email",
        "code": "conflict",
    }


@pytest.mark.parametrize(
    "overrides",
    [
        {"password": "12345"},
        {"role": "superuser"},
        {"email": "not-an-email"},
        {"firstName": "   "},
        {"password": "x" * 73},
    ],
)
def test_register_validation_failures_return_400(client, overrides) -> None:
    payload = {
        "email": "a@x.com",
        "password": "secret123",
        "firstName": "Ann",
        "lastName": "Lee",
        "role": "parent",
        **overrides,
    }

    response = client.post("/auth/register", json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "validation_error"
    assert body["details"]


def test_register_missing_fields_return_400(client) -> None:
    response = client.post("/auth/register", json={"email": "a@x.com"})

    assert response.status_code == 400
    fields = {detail["field"] for detail in response.json()["details"]}
    assert {"password", "firstName", "lastName", "role"} <= fields


def test_login_returns_token_pair_and_summary(client, registered_parent, settings) -> None:
    response = client.post("/auth/login", json={"email": "a@x.com", "password": "secret123"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["user"] == {
        "id": body["user"]["id"],
        "email": "a@x.com",
        "firstName": "Ann",
        "lastName": "Lee",
        "role": "parent",
    }
    assert body["token"] != body["refreshToken"]
    assert body["token"].count(".") == 2
    assert body["refreshToken"].count(".") == 2
    assert jwt.decode(body["token"], settings.jwt_secret, algorithms=["HS256"])["role"] == "parent"


def test_login_failures_are_indistinguishable(client, registered_parent) -> None:
    wrong_password = client.post("/auth/login", json={"email": "a@x.com", "password": "wrongpass"})
    unknown_email = client.post("/auth/login", json={"email": "nobody@x.com", "password": "anything"})

    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json()
    assert wrong_password.json()["message"] == "Invalid credentials"


def test_login_deactivated_account_returns_401(client, registered_parent) -> None:
    store = client.app.state.auth.store
    user = store.find_by_email("a@x.com")
    store.set_active(user.id, False)

    response = client.post("/auth/login", json={"email": "a@x.com", "password": "secret123"})

    assert response.status_code == 401
    assert response.json()["message"] == "Account is deactivated"


def test_me_requires_token(client) -> None:
    response = client.get("/auth/me")

    assert response.status_code == 401
    assert response.json()["message"] == "Access denied. No token provided"


def test_me_with_expired_token(client, registered_parent, settings) -> None:
    user = client.app.state.auth.store.find_by_email("a@x.com")
    issued = datetime.now(timezone.utc) - timedelta(days=2)
    token = jwt.encode(
        {
            "id": user.id,
            "email": user.email,
            "role": "parent",
            "iat": int(issued.timestamp()),
            "exp": int((issued + timedelta(days=1)).timestamp()),
        },
        settings.jwt_secret,
        algorithm="HS256",
    )

    response = client.get("/auth/me", headers=_bearer(token))

    assert response.status_code == 401
    assert response.json()["message"] == "Token expired"


def test_me_with_forged_token(client, parent_tokens, settings) -> None:
    access_token, _ = parent_tokens
    claims = jwt.decode(access_token, settings.jwt_secret, algorithms=["HS256"])
    forged = jwt.encode({**claims, "role": "admin"}, "attacker-chosen-secret-of-enough-length", algorithm="HS256")

    response = client.get("/auth/me", headers=_bearer(forged))

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid token"


def test_refresh_token_returns_new_access_token(client, parent_tokens, settings) -> None:
    _, refresh_token = parent_tokens

    response = client.post("/auth/refresh-token", json={"refreshToken": refresh_token})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert set(body) == {"success", "token"}
    assert client.get("/auth/me", headers=_bearer(body["token"])).status_code == 200


def test_refresh_with_access_token_is_rejected(client, parent_tokens) -> None:
    access_token, _ = parent_tokens

    response = client.post("/auth/refresh-token", json={"refreshToken": access_token})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid refresh token"


def test_refresh_requires_body(client) -> None:
    response = client.post("/auth/refresh-token", json={})

    assert response.status_code == 400


def test_change_password_flow(client, parent_tokens) -> None:
    access_token, _ = parent_tokens

    wrong = client.post(
        "/auth/change-password",
        json={"currentPassword": "wrongpass", "newPassword": "brandnew1"},
        headers=_bearer(access_token),
    )
    too_short = client.post(
        "/auth/change-password",
        json={"currentPassword": "secret123", "newPassword": "short"},
        headers=_bearer(access_token),
    )
    changed = client.post(
        "/auth/change-password",
        json={"currentPassword": "secret123", "newPassword": "brandnew1"},
        headers=_bearer(access_token),
    )

    assert wrong.status_code == 401
    assert wrong.json()["message"] == "Current password is incorrect"
    assert too_short.status_code == 400
    assert changed.status_code == 200
    assert changed.json() == {"success": True, "message": "Password changed successfully"}
    assert client.post("/auth/login", json={"email": "a@x.com", "password": "brandnew1"}).status_code == 200


def test_change_password_requires_token(client) -> None:
    response = client.post(
        "/auth/change-password",
        json={"currentPassword": "secret123", "newPassword": "brandnew1"},
    )

    assert response.status_code == 401


def test_logout_only_acknowledges(client, parent_tokens) -> None:
    access_token, _ = parent_tokens

    response = client.post("/auth/logout", headers=_bearer(access_token))

    assert response.status_code == 200
    assert client.get("/auth/me", headers=_bearer(access_token)).status_code == 200


def test_health_reports_database(client) -> None:
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["database"] == "connected"
