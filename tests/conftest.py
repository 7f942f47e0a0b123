import pytest
from fastapi.testclient import TestClient

from backend.auth_module import Settings, build_auth_module, init_auth_module
from backend.main import create_app


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_env="test",
        database_url="sqlite://",
        jwt_secret="test-access-secret-key-for-testing-only-0001",
        jwt_refresh_secret="test-refresh-secret-key-for-testing-only-0002",
        bcrypt_rounds=4,
        password_hash_workers=2,
    )


@pytest.fixture
def auth(settings):
    module = build_auth_module(settings)
    init_auth_module(module)
    yield module
    module.close()


@pytest.fixture
def lifecycle(auth):
    return auth.lifecycle


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def registered_parent(client):
    payload = {
        "email": "a@x.com",
        "password": "secret123",
        "firstName": "Ann",
        "lastName": "Lee",
        "role": "parent",
    }
    response = client.post("/auth/register", json=payload)
    assert response.status_code == 201
    return payload


@pytest.fixture
def parent_tokens(client, registered_parent):
    response = client.post(
        "/auth/login",
        json={"email": registered_parent["email"], "password": registered_parent["password"]},
    )
    assert response.status_code == 200
    body = response.json()
    return body["token"], body["refreshToken"]
