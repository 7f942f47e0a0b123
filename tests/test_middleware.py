from types import SimpleNamespace

import pytest
from fastapi import Depends, Request
from fastapi.testclient import TestClient

from backend.auth_module import Identity, require_roles
from backend.auth_module.errors import ErrorKind, Failure
from backend.auth_module.middleware import AuthorizationGuard
from backend.auth_module.models import UserRole
from backend.auth_module.security import TokenIssuer, TokenVerifier
from backend.main import create_app
from tests.helpers import FakeClock


def _user(role: UserRole, user_id: int = 3):
    return SimpleNamespace(id=user_id, email=f"{role.value}@x.com", role=role)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def issuer(settings, clock):
    return TokenIssuer(settings, clock=clock)


@pytest.fixture
def guard(settings, clock):
    return AuthorizationGuard(TokenVerifier(settings, clock=clock))


@pytest.mark.parametrize("header", [None, "", "Bearer", "Bearer   ", "Basic dXNlcjpwYXNz", "Token abc"])
def test_missing_or_non_bearer_header_is_unauthenticated(guard, header) -> None:
    result = guard.authenticate(header)

    assert result == Failure(ErrorKind.AUTHENTICATION, "Access denied. No token provided")


def test_valid_token_yields_identity(guard, issuer) -> None:
    token = issuer.issue_access_token(_user(UserRole.INSTRUCTOR))

    result = guard.authenticate(f"Bearer {token}")

    assert result == Identity(user_id=3, email="instructor@x.com", role=UserRole.INSTRUCTOR)


def test_bearer_scheme_is_case_insensitive(guard, issuer) -> None:
    token = issuer.issue_access_token(_user(UserRole.PARENT))

    assert isinstance(guard.authenticate(f"bearer {token}"), Identity)


def test_expired_and_invalid_tokens_are_reported_separately(guard, issuer, clock, settings) -> None:
    token = issuer.issue_access_token(_user(UserRole.PARENT))
    refresh_token = issuer.issue_refresh_token(_user(UserRole.PARENT))

    invalid = guard.authenticate(f"Bearer {refresh_token}")
    clock.advance(seconds=settings.jwt_expires_in + 1)
    expired = guard.authenticate(f"Bearer {token}")

    assert invalid.kind is expired.kind is ErrorKind.AUTHENTICATION
    assert invalid.message == "Invalid token"
    assert expired.message == "Token expired"


def test_authorize_checks_role_membership() -> None:
    identity = Identity(user_id=1, email="p@x.com", role=UserRole.PARENT)

    assert AuthorizationGuard.authorize(identity, {UserRole.PARENT, UserRole.ADMIN}) is identity
    assert AuthorizationGuard.authorize(identity, []) is identity
    denied = AuthorizationGuard.authorize(identity, {UserRole.ADMIN})
    assert denied.kind is ErrorKind.AUTHORIZATION
    assert denied.status_code == 403


@pytest.fixture
def protected_client(settings):
    app = create_app(settings)

    @app.get("/reports/summary")
    def reports_summary(request: Request, identity: Identity = Depends(require_roles(UserRole.ADMIN, UserRole.SCHOOL_ADMIN))):
        return {"viewer": identity.user_id, "attached": request.state.identity == identity}

    with TestClient(app) as test_client:
        yield test_client


def _token_for(client, role: UserRole, user_id: int) -> str:
    return client.app.state.auth.issuer.issue_access_token(_user(role, user_id))


@pytest.mark.parametrize("role", [UserRole.ADMIN, UserRole.SCHOOL_ADMIN])
def test_require_roles_allows_listed_roles(protected_client, role) -> None:
    token = _token_for(protected_client, role, 11)

    response = protected_client.get("/reports/summary", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.json() == {"viewer": 11, "attached": True}


@pytest.mark.parametrize("role", [UserRole.PARENT, UserRole.INSTRUCTOR])
def test_require_roles_forbids_other_roles(protected_client, role) -> None:
    token = _token_for(protected_client, role, 12)

    response = protected_client.get("/reports/summary", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 403
    assert response.json() == {
        "success": False,
        "message": "Not authorized to access this resource",
        "code": "authorization_error",
    }


def test_require_roles_without_token_is_401(protected_client) -> None:
    assert protected_client.get("/reports/summary").status_code == 401
