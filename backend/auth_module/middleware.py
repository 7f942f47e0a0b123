import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from fastapi import Depends, Header, Request

from .errors import ErrorKind, Failure, raise_for_failure
from .models import UserRole
from .security import Claims, TokenInvalid, TokenInvalidKind, TokenVerifier


logger = logging.getLogger(__name__)

NO_TOKEN_MESSAGE = "Access denied. No token provided"
EXPIRED_TOKEN_MESSAGE = "Token expired"
INVALID_TOKEN_MESSAGE = "Invalid token"
FORBIDDEN_MESSAGE = "Not authorized to access this resource"


@dataclass(frozen=True)
class Identity:
    user_id: int
    email: str
    role: UserRole


def _parse_token(auth_header: str | None) -> str | None:
    if not auth_header:
        return None
    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


class AuthorizationGuard:
    def __init__(self, verifier: TokenVerifier):
        self._verifier = verifier

    def authenticate(self, authorization: str | None) -> Identity | Failure:
        token = _parse_token(authorization)
        if token is None:
            return Failure(ErrorKind.AUTHENTICATION, NO_TOKEN_MESSAGE)

        result = self._verifier.verify_access(token)
        if isinstance(result, TokenInvalid):
            logger.info(f"Rejected access token: {result.kind.value}")
            if result.kind is TokenInvalidKind.EXPIRED:
                return Failure(ErrorKind.AUTHENTICATION, EXPIRED_TOKEN_MESSAGE)
            return Failure(ErrorKind.AUTHENTICATION, INVALID_TOKEN_MESSAGE)

        claims: Claims = result
        return Identity(user_id=claims.user_id, email=claims.email, role=claims.role)

    @staticmethod
    def authorize(identity: Identity, allowed_roles: Iterable[UserRole]) -> Identity | Failure:
        allowed = set(allowed_roles)
        if allowed and identity.role not in allowed:
            logger.warning(f"User {identity.user_id} with role {identity.role.value} denied")
            return Failure(ErrorKind.AUTHORIZATION, FORBIDDEN_MESSAGE)
        return identity


def get_current_identity(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Identity:
    guard: AuthorizationGuard = request.app.state.auth.guard
    result = guard.authenticate(authorization)
    if isinstance(result, Failure):
        raise_for_failure(result)
    request.state.identity = result
    return result


def require_roles(*allowed_roles: UserRole) -> Callable:
    def dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        result = AuthorizationGuard.authorize(identity, allowed_roles)
        if isinstance(result, Failure):
            raise_for_failure(result)
        return result

    return dependency
