import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .errors import ErrorKind, Failure
from .models import UserRole, utcnow
from .security import PasswordHasher, TokenInvalid, TokenIssuer, TokenVerifier
from .store import CredentialStore, NewUser, UserRecord


logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid credentials"
DEACTIVATED_MESSAGE = "Account is deactivated"
INVALID_REFRESH_MESSAGE = "Invalid refresh token"
WRONG_CURRENT_PASSWORD_MESSAGE = "Current password is incorrect"


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    refresh_token: str
    user: UserRecord


@dataclass(frozen=True)
class Profile:
    user: UserRecord
    role_details: dict[str, Any] | None


class SessionLifecycle:
    def __init__(
        self,
        store: CredentialStore,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
        verifier: TokenVerifier,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.hasher = hasher
        self.issuer = issuer
        self.verifier = verifier
        self._clock = clock

    def register(
        self,
        *,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role: str | UserRole,
        phone: str | None = None,
    ) -> UserRecord | Failure:
        try:
            user_role = UserRole(role)
        except ValueError:
            return Failure(ErrorKind.VALIDATION, "Invalid role")

        existing = self.store.find_by_email(email)
        if isinstance(existing, UserRecord):
            logger.warning(f"Registration rejected: email in use by user {existing.id}")
            return Failure(ErrorKind.CONFLICT, "User already exists with this email")
        if existing.kind is not ErrorKind.NOT_FOUND:
            return existing

        password_hash = self.hasher.hash(password)
        # The unique index settles races the lookup above cannot see.
        created = self.store.insert(
            NewUser(email=email, first_name=first_name, last_name=last_name, role=user_role, phone=phone),
            password_hash,
        )
        if isinstance(created, Failure):
            logger.warning(f"Registration failed ({created.kind.value})")
            return created

        logger.info(f"Registered user {created.id} with role {created.role.value}")
        return created

    def login(self, *, email: str, password: str) -> LoginResult | Failure:
        found = self.store.find_by_email(email)
        if isinstance(found, Failure):
            if found.kind is not ErrorKind.NOT_FOUND:
                return found
            self.hasher.dummy_verify(password)
            logger.warning(f"Login failed ({ErrorKind.NOT_FOUND.value})")
            return Failure(ErrorKind.AUTHENTICATION, INVALID_CREDENTIALS_MESSAGE)

        user = found
        if not user.active:
            logger.warning(f"Login failed for user {user.id}: account deactivated")
            return Failure(ErrorKind.AUTHENTICATION, DEACTIVATED_MESSAGE)

        if not self.hasher.verify(password, user.password_hash):
            logger.warning(f"Login failed for user {user.id}: wrong password")
            return Failure(ErrorKind.AUTHENTICATION, INVALID_CREDENTIALS_MESSAGE)

        access_token = self.issuer.issue_access_token(user)
        refresh_token = self.issuer.issue_refresh_token(user)

        updated = self.store.update_last_login(user.id, self._clock())
        if isinstance(updated, Failure):
            return updated

        logger.info(f"Login success for user {user.id}")
        return LoginResult(access_token=access_token, refresh_token=refresh_token, user=user)

    def refresh_access_token(self, refresh_token: str) -> str | Failure:
        claims = self.verifier.verify_refresh(refresh_token)
        if isinstance(claims, TokenInvalid):
            logger.info(f"Refresh rejected: {claims.kind.value}")
            return Failure(ErrorKind.AUTHENTICATION, INVALID_REFRESH_MESSAGE)

        # Re-read the row so the new token carries the current role.
        found = self.store.find_by_id(claims.user_id)
        if isinstance(found, Failure):
            if found.kind is not ErrorKind.NOT_FOUND:
                return found
            logger.info(f"Refresh rejected: user {claims.user_id} no longer exists")
            return Failure(ErrorKind.AUTHENTICATION, INVALID_REFRESH_MESSAGE)
        if not found.active:
            logger.info(f"Refresh rejected: user {found.id} is deactivated")
            return Failure(ErrorKind.AUTHENTICATION, INVALID_REFRESH_MESSAGE)

        logger.info(f"Access token refreshed for user {found.id}")
        return self.issuer.issue_access_token(found)

    def change_password(self, *, user_id: int, current_password: str, new_password: str) -> UserRecord | Failure:
        found = self.store.find_by_id(user_id)
        if isinstance(found, Failure):
            return found

        if not self.hasher.verify(current_password, found.password_hash):
            logger.warning(f"Password change rejected for user {user_id}: wrong current password")
            return Failure(ErrorKind.AUTHENTICATION, WRONG_CURRENT_PASSWORD_MESSAGE)

        updated = self.store.update_password_hash(user_id, self.hasher.hash(new_password))
        if isinstance(updated, Failure):
            return updated

        # Tokens issued before this point stay valid until they expire.
        logger.info(f"Password changed for user {user_id}")
        return updated

    def get_profile(self, user_id: int) -> Profile | Failure:
        found = self.store.find_by_id(user_id)
        if isinstance(found, Failure):
            return found
        role_details = self.store.find_role_profile(found)
        if isinstance(role_details, Failure):
            return role_details
        return Profile(user=found, role_details=role_details)

    def seed_admin(self, *, email: str, password: str) -> UserRecord | Failure | None:
        if not email or not password:
            return None
        existing = self.store.find_by_email(email)
        if isinstance(existing, UserRecord):
            return existing
        if existing.kind is not ErrorKind.NOT_FOUND:
            return existing
        logger.info("Seeding admin account")
        return self.register(
            email=email,
            password=password,
            first_name="Admin",
            last_name="User",
            role=UserRole.ADMIN,
        )
