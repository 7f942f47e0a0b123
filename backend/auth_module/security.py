import enum
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
import jwt

from .config import Settings
from .models import UserRole


Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PasswordHasher:
    def __init__(self, rounds: int = 12, max_workers: int = 4):
        self.rounds = rounds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="password-hash")
        self._dummy_hash = bcrypt.hashpw(uuid.uuid4().hex.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")

    def _hash(self, password: str) -> str:
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(self.rounds)).decode("utf-8")

    @staticmethod
    def _verify(password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def hash(self, password: str) -> str:
        return self._executor.submit(self._hash, password).result()

    def verify(self, password: str, password_hash: str) -> bool:
        return self._executor.submit(self._verify, password, password_hash).result()

    def dummy_verify(self, password: str) -> None:
        # Unknown accounts cost one bcrypt check, same as a wrong password.
        self.verify(password, self._dummy_hash)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)


class TokenInvalidKind(str, enum.Enum):
    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    EXPIRED = "expired"


@dataclass(frozen=True)
class TokenInvalid:
    kind: TokenInvalidKind

    @property
    def retryable(self) -> bool:
        return self.kind is TokenInvalidKind.EXPIRED


@dataclass(frozen=True)
class Claims:
    user_id: int
    issued_at: datetime
    expires_at: datetime
    email: str | None = None
    role: UserRole | None = None


class TokenIssuer:
    def __init__(self, settings: Settings, clock: Clock = _utcnow):
        self._access_secret = settings.jwt_secret
        self._refresh_secret = settings.jwt_refresh_secret
        self._algorithm = settings.jwt_algorithm
        self._access_ttl = timedelta(seconds=settings.jwt_expires_in)
        self._refresh_ttl = timedelta(seconds=settings.jwt_refresh_expires_in)
        self._clock = clock

    def _encode(self, claims: dict[str, Any], secret: str, ttl: timedelta) -> str:
        now = self._clock()
        payload = {
            **claims,
            "iat": int(now.timestamp()),
            "exp": int((now + ttl).timestamp()),
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, secret, algorithm=self._algorithm)

    def issue_access_token(self, user) -> str:
        role = user.role.value if isinstance(user.role, UserRole) else str(user.role)
        return self._encode(
            {"id": user.id, "email": user.email, "role": role},
            self._access_secret,
            self._access_ttl,
        )

    def issue_refresh_token(self, user) -> str:
        return self._encode({"id": user.id}, self._refresh_secret, self._refresh_ttl)


class TokenVerifier:
    def __init__(self, settings: Settings, clock: Clock = _utcnow):
        self._access_secret = settings.jwt_secret
        self._refresh_secret = settings.jwt_refresh_secret
        self._algorithm = settings.jwt_algorithm
        self._clock = clock

    def verify(self, token: str, secret: str) -> Claims | TokenInvalid:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self._algorithm],
                options={"verify_exp": False, "verify_iat": False, "require": ["exp", "iat", "id"]},
            )
        except jwt.InvalidSignatureError:
            return TokenInvalid(TokenInvalidKind.BAD_SIGNATURE)
        except jwt.InvalidTokenError:
            return TokenInvalid(TokenInvalidKind.MALFORMED)

        try:
            user_id = int(payload["id"])
            issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
            role = UserRole(payload["role"]) if "role" in payload else None
        except (TypeError, ValueError, OverflowError):
            return TokenInvalid(TokenInvalidKind.MALFORMED)

        # A token is still valid in the second its exp names.
        if self._clock() > expires_at:
            return TokenInvalid(TokenInvalidKind.EXPIRED)

        return Claims(
            user_id=user_id,
            issued_at=issued_at,
            expires_at=expires_at,
            email=payload.get("email"),
            role=role,
        )

    def verify_access(self, token: str) -> Claims | TokenInvalid:
        result = self.verify(token, self._access_secret)
        if isinstance(result, Claims) and (result.email is None or result.role is None):
            return TokenInvalid(TokenInvalidKind.MALFORMED)
        return result

    def verify_refresh(self, token: str) -> Claims | TokenInvalid:
        return self.verify(token, self._refresh_secret)
