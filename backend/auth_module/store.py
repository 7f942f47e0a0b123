import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from .errors import ErrorKind, Failure
from .models import InstructorProfile, ParentProfile, User, UserRole, utcnow


logger = logging.getLogger(__name__)

DUPLICATE_EMAIL_MESSAGE = "User already exists with this email"


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


@dataclass(frozen=True)
class NewUser:
    email: str
    first_name: str
    last_name: str
    role: UserRole
    phone: str | None = None


@dataclass(frozen=True)
class UserRecord:
    id: int
    email: str
    password_hash: str
    first_name: str
    last_name: str
    phone: str | None
    role: UserRole
    active: bool
    last_login: datetime | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: User) -> "UserRecord":
        return cls(
            id=row.id,
            email=row.email,
            password_hash=row.password_hash,
            first_name=row.first_name,
            last_name=row.last_name,
            phone=row.phone,
            role=UserRole(row.role),
            active=row.active,
            last_login=row.last_login,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


def _parent_profile(user_id: int, today: date) -> ParentProfile:
    return ParentProfile(user_id=user_id)


def _instructor_profile(user_id: int, today: date) -> InstructorProfile:
    return InstructorProfile(user_id=user_id, hire_date=today, employment_type="contractor")


# Roles missing from this table get no subordinate profile row.
ROLE_PROFILE_FACTORIES: dict[UserRole, Callable[[int, date], Any]] = {
    UserRole.PARENT: _parent_profile,
    UserRole.INSTRUCTOR: _instructor_profile,
}

ROLE_PROFILE_MODELS: dict[UserRole, type] = {
    UserRole.PARENT: ParentProfile,
    UserRole.INSTRUCTOR: InstructorProfile,
}

ROLE_PROFILE_FIELDS: dict[UserRole, tuple[str, ...]] = {
    UserRole.PARENT: ("id", "address", "city", "state", "zip_code", "preferred_contact_method"),
    UserRole.INSTRUCTOR: ("id", "hire_date", "employment_type", "education", "certifications"),
}


def _storage_failure(exc: SQLAlchemyError, operation: str) -> Failure:
    if isinstance(exc, (OperationalError, PoolTimeoutError)):
        logger.error(f"Credential store unavailable during {operation}: {exc.__class__.__name__}")
        return Failure(ErrorKind.UNAVAILABLE, "Database connection error", detail=str(exc))
    logger.error(f"Credential store error during {operation}: {exc.__class__.__name__}")
    return Failure(ErrorKind.INTERNAL, "Internal Server Error", detail=str(exc))


class CredentialStore:
    """Users and role profiles; public methods return a value or a Failure."""

    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] = utcnow):
        self._session_factory = session_factory
        self._clock = clock

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    def find_by_email(self, email: str) -> UserRecord | Failure:
        try:
            with self._session() as db:
                row = db.scalars(select(User).where(User.email == normalize_email(email))).first()
        except SQLAlchemyError as exc:
            return _storage_failure(exc, "find_by_email")
        if row is None:
            return Failure(ErrorKind.NOT_FOUND, "User not found")
        return UserRecord.from_row(row)

    def find_by_id(self, user_id: int) -> UserRecord | Failure:
        try:
            with self._session() as db:
                row = db.get(User, user_id)
        except SQLAlchemyError as exc:
            return _storage_failure(exc, "find_by_id")
        if row is None:
            return Failure(ErrorKind.NOT_FOUND, "User not found")
        return UserRecord.from_row(row)

    def insert_role_profile(self, db: Session, role: UserRole, user_id: int, today: date) -> None:
        factory = ROLE_PROFILE_FACTORIES.get(role)
        if factory is None:
            return
        db.add(factory(user_id, today))
        db.flush()

    def insert(self, new_user: NewUser, password_hash: str) -> UserRecord | Failure:
        now = self._clock()
        try:
            with self._session() as db:
                try:
                    row = User(
                        email=normalize_email(new_user.email),
                        password_hash=password_hash,
                        first_name=new_user.first_name.strip(),
                        last_name=new_user.last_name.strip(),
                        phone=new_user.phone or None,
                        role=new_user.role,
                        active=True,
                        created_at=now,
                        updated_at=now,
                    )
                    db.add(row)
                    db.flush()
                except IntegrityError:
                    db.rollback()
                    return Failure(ErrorKind.CONFLICT, DUPLICATE_EMAIL_MESSAGE)
                except Exception:
                    db.rollback()
                    raise

                # Past this point an integrity error is a schema fault, not a duplicate.
                try:
                    self.insert_role_profile(db, new_user.role, row.id, now.date())
                    db.commit()
                except Exception:
                    db.rollback()
                    raise
                return UserRecord.from_row(row)
        except SQLAlchemyError as exc:
            return _storage_failure(exc, "insert")

    def find_role_profile(self, user: UserRecord) -> dict[str, Any] | None | Failure:
        model = ROLE_PROFILE_MODELS.get(user.role)
        if model is None:
            return None
        try:
            with self._session() as db:
                profile = db.scalars(select(model).where(model.user_id == user.id)).first()
        except SQLAlchemyError as exc:
            return _storage_failure(exc, "find_role_profile")
        if profile is None:
            return None
        return {name: getattr(profile, name) for name in ROLE_PROFILE_FIELDS[user.role]}

    def _update(self, user_id: int, operation: str, **values: Any) -> int | Failure:
        try:
            with self._session() as db:
                try:
                    result = db.execute(update(User).where(User.id == user_id).values(**values))
                    db.commit()
                except Exception:
                    db.rollback()
                    raise
                return result.rowcount
        except SQLAlchemyError as exc:
            return _storage_failure(exc, operation)

    def update_password_hash(self, user_id: int, new_hash: str) -> UserRecord | Failure:
        # One UPDATE statement, so concurrent changes serialize on the row.
        updated = self._update(user_id, "update_password_hash", password_hash=new_hash, updated_at=self._clock())
        if isinstance(updated, Failure):
            return updated
        if updated == 0:
            return Failure(ErrorKind.NOT_FOUND, "User not found")
        return self.find_by_id(user_id)

    def update_last_login(self, user_id: int, timestamp: datetime) -> None | Failure:
        updated = self._update(user_id, "update_last_login", last_login=timestamp)
        if isinstance(updated, Failure):
            return updated
        if updated == 0:
            return Failure(ErrorKind.NOT_FOUND, "User not found")
        return None

    def set_active(self, user_id: int, active: bool) -> None | Failure:
        """Administrative (de)activation, outside the session lifecycle."""
        updated = self._update(user_id, "set_active", active=active, updated_at=self._clock())
        if isinstance(updated, Failure):
            return updated
        if updated == 0:
            return Failure(ErrorKind.NOT_FOUND, "User not found")
        return None

    def ping(self) -> bool:
        try:
            with self._session() as db:
                db.execute(select(1))
            return True
        except SQLAlchemyError:
            return False
