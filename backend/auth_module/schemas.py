import re
from datetime import datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from .models import UserRole


EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
PASSWORD_MIN_LENGTH = 6
# bcrypt only looks at the first 72 bytes.
PASSWORD_MAX_BYTES = 72


def _check_email(value: str) -> str:
    normalized = value.strip().lower()
    if not EMAIL_PATTERN.match(normalized):
        raise ValueError("Please provide a valid email")
    return normalized


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes")
    return value


def _check_not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value.strip()


Email = Annotated[str, Field(max_length=255), AfterValidator(_check_email)]
NewPassword = Annotated[str, Field(min_length=PASSWORD_MIN_LENGTH), AfterValidator(_check_password_bytes)]
Name = Annotated[str, Field(min_length=1, max_length=100), AfterValidator(_check_not_blank)]


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RegisterRequest(CamelModel):
    email: Email
    password: NewPassword
    first_name: Name = Field(alias="firstName")
    last_name: Name = Field(alias="lastName")
    role: UserRole
    phone: str | None = Field(default=None, max_length=50)


class LoginRequest(CamelModel):
    email: Email
    password: str = Field(min_length=1)


class RefreshTokenRequest(CamelModel):
    refresh_token: str = Field(alias="refreshToken", min_length=1)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(alias="currentPassword", min_length=1)
    new_password: NewPassword = Field(alias="newPassword")


class UserSummary(CamelModel):
    id: int
    email: str
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    role: UserRole


class UserDetail(UserSummary):
    phone: str | None = None
    last_login: datetime | None = Field(default=None, alias="lastLogin")
    created_at: datetime = Field(alias="createdAt")
    role_details: dict[str, Any] | None = Field(default=None, alias="roleDetails")


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class LoginResponse(CamelModel):
    success: bool = True
    token: str
    refresh_token: str = Field(alias="refreshToken")
    user: UserSummary


class TokenResponse(CamelModel):
    success: bool = True
    token: str


class MeResponse(CamelModel):
    success: bool = True
    user: UserDetail
