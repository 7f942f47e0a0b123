import logging

from fastapi import APIRouter, Depends, Request, status

from .errors import Failure, raise_for_failure
from .middleware import Identity, get_current_identity
from .schemas import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    RefreshTokenRequest,
    RegisterRequest,
    TokenResponse,
    UserDetail,
    UserSummary,
)
from .services import SessionLifecycle
from .store import UserRecord


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def get_lifecycle(request: Request) -> SessionLifecycle:
    return request.app.state.auth.lifecycle


def _summary(user: UserRecord) -> UserSummary:
    return UserSummary(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        role=user.role,
    )


@router.post("/register", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, lifecycle: SessionLifecycle = Depends(get_lifecycle)):
    result = lifecycle.register(
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        role=payload.role,
        phone=payload.phone,
    )
    if isinstance(result, Failure):
        raise_for_failure(result)
    return MessageResponse(message="User registered successfully")


@router.post("/login", response_model=LoginResponse)
def login(payload: LoginRequest, lifecycle: SessionLifecycle = Depends(get_lifecycle)):
    result = lifecycle.login(email=payload.email, password=payload.password)
    if isinstance(result, Failure):
        raise_for_failure(result)
    return LoginResponse(token=result.access_token, refresh_token=result.refresh_token, user=_summary(result.user))


@router.get("/me", response_model=MeResponse)
def me(
    identity: Identity = Depends(get_current_identity),
    lifecycle: SessionLifecycle = Depends(get_lifecycle),
):
    result = lifecycle.get_profile(identity.user_id)
    if isinstance(result, Failure):
        raise_for_failure(result)
    user = result.user
    return MeResponse(
        user=UserDetail(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            phone=user.phone,
            role=user.role,
            last_login=user.last_login,
            created_at=user.created_at,
            role_details=result.role_details,
        )
    )


@router.post("/refresh-token", response_model=TokenResponse)
def refresh_token(payload: RefreshTokenRequest, lifecycle: SessionLifecycle = Depends(get_lifecycle)):
    result = lifecycle.refresh_access_token(payload.refresh_token)
    if isinstance(result, Failure):
        raise_for_failure(result)
    return TokenResponse(token=result)


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    payload: ChangePasswordRequest,
    identity: Identity = Depends(get_current_identity),
    lifecycle: SessionLifecycle = Depends(get_lifecycle),
):
    result = lifecycle.change_password(
        user_id=identity.user_id,
        current_password=payload.current_password,
        new_password=payload.new_password,
    )
    if isinstance(result, Failure):
        raise_for_failure(result)
    return MessageResponse(message="Password changed successfully")


@router.post("/logout", response_model=MessageResponse)
def logout(identity: Identity = Depends(get_current_identity)):
    # Tokens are not tracked server side; the client discards them.
    logger.info(f"Logout for user {identity.user_id}")
    return MessageResponse(message="Logged out successfully")
