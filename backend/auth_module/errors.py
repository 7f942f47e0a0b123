import enum
import logging
import traceback
from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings


logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation_error"
    CONFLICT = "conflict"
    AUTHENTICATION = "authentication_error"
    AUTHORIZATION = "authorization_error"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"
    INTERNAL = "internal"


STATUS_BY_KIND = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFLICT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.AUTHENTICATION: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.AUTHORIZATION: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@dataclass(frozen=True)
class Failure:
    """``detail`` is internal context, only rendered in development."""

    kind: ErrorKind
    message: str
    detail: str | None = None

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]


class FailureResponse(HTTPException):
    """HTTPException carrying the originating Failure."""

    def __init__(self, failure: Failure):
        super().__init__(status_code=failure.status_code, detail=failure.message)
        self.failure = failure


def raise_for_failure(failure: Failure) -> None:
    raise FailureResponse(failure)


def _kind_for_status(status_code: int) -> ErrorKind:
    for kind, mapped in STATUS_BY_KIND.items():
        if mapped == status_code:
            return kind
    return ErrorKind.INTERNAL if status_code >= 500 else ErrorKind.VALIDATION


def _body(message: str, kind: ErrorKind, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "message": message, "code": kind.value}
    body.update({key: value for key, value in extra.items() if value is not None})
    return body


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        failure = getattr(exc, "failure", None)
        kind = failure.kind if failure else _kind_for_status(exc.status_code)
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(f"{request.method} {request.url.path} -> {exc.status_code} ({kind.value})")

        detail = None
        if failure is not None and failure.detail and settings.is_development and exc.status_code >= 500:
            detail = failure.detail
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return JSONResponse(
            status_code=exc.status_code,
            content=_body(message, kind, stack=detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        details = [
            {"field": ".".join(str(part) for part in error["loc"] if part != "body"), "message": error["msg"]}
            for error in exc.errors()
        ]
        logger.warning(f"{request.method} {request.url.path} -> 400 (validation_error)")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_body("Validation Error", ErrorKind.VALIDATION, details=details),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        stack = "".join(traceback.format_exception(exc)) if settings.is_development else None
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_body("Internal Server Error", ErrorKind.INTERNAL, stack=stack),
        )
