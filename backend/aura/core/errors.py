from enum import Enum
import logging
import traceback

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AuthErrorKind(Enum):
    # (HTTP status, default message)
    TOKEN_EXPIRED = (status.HTTP_401_UNAUTHORIZED, "Token has expired")
    TOKEN_INVALID = (status.HTTP_401_UNAUTHORIZED, "Invalid token")
    TOKEN_NOT_FOUND = (status.HTTP_401_UNAUTHORIZED, "Refresh token not found")
    TOKEN_REVOKED = (status.HTTP_401_UNAUTHORIZED, "Refresh token has been revoked")
    UNAUTHENTICATED = (status.HTTP_401_UNAUTHORIZED, "Not authenticated")
    FORBIDDEN = (status.HTTP_403_FORBIDDEN, "You do not have permission to access this resource")
    RATE_LIMITED = (status.HTTP_429_TOO_MANY_REQUESTS, "Too many requests, please try again later")
    CSRF_REJECTED = (status.HTTP_403_FORBIDDEN, "CSRF validation failed: request origin not allowed")
    INVALID_CREDENTIALS = (status.HTTP_401_UNAUTHORIZED, "Invalid credentials")
    VALIDATION_ERROR = (status.HTTP_400_BAD_REQUEST, "Invalid request data")
    REQUEST_TIMEOUT = (status.HTTP_408_REQUEST_TIMEOUT, "The request took too long to process")

    @property
    def status_code(self) -> int:
        return self.value[0]

    @property
    def default_message(self) -> str:
        return self.value[1]


class AuthError(Exception):
    """
    Recoverable security failure with a stable machine-readable code.
    Callers branch on `kind`, never on the message.
    """

    def __init__(self, kind: AuthErrorKind, message: str | None = None, headers: dict[str, str] | None = None):
        self.kind = kind
        self.message = message or kind.default_message
        self.headers = headers
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return self.kind.status_code


def error_body(kind: AuthErrorKind, message: str | None = None) -> dict:
    return {"code": kind.name, "detail": message or kind.default_message}


def error_response(kind: AuthErrorKind, message: str | None = None, headers: dict[str, str] | None = None) -> JSONResponse:
    headers = dict(headers or {})
    if kind.status_code == status.HTTP_401_UNAUTHORIZED:
        headers.setdefault("WWW-Authenticate", "Bearer")
    return JSONResponse(status_code=kind.status_code, content=error_body(kind, message), headers=headers)


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    return error_response(exc.kind, exc.message, exc.headers)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    principal = getattr(request.state, "principal", None)
    logger.error(
        "Unhandled error on %s %s (user_id=%s)",
        request.method,
        request.url.path,
        principal.subject_id if principal else None,
        exc_info=exc,
    )

    # Internals are only exposed outside production
    if request.app.state.settings.is_production:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"code": "INTERNAL_ERROR", "detail": "Internal server error"},
        )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "detail": str(exc),
            "stack": traceback.format_exception(type(exc), exc, exc.__traceback__),
        },
    )
