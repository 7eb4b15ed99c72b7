from typing import Annotated
import logging

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from sqlmodel import Session, select

from ..core.cpf import is_valid_cpf, normalize_cpf
from ..core.errors import AuthError, AuthErrorKind
from ..core.settings import settings
from ..models.Role import Role
from ..models.Token import Principal
from ..models.User import User
from .tokens import TokenService

logger = logging.getLogger(__name__)

# Password hashing
pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
    argon2__time_cost=2,
    argon2__memory_cost=102400,
    argon2__parallelism=8
)

# Bearer scheme (for extracting token from header); errors are raised by us
bearer_scheme = HTTPBearer(auto_error=False)

def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password + settings.PASSWORD_PEPPER, hashed_password)

def get_password_hash(password):
    return pwd_context.hash(password + settings.PASSWORD_PEPPER)

def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"

def client_user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")

def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service

def authenticate_user(session: Session, cpf: str, password: str) -> User:
    """
    Resolve CPF + password to an active user.

    Unknown CPF, inactive account and wrong password all raise the same
    INVALID_CREDENTIALS error so callers cannot enumerate registered CPFs.
    Malformed CPFs fail validation before any lookup happens.
    """
    if not is_valid_cpf(cpf):
        raise AuthError(AuthErrorKind.VALIDATION_ERROR, "Invalid CPF")

    statement = select(User).where(User.cpf == normalize_cpf(cpf))
    user = session.exec(statement).first()

    if user is None:
        # Burn the same hashing time as a real check
        pwd_context.dummy_verify()
        raise AuthError(AuthErrorKind.INVALID_CREDENTIALS)
    if not verify_password(password, user.password_hash) or not user.is_active:
        raise AuthError(AuthErrorKind.INVALID_CREDENTIALS)
    return user

async def authenticate(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    token_service: Annotated[TokenService, Depends(get_token_service)],
) -> Principal:
    """
    Verify the bearer token and attach the Principal to the request.
    """
    return verify_bearer(request, credentials, token_service)

def verify_bearer(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
    token_service: TokenService,
) -> Principal:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthError(AuthErrorKind.UNAUTHENTICATED, "Authentication token not provided")

    principal = token_service.verify_access_token(credentials.credentials)
    request.state.principal = principal
    return principal

def authorize(*allowed_roles):
    """
    Build a dependency that admits only principals holding one of the roles.

    Anything that is not a Role member is dropped from the allowed set, so a
    typo in a route declaration denies instead of granting access.
    """
    allowed = frozenset(role for role in map(Role.parse, allowed_roles) if role is not None)

    async def check_role(request: Request, principal: Annotated[Principal | None, Depends(authenticate)]) -> Principal:
        if principal is None:
            raise AuthError(AuthErrorKind.UNAUTHENTICATED)
        if Role.parse(principal.role) not in allowed:
            logger.info(
                "Access denied for user %s (%s) on %s %s",
                principal.subject_id, principal.role, request.method, request.url.path,
            )
            raise AuthError(AuthErrorKind.FORBIDDEN)
        return principal

    check_role.allowed_roles = allowed
    return check_role
