from typing import Annotated
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlmodel import Session

from ..audit.service import record_event, schedule_event
from ..core.database import get_session
from ..core.errors import AuthError, AuthErrorKind
from ..models.Audit import AuditAction
from ..models.Token import LoginResponse, LogoutRequest, Principal, ProfileResponse, RefreshRequest, Token
from ..models.User import LoginRequest, User, UserResponse
from ..security.dependencies import validate_cpf
from .service import authenticate, authenticate_user, bearer_scheme, client_ip, client_user_agent, get_token_service, verify_bearer
from .tokens import TokenService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

@router.post("/login", response_model=LoginResponse, dependencies=[Depends(validate_cpf)])
def login(
    login_data: LoginRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    token_service: TokenService = Depends(get_token_service),
):
    """
    Login with CPF and password to get an access/refresh token pair.
    """
    try:
        user = authenticate_user(session, login_data.cpf, login_data.password)
    except AuthError as exc:
        if exc.kind is AuthErrorKind.INVALID_CREDENTIALS:
            logger.warning("Failed login attempt from %s", client_ip(request))
            record_event(request, None, AuditAction.LOGIN, "auth", details={"outcome": "failure"})
        raise

    access_token = token_service.issue_access_token(user.id, user.role, name=user.name)
    refresh_token = token_service.issue_refresh_token(session, user.id, client_ip(request), client_user_agent(request))

    logger.info("User %s logged in", user.id)
    schedule_event(background_tasks, request, user.id, AuditAction.LOGIN, "auth", user.id, {"outcome": "success"})
    return LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=token_service.access_token_expires_in,
        user=UserResponse.model_validate(user, from_attributes=True),
    )

@router.post("/refresh", response_model=Token)
def refresh(
    refresh_data: RefreshRequest,
    request: Request,
    session: Session = Depends(get_session),
    token_service: TokenService = Depends(get_token_service),
):
    """
    Exchange a refresh token for a new pair. The presented token is consumed.
    """
    try:
        pair = token_service.rotate_refresh_token(
            session, refresh_data.refresh_token, client_ip(request), client_user_agent(request)
        )
    except AuthError as exc:
        logger.warning("Refresh rejected (%s) from %s", exc.kind.name, client_ip(request))
        raise

    return Token(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=token_service.access_token_expires_in,
    )

@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    request: Request,
    background_tasks: BackgroundTasks,
    logout_data: LogoutRequest | None = None,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)] = None,
    session: Session = Depends(get_session),
    token_service: TokenService = Depends(get_token_service),
):
    """
    Revoke the given refresh token. Without one, every refresh token of the
    bearer is revoked.
    """
    if logout_data is not None and logout_data.refresh_token:
        owner_id = token_service.revoke_refresh_token(session, logout_data.refresh_token)
        schedule_event(background_tasks, request, owner_id, AuditAction.LOGOUT, "auth", details={"scope": "token"})
        return Response(status_code=status.HTTP_204_NO_CONTENT, background=background_tasks)

    principal = verify_bearer(request, credentials, token_service)
    revoked = token_service.revoke_all_for_owner(session, principal.subject_id)
    logger.info("Revoked %d refresh token(s) for user %s", revoked, principal.subject_id)
    schedule_event(
        background_tasks, request, principal.subject_id, AuditAction.LOGOUT, "auth",
        details={"scope": "all", "revoked": revoked},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT, background=background_tasks)

@router.get("/profile", response_model=ProfileResponse)
def profile(
    principal: Annotated[Principal, Depends(authenticate)],
    session: Session = Depends(get_session),
):
    """
    Return the authenticated principal and its user record.
    """
    user = session.get(User, principal.subject_id)
    if user is None or not user.is_active:
        raise AuthError(AuthErrorKind.UNAUTHENTICATED, "User no longer exists or is inactive")
    return ProfileResponse(principal=principal, user=UserResponse.model_validate(user, from_attributes=True))
