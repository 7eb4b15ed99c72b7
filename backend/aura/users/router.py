from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlmodel import Session

from ..audit.service import schedule_event
from ..auth.service import authorize, get_token_service
from ..auth.tokens import TokenService
from ..core.database import get_session
from ..models.Audit import AuditAction
from ..models.Role import Role
from ..models.Token import Principal
from ..models.User import UserCreate, UserResponse
from .service import create_user, deactivate_user, get_all_users

router = APIRouter(prefix="/api/users", tags=["users"])

@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_new_user(
    user: UserCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    current_user: Principal = Depends(authorize(Role.SECRETARY)),
):
    """
    Create a new user (Secretary only).
    """
    db_user = create_user(session, user)
    schedule_event(
        background_tasks, request, current_user.subject_id, AuditAction.CREATE, "users", db_user.id,
        {"role": db_user.role.value},
    )
    return db_user

@router.get("", response_model=list[UserResponse])
def read_users(
    request: Request,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    current_user: Principal = Depends(authorize(Role.SECRETARY, Role.COORDINATOR)),
):
    """
    List all users (Secretary or Coordinator).
    """
    users = get_all_users(session)
    schedule_event(background_tasks, request, current_user.subject_id, AuditAction.READ, "users", details={"count": len(users)})
    return users

@router.post("/{user_id}/deactivate", response_model=UserResponse)
def deactivate_user_endpoint(
    user_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    current_user: Principal = Depends(authorize(Role.SECRETARY)),
    token_service: TokenService = Depends(get_token_service),
):
    """
    Deactivate a user and revoke all of their refresh tokens (Secretary only).
    """
    if user_id == current_user.subject_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot deactivate your own account")

    db_user = deactivate_user(session, user_id)
    revoked = token_service.revoke_all_for_owner(session, user_id)
    schedule_event(
        background_tasks, request, current_user.subject_id, AuditAction.UPDATE, "users", user_id,
        {"is_active": False, "revoked_tokens": revoked},
    )
    return db_user
