from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from ..auth.service import authorize
from ..core.database import get_session
from ..models.Audit import AuditAction, AuditChainStatus, AuditLogResponse
from ..models.Role import Role
from ..models.Token import Principal
from .service import MAX_AUDIT_ROWS, list_events, verify_chain

router = APIRouter(
    prefix="/api/audit-logs",
    tags=["audit"],
)

audit_readers = authorize(Role.SECRETARY, Role.COORDINATOR)

@router.get("", response_model=List[AuditLogResponse])
def get_audit_logs(
    actor_id: Optional[int] = None,
    action: Optional[AuditAction] = None,
    resource: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: int = Query(default=MAX_AUDIT_ROWS, ge=1, le=MAX_AUDIT_ROWS),
    session: Session = Depends(get_session),
    current_user: Principal = Depends(audit_readers),
):
    return list_events(session, actor_id, action, resource, date_from, date_to, limit)

@router.get("/verify", response_model=AuditChainStatus)
def verify_audit_chain(
    session: Session = Depends(get_session),
    current_user: Principal = Depends(audit_readers),
):
    return verify_chain(session)
