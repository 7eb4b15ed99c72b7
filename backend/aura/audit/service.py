from datetime import datetime
from typing import Any, Optional
import json
import logging
import threading

from fastapi import BackgroundTasks, Request
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..core.clock import as_aware_utc, utcnow
from ..models.Audit import AuditAction, AuditChainStatus, AuditLog, GENESIS_HASH

logger = logging.getLogger(__name__)

MAX_AUDIT_ROWS = 1000

# Serialises appends within this process
_chain_lock = threading.Lock()

APPEND_ATTEMPTS = 5

def log_event(
    db: Session,
    actor_id: Optional[int],
    action: AuditAction,
    resource: str,
    resource_id: Optional[int] = None,
    details: Optional[dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuditLog:
    """
    Appends a new event to the AuditLog chain.

    previous_hash is unique, so an append that raced another process onto the
    same head fails on commit; it is then rebuilt on the new head.
    """
    with _chain_lock:
        for attempt in range(1, APPEND_ATTEMPTS + 1):
            last_entry = db.exec(select(AuditLog).order_by(AuditLog.id.desc())).first()

            # Determine previous_hash
            previous_hash = last_entry.current_hash if last_entry else GENESIS_HASH

            new_log = AuditLog(
                actor_id=actor_id,
                action=action,
                resource=resource,
                resource_id=resource_id,
                details=json.dumps(details, default=str, sort_keys=True) if details else None,
                ip_address=ip_address,
                user_agent=user_agent,
                previous_hash=previous_hash,
                current_hash="", # Placeholder, will be calculated
                timestamp=utcnow().replace(microsecond=0)
            )
            new_log.current_hash = new_log.calculate_hash()

            db.add(new_log)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                if attempt == APPEND_ATTEMPTS:
                    raise
                logger.info("Audit chain head moved during append; retrying (attempt %d)", attempt)
                continue
            db.refresh(new_log)
            return new_log

def _write_event(engine: Engine, **event) -> None:
    # Best effort: failures are logged, never raised to the caller
    try:
        with Session(engine) as db:
            log_event(db, **event)
    except Exception:
        logger.exception("Failed to record audit event %s %s", event.get("action"), event.get("resource"))

def _request_context(request: Request) -> dict[str, Optional[str]]:
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }

def schedule_event(
    background_tasks: BackgroundTasks,
    request: Request,
    actor_id: Optional[int],
    action: AuditAction,
    resource: str,
    resource_id: Optional[int] = None,
    details: Optional[dict[str, Any]] = None,
) -> None:
    """
    Queue an audit event to be written once the response has been sent.
    """
    background_tasks.add_task(
        _write_event,
        request.app.state.engine,
        actor_id=actor_id,
        action=action,
        resource=resource,
        resource_id=resource_id,
        details=details,
        **_request_context(request),
    )

def record_event(
    request: Request,
    actor_id: Optional[int],
    action: AuditAction,
    resource: str,
    resource_id: Optional[int] = None,
    details: Optional[dict[str, Any]] = None,
) -> None:
    """
    Write an audit event immediately, for paths that end in an error
    response (background tasks only run after a successful response).
    """
    _write_event(
        request.app.state.engine,
        actor_id=actor_id,
        action=action,
        resource=resource,
        resource_id=resource_id,
        details=details,
        **_request_context(request),
    )

def list_events(
    db: Session,
    actor_id: Optional[int] = None,
    action: Optional[AuditAction] = None,
    resource: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: int = MAX_AUDIT_ROWS,
) -> list[AuditLog]:
    statement = select(AuditLog)
    if actor_id is not None:
        statement = statement.where(AuditLog.actor_id == actor_id)
    if action is not None:
        statement = statement.where(AuditLog.action == action)
    if resource:
        statement = statement.where(AuditLog.resource == resource)
    if date_from is not None:
        statement = statement.where(AuditLog.timestamp >= as_aware_utc(date_from))
    if date_to is not None:
        statement = statement.where(AuditLog.timestamp <= as_aware_utc(date_to))

    statement = statement.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(min(limit, MAX_AUDIT_ROWS))
    return list(db.exec(statement).all())

def verify_chain(db: Session) -> AuditChainStatus:
    """
    Walk the chain in insertion order, recomputing every hash.
    """
    previous_hash = GENESIS_HASH
    entries = 0
    for entry in db.exec(select(AuditLog).order_by(AuditLog.id.asc())):
        entries += 1
        if entry.previous_hash != previous_hash or entry.calculate_hash() != entry.current_hash:
            return AuditChainStatus(valid=False, entries=entries, first_broken_id=entry.id)
        previous_hash = entry.current_hash
    return AuditChainStatus(valid=True, entries=entries)
