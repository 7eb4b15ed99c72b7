from datetime import datetime
from enum import Enum
from typing import Optional
from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel
import hashlib

from ..core.clock import as_naive_utc, utcnow

GENESIS_HASH = "0" * 64

class AuditAction(str, Enum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"

class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    timestamp: datetime = Field(default_factory=lambda: utcnow().replace(microsecond=0), index=True, sa_type=DateTime(timezone=True))
    actor_id: Optional[int] = Field(default=None, index=True)  # None for unauthenticated actions
    action: AuditAction = Field(index=True)
    resource: str = Field(index=True)
    resource_id: Optional[int] = None
    details: Optional[str] = None  # JSON dump
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    previous_hash: str = Field(unique=True)
    current_hash: str

    def calculate_hash(self) -> str:
        """
        SHA-256 over previous_hash and every recorded field, so editing or
        removing a stored row breaks the chain from that point on.
        """
        # Naive UTC isoformat: SQLite reads the timestamp back without tzinfo
        ts_str = as_naive_utc(self.timestamp).isoformat()
        action = self.action.value if isinstance(self.action, AuditAction) else str(self.action)

        data = "|".join([
            self.previous_hash,
            ts_str,
            "" if self.actor_id is None else str(self.actor_id),
            action,
            self.resource,
            "" if self.resource_id is None else str(self.resource_id),
            self.details or "",
            self.ip_address or "",
            self.user_agent or "",
        ])
        return hashlib.sha256(data.encode("utf-8")).hexdigest()

class AuditLogResponse(SQLModel):
    id: int
    timestamp: datetime
    actor_id: Optional[int]
    action: AuditAction
    resource: str
    resource_id: Optional[int]
    details: Optional[str]
    ip_address: Optional[str]
    user_agent: Optional[str]

class AuditChainStatus(SQLModel):
    valid: bool
    entries: int
    first_broken_id: Optional[int] = None
