from datetime import datetime
from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from ..core.clock import utcnow

class RefreshToken(SQLModel, table=True):
    __tablename__ = "refresh_tokens"

    id: int | None = Field(default=None, primary_key=True)
    token_hash: str = Field(unique=True, index=True, description="SHA-256 of the opaque value handed to the client.")
    owner_id: int = Field(index=True, foreign_key="users.id")
    expires_at: datetime = Field(sa_type=DateTime(timezone=True))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    ip_address: str | None = None
    user_agent: str | None = None
    revoked: bool = Field(default=False)
    revoked_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
