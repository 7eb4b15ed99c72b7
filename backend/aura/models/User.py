from datetime import datetime
from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from .Role import Role
from ..core.clock import utcnow

# ==========================================
# SQLModel (Database Entity + Base Pydantic)
# ==========================================
class User(SQLModel, table=True):
    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(nullable=False)
    cpf: str = Field(unique=True, index=True, nullable=False, max_length=11)
    password_hash: str = Field(nullable=False)
    role: Role = Field(nullable=False)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

# ==========================================
# Pydantic Models (DTOs)
# ==========================================

# Properties to receive via API on creation (Secretary)
class UserCreate(SQLModel):
    name: str
    cpf: str
    password: str
    role: Role

# Properties to receive via API on login
class LoginRequest(SQLModel):
    cpf: str
    password: str

# Properties to return via API
class UserResponse(SQLModel):
    id: int
    name: str
    cpf: str
    role: Role
    is_active: bool = True
