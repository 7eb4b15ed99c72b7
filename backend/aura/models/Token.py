from datetime import datetime
from sqlmodel import SQLModel

from .Role import Role
from .User import UserResponse

class Principal(SQLModel):
    subject_id: int # User ID
    role: Role
    issued_at: datetime
    expires_at: datetime

class Token(SQLModel):
    access_token: str # JWT Token
    refresh_token: str # Opaque, single use
    token_type: str = "bearer"
    expires_in: int # Access token lifetime in seconds

class LoginResponse(Token):
    user: UserResponse

class RefreshRequest(SQLModel):
    refresh_token: str

class LogoutRequest(SQLModel):
    refresh_token: str | None = None

class ProfileResponse(SQLModel):
    principal: Principal
    user: UserResponse
