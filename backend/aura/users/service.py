import re

from fastapi import HTTPException, status
from sqlmodel import Session, select

from ..auth.service import get_password_hash
from ..core.cpf import is_valid_cpf, normalize_cpf
from ..core.errors import AuthError, AuthErrorKind
from ..models.User import User, UserCreate

MIN_PASSWORD_LENGTH = 8

def password_problems(password: str) -> list[str]:
    """
    Return the unmet password rules (empty when the password is acceptable).
    """
    problems = []
    if len(password) < MIN_PASSWORD_LENGTH:
        problems.append(f"at least {MIN_PASSWORD_LENGTH} characters")
    if not re.search(r"[a-z]", password):
        problems.append("one lowercase letter")
    if not re.search(r"[A-Z]", password):
        problems.append("one uppercase letter")
    if not re.search(r"[0-9]", password):
        problems.append("one digit")
    return problems

def create_user(session: Session, user: UserCreate) -> User:
    if not is_valid_cpf(user.cpf):
        raise AuthError(AuthErrorKind.VALIDATION_ERROR, "Invalid CPF")
    if not user.name.strip():
        raise AuthError(AuthErrorKind.VALIDATION_ERROR, "Name is required")

    problems = password_problems(user.password)
    if problems:
        raise AuthError(AuthErrorKind.VALIDATION_ERROR, "Password must contain " + ", ".join(problems))

    cpf = normalize_cpf(user.cpf)
    if session.exec(select(User).where(User.cpf == cpf)).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="CPF already registered")

    db_user = User(
        name=user.name.strip(),
        cpf=cpf,
        password_hash=get_password_hash(user.password),
        role=user.role,
        is_active=True,
    )
    session.add(db_user)
    session.commit()
    session.refresh(db_user)
    return db_user

def get_all_users(session: Session) -> list[User]:
    return list(session.exec(select(User).order_by(User.id)).all())

def deactivate_user(session: Session, user_id: int) -> User:
    db_user = session.get(User, user_id)
    if not db_user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    db_user.is_active = False
    session.add(db_user)
    session.commit()
    session.refresh(db_user)
    return db_user
