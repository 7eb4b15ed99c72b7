import logging

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from .cpf import is_valid_cpf, normalize_cpf
from .settings import Settings
from ..models.Role import Role
from ..models.User import User
from ..auth.service import get_password_hash

logger = logging.getLogger(__name__)

def init_db(engine: Engine, settings: Settings):
    """
    Seed the initial secretary from ADMIN_CPF / ADMIN_PASSWORD when configured.
    """
    if not settings.ADMIN_CPF or not settings.ADMIN_PASSWORD:
        logger.info("ADMIN_CPF/ADMIN_PASSWORD not set; skipping initial secretary seeding")
        return
    if not is_valid_cpf(settings.ADMIN_CPF):
        logger.error("ADMIN_CPF is not a valid CPF; skipping initial secretary seeding")
        return

    cpf = normalize_cpf(settings.ADMIN_CPF)
    with Session(engine) as session:
        statement = select(User).where(User.cpf == cpf)
        user = session.exec(statement).first()

        if user:
            logger.info("Initial secretary already exists (id=%s)", user.id)
            return

        admin_user = User(
            name=settings.ADMIN_NAME,
            cpf=cpf,
            password_hash=get_password_hash(settings.ADMIN_PASSWORD),
            role=Role.SECRETARY,
            is_active=True,
        )
        session.add(admin_user)
        session.commit()
        session.refresh(admin_user)
        logger.info("Initial secretary created (id=%s)", admin_user.id)
