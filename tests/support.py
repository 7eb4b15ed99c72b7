from contextlib import contextmanager

from fastapi.testclient import TestClient
from sqlmodel import Session

from aura.auth.service import get_password_hash
from aura.core.settings import Settings
from aura.main import create_app
from aura.models.Role import Role
from aura.models.User import User

TEST_SECRET = "unit-test-secret-0123456789-abcdefghij"
PASSWORD = "Senha1234"

# Valid CPFs (checksums verified)
SECRETARY_CPF = "52998224725"
SERVER_CPF = "11144477735"
BENEFICIARY_CPF = "39053344705"
UNREGISTERED_CPF = "15350946056"


def make_settings(**overrides) -> Settings:
    values = {
        "DATABASE_URL": "sqlite://",
        "JWT_SECRET": TEST_SECRET,
        "ENVIRONMENT": "development",
        "LOG_LEVEL": "WARNING",
        "ADMIN_CPF": None,
        "ADMIN_PASSWORD": None,
        "RATE_LIMIT_STORAGE_URL": None,
        "CORS_ORIGIN": "http://localhost:5173",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@contextmanager
def running_app(**overrides):
    """
    Yield (app, client) with the lifespan started, so tables exist.
    """
    app = create_app(make_settings(**overrides))
    with TestClient(app, raise_server_exceptions=False) as client:
        yield app, client


def add_user(app, cpf: str, role: Role, password: str = PASSWORD, name: str = "Maria Silva", is_active: bool = True) -> int:
    with Session(app.state.engine) as session:
        user = User(name=name, cpf=cpf, password_hash=get_password_hash(password), role=role, is_active=is_active)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user.id


def login(client, cpf: str, password: str = PASSWORD):
    return client.post("/api/auth/login", json={"cpf": cpf, "password": password})


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
