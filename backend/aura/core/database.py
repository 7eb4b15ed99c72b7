from pathlib import Path

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

def create_db_engine(database_url: str) -> Engine:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(database_url, pool_pre_ping=True)

    # check_same_thread=False is needed only for SQLite
    connect_args = {"check_same_thread": False}
    if url.database in (None, "", ":memory:"):
        # One shared connection, otherwise every session sees an empty database
        return create_engine(database_url, connect_args=connect_args, poolclass=StaticPool)

    Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, connect_args=connect_args)

def create_db_and_tables(engine: Engine):
    # Import models to register them with SQLModel
    from ..models.User import User  # noqa: F401
    from ..models.RefreshToken import RefreshToken  # noqa: F401
    from ..models.Audit import AuditLog  # noqa: F401

    SQLModel.metadata.create_all(engine)

def get_session(request: Request):
    with Session(request.app.state.engine) as session:
        yield session
