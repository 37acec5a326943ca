"""Database engine and session management."""

from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import get_settings

Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    # signal rows rely on ON DELETE CASCADE, which SQLite ignores by default
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str, *, echo: bool = False, **engine_args: Any) -> Engine:
    """Create an engine; SQLite connections get thread sharing and foreign keys."""

    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        engine_args.setdefault("connect_args", {"check_same_thread": False})

    db_engine = create_engine(database_url, echo=echo, future=True, **engine_args)
    if is_sqlite:
        event.listen(db_engine, "connect", _enable_sqlite_foreign_keys)
    return db_engine


def build_sessionmaker(db_engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=db_engine, autoflush=False, autocommit=False, expire_on_commit=False)


settings = get_settings()
engine = create_db_engine(settings.database_url, echo=settings.sql_echo)
SessionLocal = build_sessionmaker(engine)


def get_db_session() -> Generator[Session, None, None]:
    """Yield a request-scoped database session."""

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def init_db(db_engine: Engine | None = None) -> None:
    """Create project, check-in, feedback and risk tables."""

    from . import models  # noqa: F401

    Base.metadata.create_all(bind=db_engine or engine)
