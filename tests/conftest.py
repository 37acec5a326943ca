"""Shared fixtures: in-memory database, test client and a controllable clock."""

from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
import os

os.environ.setdefault("PROJECT_HEALTH_DATABASE_URL", "sqlite://")

from fastapi.testclient import TestClient  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from project_health.db import Base, build_sessionmaker, create_db_engine, get_db_session, init_db  # noqa: E402
from project_health.main import app  # noqa: E402
from project_health.observability import get_metrics  # noqa: E402

AS_OF = datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that tests move explicitly."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


@pytest.fixture(autouse=True)
def reset_metrics() -> None:
    get_metrics().reset()


@contextmanager
def _build_engine():
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db_engine():
    with _build_engine() as engine:
        yield engine


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    testing_session_local = build_sessionmaker(db_engine)
    db_session = testing_session_local()
    try:
        yield db_session
    finally:
        db_session.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(AS_OF)


@pytest.fixture
def client(db_engine) -> Generator[TestClient, None, None]:
    testing_session_local = build_sessionmaker(db_engine)

    def override_get_db() -> Generator[Session, None, None]:
        db_session = testing_session_local()
        try:
            yield db_session
        finally:
            db_session.close()

    app.dependency_overrides[get_db_session] = override_get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
