"""Test configuration and fixtures."""

import os
import tempfile
from collections.abc import Callable

# Settings are cached on first use, so point them at throwaway locations first.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOGS_DIR", tempfile.mkdtemp(prefix="reflect-logs-"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from reflect.core.db import Base, get_db_session
from reflect.core.deps import get_current_user
from reflect.main import app
from reflect.models import schema  # noqa: F401
from reflect.models.user import User


class FakeRunner:
    """Stands in for ``run_text_prompt``: returns canned outputs and records prompts."""

    def __init__(self, *outputs: str | Exception) -> None:
        self.outputs = list(outputs)
        self.calls: list[tuple[str, str, str]] = []

    def __call__(self, model_spec: str, system_prompt: str, prompt: str) -> str:
        self.calls.append((model_spec, system_prompt, prompt))
        if not self.outputs:
            raise AssertionError("FakeRunner called more times than expected")
        output = self.outputs.pop(0)
        if isinstance(output, Exception):
            raise output
        return output

    @property
    def last_prompt(self) -> str:
        return self.calls[-1][2]


@pytest.fixture
def fake_runner() -> Callable[..., FakeRunner]:
    return FakeRunner


@pytest.fixture
def test_db():
    """Create a test database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(test_db):
    """Create a test database session."""
    TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_db)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def test_user(db_session) -> User:
    user = User(email="writer@example.com", full_name="Test Writer", is_active=True)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def other_user(db_session) -> User:
    user = User(email="other@example.com", full_name="Other Writer", is_active=True)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def client(db_session, test_user):
    """Create a test client with database and auth overrides."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    def override_get_current_user():
        return test_user

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
