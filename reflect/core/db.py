from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from reflect.core.logging import get_logger
from reflect.core.settings import get_settings

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


# Global engine instance
_engine: Engine | None = None
_SessionLocal: sessionmaker[Session] | None = None


def init_db() -> None:
    """Initialize database engine and session factory."""
    global _engine, _SessionLocal

    if _engine is not None:
        return

    settings = get_settings()
    database_url = str(settings.database_url)

    engine_kwargs: dict[str, Any] = {
        "pool_pre_ping": True,  # Verify connections before using
        "echo": settings.debug,  # Log SQL in debug mode
    }
    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        engine_kwargs["pool_size"] = settings.database_pool_size
        engine_kwargs["max_overflow"] = settings.database_max_overflow

    _engine = create_engine(database_url, **engine_kwargs)
    _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)

    # Import models so their tables are registered before create_all
    from reflect.models import schema  # noqa: F401

    Base.metadata.create_all(bind=_engine)
    logger.info("Database initialized successfully")


def get_session_factory() -> sessionmaker[Session]:
    """Get the session factory, initializing if necessary."""
    if _SessionLocal is None:
        init_db()
    assert _SessionLocal is not None
    return _SessionLocal


def get_db_session() -> Generator[Session, None, None]:
    """Yield a database session for FastAPI dependency injection."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()
