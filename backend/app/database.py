from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.config import get_settings

settings = get_settings()


def _engine_options() -> dict[str, Any]:
    if settings.is_sqlite:
        # Handlers run both on the event loop and in the threadpool.
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_size": 10, "max_overflow": 20, "pool_pre_ping": True}


engine = create_engine(settings.database_url, echo=settings.debug, future=True, **_engine_options())
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_session() -> Iterator[Session]:
    """Context manager for short-lived database sessions.

    Used by the websocket endpoint and the realtime membership resolver,
    which must not hold a connection for the lifetime of a socket.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create any missing tables when auto-creation is enabled."""

    if not settings.database_auto_create:
        return

    from app.models import Base

    Base.metadata.create_all(bind=engine)
