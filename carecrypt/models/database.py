"""Engine, session factory and declarative base shared by all models."""

from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from carecrypt.config import settings


def engine_options(database_url: str, *, echo: bool = False) -> dict[str, Any]:
    """Keyword arguments for ``create_engine`` suited to the backend in the URL."""
    options: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if make_url(database_url).get_backend_name() == "sqlite":
        # FastAPI runs sync endpoints in a threadpool
        options["connect_args"] = {"check_same_thread": False}
    return options


engine = create_engine(
    settings.DATABASE_URL,
    **engine_options(settings.DATABASE_URL, echo=settings.DATABASE_ECHO),
)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


class Base(DeclarativeBase):
    pass


def init_db() -> None:
    """Create any missing tables. Models must be imported first."""
    from carecrypt.models import records  # noqa: F401

    Base.metadata.create_all(bind=engine)


def get_db():
    """FastAPI dependency that yields a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
