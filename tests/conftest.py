"""Shared fixtures – in-memory SQLite and fixed encryption keys, no services required."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from carecrypt.config import settings
from carecrypt.models import records as _models  # noqa: F401  registers tables
from carecrypt.models.database import Base
from carecrypt.services.encryption import (
    CipherConfig,
    EncryptionService,
    reset_encryption_service,
)

TEST_KEY = "12345678901234567890123456789012"


@pytest.fixture(autouse=True)
def default_key(monkeypatch):
    """Point the process-wide service at a known valid key for every test."""
    monkeypatch.setattr(settings, "ENCRYPTION_KEY", TEST_KEY)
    reset_encryption_service()
    yield TEST_KEY
    reset_encryption_service()


@pytest.fixture
def service():
    return EncryptionService(CipherConfig.from_key(TEST_KEY))


@pytest.fixture
def disabled_service():
    """Service with a 10-byte key – every operation is a no-op."""
    return EncryptionService(CipherConfig.from_key("short-key!"))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
