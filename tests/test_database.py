"""Tests for engine configuration and settings parsing."""

from carecrypt.config import Settings, _flag
from carecrypt.models.database import engine_options


def test_sqlite_engine_allows_cross_thread_use():
    options = engine_options("sqlite:///./carecrypt.db", echo=True)

    assert options["connect_args"] == {"check_same_thread": False}
    assert options["echo"] is True
    assert options["pool_pre_ping"] is True


def test_postgres_engine_has_no_sqlite_arguments():
    options = engine_options("postgresql://carecrypt:carecrypt@db:5432/carecrypt")

    assert "connect_args" not in options
    assert options["echo"] is False


def test_boolean_flags(monkeypatch):
    for raw in ["1", "true", "YES", " on "]:
        monkeypatch.setenv("CARECRYPT_TEST_FLAG", raw)
        assert _flag("CARECRYPT_TEST_FLAG") is True

    monkeypatch.setenv("CARECRYPT_TEST_FLAG", "off")
    assert _flag("CARECRYPT_TEST_FLAG") is False

    monkeypatch.delenv("CARECRYPT_TEST_FLAG")
    assert _flag("CARECRYPT_TEST_FLAG") is False


def test_is_production(monkeypatch):
    config = Settings()

    monkeypatch.setattr(config, "ENVIRONMENT", "production")
    assert config.is_production

    monkeypatch.setattr(config, "ENVIRONMENT", "development")
    assert not config.is_production
