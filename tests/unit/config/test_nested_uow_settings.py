# tests/unit/config/test_nested_uow_settings.py
from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from nested_uow.application.transaction_manager import TransactionManager
from nested_uow.config.settings import Settings, get_settings

_ENV_KEYS = (
    "NESTED_UOW_DATABASE_URL",
    "NESTED_UOW_METRICS_ENABLED",
    "NESTED_UOW_SQLALCHEMY_ECHO",
    "NESTED_UOW_FLUSH_ON_PERSIST",
    "NESTED_UOW_LOCK_READS",
)


class _NullHandler:
    def begin(self) -> None:
        pass

    def persist(self, entity: object) -> None:
        pass

    def detach(self, entity: object) -> None:
        pass

    def commit(self, entities: object) -> None:
        pass

    def rollback(self) -> None:
        pass

    def clear(self) -> None:
        pass

    def get_locked(self, entity_type: object, entity_id: object) -> object | None:
        return None


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    # Keep a developer's own .env out of these tests.
    monkeypatch.chdir(tmp_path)


def test_defaults() -> None:
    s = Settings()

    assert s.metrics_enabled is True
    assert s.database_url is None
    assert s.sqlalchemy_echo is False
    assert s.flush_on_persist is False
    assert s.lock_reads is True


def test_env_aliases(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NESTED_UOW_DATABASE_URL", "postgresql+psycopg://u:p@db:5432/app")
    monkeypatch.setenv("NESTED_UOW_METRICS_ENABLED", "false")
    monkeypatch.setenv("NESTED_UOW_FLUSH_ON_PERSIST", "1")
    monkeypatch.setenv("NESTED_UOW_LOCK_READS", "false")

    s = Settings()

    assert s.database_url == "postgresql+psycopg://u:p@db:5432/app"
    assert s.metrics_enabled is False
    assert s.flush_on_persist is True
    assert s.lock_reads is False


def test_host_variables_are_not_read(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "prod")
    monkeypatch.setenv("LOG_LEVEL", "chatty")
    monkeypatch.setenv("DATABASE_URL", "not a url")

    s = Settings()

    assert s.database_url is None
    assert TransactionManager(_NullHandler()).transactional(lambda em: "ok") == "ok"


def test_foreign_dotenv_keys_are_ignored(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text(
        "APP_SECRET=abc\nENVIRONMENT=prod\nNESTED_UOW_LOCK_READS=false\n",
        encoding="utf-8",
    )

    s = get_settings()

    assert s.lock_reads is False


def test_blank_database_url_is_treated_as_unset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NESTED_UOW_DATABASE_URL", "   ")
    assert Settings().database_url is None


def test_database_url_without_scheme_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(database_url="localhost/app")


def test_get_settings_is_cached() -> None:
    assert get_settings() is get_settings()


def test_get_settings_wraps_validation_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NESTED_UOW_METRICS_ENABLED", "sometimes")

    with pytest.raises(RuntimeError, match="Invalid configuration"):
        get_settings()
