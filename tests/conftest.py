# tests/conftest.py
from __future__ import annotations

from collections.abc import Generator

import pytest

from nested_uow.config.settings import Settings, get_settings


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> Generator[None, None, None]:
    """Make every test resolve Settings from its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings with metrics enabled and no database configured."""
    return Settings(metrics_enabled=True, database_url=None)
