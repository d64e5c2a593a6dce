# tests/unit/infrastructure/test_json_logger.py
from __future__ import annotations

import json
import logging
import sys

import pytest

from nested_uow.infrastructure.logging.logger import (
    _JsonFormatter,  # internal but importable
    configure_root_logging,
    get_json_logger,
)


def _render(msg: str, level: int = logging.DEBUG, **extra: object) -> dict:
    """Format a record carrying ``extra`` attributes and parse the JSON."""
    logger = logging.getLogger("test.nested_uow")
    record = logger.makeRecord(
        name=logger.name,
        level=level,
        fn="test_json_logger",
        lno=1,
        msg=msg,
        args=(),
        exc_info=None,
        extra=extra or None,
    )
    return json.loads(_JsonFormatter().format(record))


def test_stable_keys() -> None:
    payload = _render("uow.scope.begin")

    assert payload["message"] == "uow.scope.begin"
    assert payload["level"] == "DEBUG"
    assert payload["logger"] == "test.nested_uow"
    assert "ts" in payload


def test_host_environment_does_not_leak_into_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REQUEST_ID", "from-host")

    payload = _render("uow.scope.begin")

    assert set(payload) == {"ts", "level", "logger", "message"}


def test_extra_fields_are_merged() -> None:
    payload = _render("uow.commit.flush", persisted=2, entities=3)

    assert payload["persisted"] == 2
    assert payload["entities"] == 3
    assert "lineno" not in payload
    assert "args" not in payload


def test_non_json_extra_values_are_stringified() -> None:
    payload = _render("uow.identity_map.absent", entity_key=("a", 1), kind=int)

    assert payload["entity_key"] == ["a", 1]
    assert payload["kind"] == str(int)


def test_exception_info_is_rendered() -> None:
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.getLogger("test.nested_uow").makeRecord(
            "test.nested_uow", logging.ERROR, "f", 1, "uow.commit.failed", (), sys.exc_info()
        )

    payload = json.loads(_JsonFormatter().format(record))
    assert payload["exc_type"] == "ValueError"
    assert payload["exc_message"] == "boom"


def test_configure_root_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    monkeypatch.setenv("LOG_LEVEL", "warning")
    root.handlers = []
    try:
        configure_root_logging()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, _JsonFormatter)

        configure_root_logging("debug")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
    finally:
        root.handlers = saved_handlers
        root.setLevel(saved_level)


def test_get_json_logger_propagates() -> None:
    logger = get_json_logger("nested_uow.test")
    assert logger.name == "nested_uow.test"
    assert logger.propagate is True
