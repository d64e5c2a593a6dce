# src/nested_uow/domain/interfaces/entity_manager.py
# Copyright (c) Arche.
# SPDX-License-Identifier: MIT
"""Entity Manager Port.

The narrowed view handed to transactional functions and pre-commit
processors. It deliberately exposes no begin/commit/rollback: nested units of
work go through ``TransactionManager.transactional``.

Layer:
    domain/interfaces
"""

from __future__ import annotations

from typing import Any, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")


@runtime_checkable
class EntityManager(Protocol):
    """Entity operations available inside a transactional scope."""

    def get_locked(self, entity_type: type[T] | Any, entity_id: Any) -> T | None:
        """Return a locked entity (staged for update) or ``None``."""
        raise NotImplementedError

    def persist(self, entity: object) -> None:
        """Stage a new entity for insertion."""
        raise NotImplementedError

    def save(self, entity: object) -> None:
        """Stage an existing entity for update."""
        raise NotImplementedError
