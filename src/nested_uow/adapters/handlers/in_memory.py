# src/nested_uow/adapters/handlers/in_memory.py
# Copyright (c) Arche.
# SPDX-License-Identifier: MIT
"""In-memory transaction handler.

Purpose:
    A dict-backed ``TransactionHandler`` for tests, examples and local
    tooling. Committed state is stored as deep copies, so work that is rolled
    back never leaks into the store, and every ``get_locked`` hands out a
    fresh copy the way a database row would be re-materialized.

Features:
    * Primary-key and per-kind unique-field constraints checked at commit,
      raising ``UniquenessViolation``.
    * Call journal (``calls``) for asserting the exact backend interaction.

Layer:
    adapters/handlers
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from typing import Any, TypeVar

from nested_uow.application.identity_map import EntityKey, entity_key
from nested_uow.domain.exceptions.transaction import TransactionError, UniquenessViolation
from nested_uow.domain.interfaces.transaction_handler import TransactionHandler
from nested_uow.infrastructure.logging.logger import get_json_logger

__all__ = ["InMemoryTransactionHandler"]

T = TypeVar("T")

logger = get_json_logger(__name__)


class InMemoryTransactionHandler(TransactionHandler):
    """Dict-backed handler with commit-time uniqueness checks."""

    def __init__(
        self,
        *,
        id_attr: str | Sequence[str] = "id",
        unique_fields: Mapping[type[Any], Sequence[str]] | None = None,
    ) -> None:
        """Initialize an empty store.

        Args:
            id_attr: Attribute holding the entity id, or a sequence of
                attributes forming a composite id.
            unique_fields: Per-kind attributes whose values must be unique
                across committed entities of that kind.
        """
        self._id_attr = id_attr
        self._unique_fields = {kind: tuple(fields) for kind, fields in (unique_fields or {}).items()}
        self._rows: dict[EntityKey, object] = {}
        self._pending: list[object] = []
        self._active = False
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    # ------------------------------------------------------------------
    # Store helpers
    # ------------------------------------------------------------------

    def entity_id(self, entity: object) -> Any:
        """Return the id of ``entity`` according to ``id_attr``."""
        if isinstance(self._id_attr, str):
            return getattr(entity, self._id_attr)
        return tuple(getattr(entity, attr) for attr in self._id_attr)

    def seed(self, *entities: object) -> None:
        """Store ``entities`` as already committed rows."""
        for entity in entities:
            self._rows[self._key(entity)] = copy.deepcopy(entity)

    def rows(self, entity_type: type[T]) -> list[T]:
        """Return copies of the committed rows of ``entity_type``."""
        return [
            copy.deepcopy(row)  # type: ignore[misc]
            for (kind, _, _), row in self._rows.items()
            if kind is entity_type
        ]

    @property
    def active(self) -> bool:
        return self._active

    def _key(self, entity: object) -> EntityKey:
        return entity_key(type(entity), self.entity_id(entity))

    # ------------------------------------------------------------------
    # TransactionHandler
    # ------------------------------------------------------------------

    def begin(self) -> None:
        self.calls.append(("begin", ()))
        if self._active:
            raise TransactionError("In-memory transaction already active")
        self._active = True
        self._pending = []

    def persist(self, entity: object) -> None:
        self.calls.append(("persist", (entity,)))
        self._require_active("persist")
        self._pending.append(entity)

    def detach(self, entity: object) -> None:
        self.calls.append(("detach", (entity,)))
        self._pending = [pending for pending in self._pending if pending is not entity]

    def commit(self, entities: Sequence[object]) -> None:
        """Write inserts and updates, enforcing uniqueness.

        Raises:
            UniquenessViolation: If an insert reuses a committed id or a
                unique field value is taken by another row.
        """
        self.calls.append(("commit", (list(entities),)))
        self._require_active("commit")

        staged = dict(self._rows)
        inserted: set[EntityKey] = set()
        for entity in self._pending:
            key = self._key(entity)
            if key in staged or key in inserted:
                raise UniquenessViolation(
                    f"Duplicate id for {type(entity).__name__}: {key[2]}",
                    details={"kind": type(entity).__name__, "id": key[2]},
                )
            inserted.add(key)
            staged[key] = entity

        for entity in entities:
            staged[self._key(entity)] = entity

        self._check_unique_fields(staged)

        self._rows = {key: copy.deepcopy(entity) for key, entity in staged.items()}
        self._pending = []
        self._active = False
        logger.debug("uow.in_memory.commit", extra={"rows": len(self._rows)})

    def rollback(self) -> None:
        self.calls.append(("rollback", ()))
        self._pending = []
        self._active = False

    def clear(self) -> None:
        self.calls.append(("clear", ()))

    def get_locked(self, entity_type: type[T] | Any, entity_id: Any) -> T | None:
        self.calls.append(("get_locked", (entity_type, entity_id)))
        row = self._rows.get(entity_key(entity_type, entity_id))
        return copy.deepcopy(row) if row is not None else None  # type: ignore[return-value]

    # ------------------------------------------------------------------
    # Journal helpers
    # ------------------------------------------------------------------

    def count(self, operation: str) -> int:
        """Return how many times ``operation`` was called."""
        return sum(1 for name, _ in self.calls if name == operation)

    def arguments(self, operation: str) -> list[Any]:
        """Return the first argument of every ``operation`` call, in order."""
        return [args[0] for name, args in self.calls if name == operation and args]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_active(self, operation: str) -> None:
        if not self._active:
            raise TransactionError(f"{operation}() called without begin()")

    def _check_unique_fields(self, staged: Mapping[EntityKey, object]) -> None:
        for kind, fields in self._unique_fields.items():
            seen: dict[tuple[Any, ...], str] = {}
            for (row_kind, _, row_id), entity in staged.items():
                if row_kind is not kind:
                    continue
                value = tuple(getattr(entity, name) for name in fields)
                other = seen.setdefault(value, row_id)
                if other != row_id:
                    raise UniquenessViolation(
                        f"Duplicate {', '.join(fields)} for {kind.__name__}",
                        details={"kind": kind.__name__, "fields": list(fields)},
                    )
