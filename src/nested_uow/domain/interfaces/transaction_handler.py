# src/nested_uow/domain/interfaces/transaction_handler.py
# Copyright (c) Arche.
# SPDX-License-Identifier: MIT
"""Transaction Handler Port.

Purpose:
    Define the contract of the persistence backend that the nested
    transaction coordinator drives. The coordinator guarantees that a handler
    only ever sees one physical begin/commit/rollback cycle per outermost
    scope, together with the consolidated set of touched entities.

Layer:
    domain/interfaces

Notes:
    Implementations live in adapters/ and satisfy this Protocol via
    structural typing.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")


@runtime_checkable
class TransactionHandler(Protocol):
    """Backend-facing unit-of-work contract."""

    def begin(self) -> None:
        """Start one physical unit of work (once per outermost scope)."""
        raise NotImplementedError

    def persist(self, entity: object) -> None:
        """Register a new entity for insertion.

        Called between ``begin`` and ``commit``, once per inserted entity, in
        staging order.
        """
        raise NotImplementedError

    def detach(self, entity: object) -> None:
        """Release backend-side tracking of an entity discarded by a rollback."""
        raise NotImplementedError

    def commit(self, entities: Sequence[object]) -> None:
        """Finalize the unit of work.

        Args:
            entities: Aggregated list of every inserted, saved or locked entity.

        Raises:
            UniquenessViolation: If a uniqueness constraint rejects the commit.
        """
        raise NotImplementedError

    def rollback(self) -> None:
        """Abort the unit of work (once per failing outermost scope)."""
        raise NotImplementedError

    def clear(self) -> None:
        """Reset any handler-side cache. Callable at any time."""
        raise NotImplementedError

    def get_locked(self, entity_type: type[T] | Any, entity_id: Any) -> T | None:
        """Return the current state of an entity under a read lock.

        Args:
            entity_type: Entity kind, typically the entity class.
            entity_id: Scalar, composite (list/tuple) or string-convertible id.

        Returns:
            The entity, or ``None`` if the backend has no such entity.
        """
        raise NotImplementedError
