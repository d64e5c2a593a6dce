# src/nested_uow/application/coordinator.py
# Copyright (c) Arche.
# SPDX-License-Identifier: MIT
"""Nested transaction coordinator.

Purpose:
    Give callers save-point-like begin/commit/rollback that may be nested to
    any depth, while the backend ``TransactionHandler`` sees exactly one
    physical begin/commit/rollback per outermost scope and one consolidated
    list of touched entities.

Design:
    * Open scopes form an explicit stack of :class:`Scope` records. ``begin``
      while a scope is open always nests under the innermost one, so siblings
      are never open at the same time.
    * Every scope receives a staging ``level``, an ordinal that grows with
      each ``begin`` under the same outermost scope. Any scope opened after S
      while S is still open is nested in S, so discarding levels >= S.level on
      rollback removes S and its descendants but never an earlier sibling
      that already committed.
    * Inserts and updates are staged in two :class:`LeveledObjectStorage`
      instances sharing one :class:`EntityHandles` arena; nothing reaches the
      backend until the outermost commit.
    * Locked reads go through an :class:`IdentityMap` wrapping the handler.

Layer:
    application
"""

from __future__ import annotations

import itertools
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from nested_uow.application.identity_map import IdentityMap
from nested_uow.application.isolation import IsolateWrapper
from nested_uow.application.staging import EntityHandles, LeveledObjectStorage, StagedEntry
from nested_uow.domain.exceptions.transaction import (
    NotInTransaction,
    ScopeClosedError,
    TransactionError,
)
from nested_uow.domain.interfaces.entity_manager import EntityManager
from nested_uow.domain.interfaces.pre_commit import PreCommitEntityProcessor
from nested_uow.domain.interfaces.transaction_handler import TransactionHandler
from nested_uow.infrastructure.logging.logger import get_json_logger
from nested_uow.infrastructure.observability.metrics import (
    get_commit_latency_seconds,
    get_detached_total,
    get_entities_flushed_total,
    get_scopes_total,
)

__all__ = ["ObjectTransactionHandler", "Scope"]

T = TypeVar("T")

logger = get_json_logger(__name__)


@dataclass(eq=False)
class Scope:
    """One begin/commit or begin/rollback pair.

    Attributes:
        depth: Nesting depth, 1 for the outermost scope.
        level: Staging level owned by this scope.
        parent: Enclosing scope, ``None`` for the outermost.
        closed: Set once the scope committed or rolled back.
    """

    depth: int
    level: int
    parent: Scope | None = field(default=None, repr=False)
    closed: bool = False

    @property
    def is_outermost(self) -> bool:
        return self.parent is None

    def ensure_open(self) -> None:
        """Raise :class:`ScopeClosedError` if the scope already closed."""
        if self.closed:
            raise ScopeClosedError(self.depth)


class ObjectTransactionHandler(EntityManager):
    """Stage entity work per scope and flush it at the outermost commit."""

    def __init__(
        self,
        transaction_handler: TransactionHandler,
        pre_commit_processor: PreCommitEntityProcessor | None = None,
        *,
        metrics: bool = True,
    ) -> None:
        """Initialize the coordinator.

        Args:
            transaction_handler: Backend handler; wrapped in an identity map.
            pre_commit_processor: Optional hook run once per distinct staged
                entity before anything is sent to the backend.
            metrics: Record Prometheus metrics.
        """
        self._handler = IdentityMap(transaction_handler, metrics=metrics)
        self._processor = pre_commit_processor
        self._metrics = metrics
        self._handles = EntityHandles()
        self._to_persist = LeveledObjectStorage(self._handles)
        self._to_save = LeveledObjectStorage(self._handles)
        self._scopes: list[Scope] = []
        self._levels = itertools.count(1)
        self._wrapper = IsolateWrapper(self)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def identity_map(self) -> IdentityMap:
        return self._handler

    @property
    def in_transaction(self) -> bool:
        return bool(self._scopes)

    @property
    def depth(self) -> int:
        """Current nesting depth, 0 when no scope is open."""
        return len(self._scopes)

    @property
    def current_scope(self) -> Scope | None:
        return self._scopes[-1] if self._scopes else None

    def isolated(self) -> EntityManager:
        """Return the restricted view handed to callers and processors."""
        return self._wrapper

    # ------------------------------------------------------------------
    # Scope lifecycle
    # ------------------------------------------------------------------

    def begin(self) -> Scope:
        """Open a scope, nested under the innermost open scope if any.

        Only the outermost ``begin`` reaches the backend handler.

        Returns:
            Scope: The newly opened scope.
        """
        parent = self.current_scope
        if parent is None:
            self._levels = itertools.count(1)
            self._handler.begin()
            scope = Scope(depth=1, level=next(self._levels))
        else:
            scope = Scope(depth=parent.depth + 1, level=next(self._levels), parent=parent)

        self._scopes.append(scope)
        logger.debug("uow.scope.begin", extra={"depth": scope.depth, "level": scope.level})
        return scope

    def commit(self, scope: Scope | None = None) -> None:
        """Close the innermost scope successfully.

        A nested commit only closes the scope; its staged entities stay at
        their level and are flushed by the outermost commit, which runs the
        pre-commit processor, forwards inserts, then hands the aggregated
        entity list to the backend in one ``commit`` call.

        If the outermost flush raises, the scope stays open so the caller can
        roll it back.

        Args:
            scope: Optional scope the caller expects to close.

        Raises:
            NotInTransaction: If no scope is open.
            ScopeClosedError: If ``scope`` already closed.
            TransactionError: If ``scope`` is not the innermost open scope.
        """
        current = self._innermost("commit", scope)

        if not current.is_outermost:
            self._close(current)
            logger.debug("uow.scope.commit", extra={"depth": current.depth, "level": current.level})
            self._count_scope(current, "commit")
            return

        started = time.perf_counter()
        self._process_entities()
        persisted = self._persist_all()
        entities = self._all_staged()
        self._handler.commit(entities)

        self._close(current)
        self._reset_staging()
        self._handler.clear()

        logger.debug(
            "uow.commit.flush",
            extra={"persisted": persisted, "entities": len(entities)},
        )
        if self._metrics:
            get_commit_latency_seconds().observe(time.perf_counter() - started)
            flushed = get_entities_flushed_total()
            flushed.labels(operation="persist").inc(persisted)
            flushed.labels(operation="commit").inc(len(entities))
        self._count_scope(current, "commit")

    def rollback(self, scope: Scope | None = None) -> None:
        """Discard the innermost scope and everything staged within it.

        Entities staged at the scope's level or above are dropped and
        detached, most recently staged first. Entities that remain staged in
        an enclosing scope are kept and not detached. Only the outermost
        rollback reaches the backend's ``rollback``. The outermost rollback
        also empties the identity map, even if the backend rollback raises.

        Args:
            scope: Optional scope the caller expects to close.

        Raises:
            NotInTransaction: If no scope is open.
            ScopeClosedError: If ``scope`` already closed.
            TransactionError: If ``scope`` is not the innermost open scope.
        """
        current = self._innermost("rollback", scope)

        discarded = self._to_persist.discard_at_or_above(current.level)
        discarded.extend(self._to_save.discard_at_or_above(current.level))
        self._close(current)

        logger.debug(
            "uow.scope.rollback",
            extra={"depth": current.depth, "level": current.level, "discarded": len(discarded)},
        )

        if current.is_outermost:
            try:
                self._handler.rollback()
                self._detach_all(discarded)
            finally:
                self._reset_staging()
                # Nothing locked by the failed unit of work may be served again.
                self._handler.forget_all()
        else:
            self._detach_all(discarded)
        self._count_scope(current, "rollback")

    def clear(self) -> None:
        """Drop all staged entities and reset the handler-side caches."""
        self._reset_staging()
        self._handler.clear()

    # ------------------------------------------------------------------
    # Entity operations
    # ------------------------------------------------------------------

    def persist(self, entity: object) -> None:
        """Stage ``entity`` for insertion in the innermost scope."""
        scope = self._open_scope("persist")
        self._to_persist.add_at_level(scope.level, entity)

    def save(self, entity: object) -> None:
        """Stage ``entity`` for update in the innermost scope."""
        scope = self._open_scope("save")
        self._to_save.add_at_level(scope.level, entity)

    def get_locked(self, entity_type: type[T] | Any, entity_id: Any) -> T | None:
        """Return a locked entity and stage it for update.

        Raises:
            NotInTransaction: If no scope is open.
            InvalidIdentifier: If ``entity_id`` is of an unsupported kind.
        """
        scope = self._open_scope("get_locked")
        entity = self._handler.get_locked(entity_type, entity_id)
        if entity is not None:
            self._to_save.add_at_level(scope.level, entity)
        return entity

    # ------------------------------------------------------------------
    # Outermost commit steps
    # ------------------------------------------------------------------

    def _process_entities(self) -> None:
        # Entities the processor stages through the isolated view are picked
        # up by the next pass; each handle is processed once.
        if self._processor is None:
            return

        processed: set[int] = set()
        while True:
            pending = [
                entry
                for entry in (*self._to_persist.entries(), *self._to_save.entries())
                if entry.handle not in processed
            ]
            if not pending:
                return
            for entry in pending:
                if entry.handle in processed:
                    continue
                processed.add(entry.handle)
                self._processor.process(self._wrapper, entry.entity)

    def _persist_all(self) -> int:
        count = 0
        for entry in _distinct(self._to_persist.entries()):
            self._handler.persist(entry.entity)
            count += 1
        return count

    def _all_staged(self) -> list[object]:
        return [*self._to_persist.all_entries(), *self._to_save.all_entries()]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _detach_all(self, discarded: list[StagedEntry]) -> None:
        surviving = {entry.handle for entry in self._to_persist.entries()}
        surviving.update(entry.handle for entry in self._to_save.entries())

        newest_first = sorted(discarded, key=lambda entry: entry.sequence, reverse=True)
        detached = 0
        for entry in _distinct(newest_first):
            if entry.handle in surviving:
                continue
            self._handler.detach(entry.entity)
            detached += 1

        if self._metrics and detached:
            get_detached_total().inc(detached)

    def _open_scope(self, operation: str) -> Scope:
        if not self._scopes:
            raise NotInTransaction(operation)
        return self._scopes[-1]

    def _innermost(self, operation: str, scope: Scope | None) -> Scope:
        if scope is not None:
            scope.ensure_open()
        current = self._open_scope(operation)
        if scope is not None and scope is not current:
            raise TransactionError(
                f"{operation}() must target the innermost open scope",
                details={"depth": scope.depth, "innermost_depth": current.depth},
            )
        return current

    def _close(self, scope: Scope) -> None:
        scope.closed = True
        self._scopes.pop()

    def _reset_staging(self) -> None:
        self._to_persist.clear()
        self._to_save.clear()
        self._handles.clear()

    def _count_scope(self, scope: Scope, outcome: str) -> None:
        if self._metrics:
            label = "outermost" if scope.is_outermost else "nested"
            get_scopes_total().labels(scope=label, outcome=outcome).inc()


def _distinct(entries: Iterable[StagedEntry]) -> Iterable[StagedEntry]:
    seen: set[int] = set()
    for entry in entries:
        if entry.handle not in seen:
            seen.add(entry.handle)
            yield entry
