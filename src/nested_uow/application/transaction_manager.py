# src/nested_uow/application/transaction_manager.py
# Copyright (c) Arche.
# SPDX-License-Identifier: MIT
"""Transactional entry point (Application Layer).

Purpose:
    Run caller-supplied functions inside a (possibly nested) unit of work.
    Functions receive an isolated ``EntityManager`` and open nested units of
    work by calling ``transactional`` again; they never see
    begin/commit/rollback.

    The helper guarantees that:

        * On success: the scope is committed (flushed to the backend only if
          it is the outermost scope).
        * On exception inside the function: the current scope alone is rolled
          back and the exception is re-raised. Enclosing scopes stay open.
        * On exception from the outermost commit (e.g. ``UniquenessViolation``
          from the handler): the rollback path runs (discard, backend
          rollback, detach) and the original exception is re-raised.

Layer:
    application
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, TypeVar, runtime_checkable

from nested_uow.application.coordinator import ObjectTransactionHandler, Scope
from nested_uow.config.settings import Settings, get_settings
from nested_uow.domain.exceptions.transaction import UniquenessViolation
from nested_uow.domain.interfaces.entity_manager import EntityManager
from nested_uow.domain.interfaces.pre_commit import PreCommitEntityProcessor
from nested_uow.domain.interfaces.transaction_handler import TransactionHandler
from nested_uow.infrastructure.logging.logger import get_json_logger

__all__ = ["TransactionManager", "TransactionManagerAware", "run_in_transaction"]

TResult = TypeVar("TResult")

logger = get_json_logger(__name__)


class TransactionManager:
    """Entry point for nested units of work over one transaction handler.

    Example:

        manager = TransactionManager(handler)

        def transfer(em: EntityManager) -> None:
            account = em.get_locked(Account, 42)
            account.balance -= 10
            manager.transactional(lambda inner: inner.persist(Ledger(...)))

        manager.transactional(transfer)

    A manager and its coordinator must be confined to one thread of
    execution at a time.
    """

    def __init__(
        self,
        transaction_handler: TransactionHandler,
        pre_commit_processor: PreCommitEntityProcessor | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            transaction_handler: Backend handler receiving the consolidated work.
            pre_commit_processor: Optional hook run before each outermost flush.
            settings: Library settings; defaults to :func:`get_settings`.
        """
        resolved = settings if settings is not None else get_settings()
        self._coordinator = ObjectTransactionHandler(
            transaction_handler,
            pre_commit_processor,
            metrics=resolved.metrics_enabled,
        )

    @property
    def coordinator(self) -> ObjectTransactionHandler:
        return self._coordinator

    def transactional(self, fn: Callable[[EntityManager], TResult]) -> TResult:
        """Run ``fn`` in a new scope, nested if a scope is already open.

        Args:
            fn: Callable receiving the isolated entity manager.

        Returns:
            TResult: Whatever ``fn`` returned.

        Raises:
            BaseException: Anything raised by ``fn`` or by the outermost
                commit, re-raised after the rollback path ran.
        """
        scope = self._coordinator.begin()
        try:
            result = fn(self._coordinator.isolated())
        except BaseException:
            self._rollback(scope, reason="function_failed")
            raise

        # Commit stays outside the try above so a failed flush is handled
        # separately from a failed function.
        try:
            self._coordinator.commit(scope)
        except UniquenessViolation:
            logger.warning("uow.commit.uniqueness_violation", extra={"depth": scope.depth})
            self._rollback(scope, reason="uniqueness_violation")
            raise
        except Exception:
            logger.exception("uow.commit.failed", extra={"depth": scope.depth})
            self._rollback(scope, reason="commit_failed")
            raise

        return result

    def clear(self) -> None:
        """Reset staged state and handler-side caches between units of work."""
        self._coordinator.clear()

    def _rollback(self, scope: Scope, *, reason: str) -> None:
        if scope.closed:
            return
        logger.debug(
            "uow.scope.rollback_requested",
            extra={"depth": scope.depth, "reason": reason},
        )
        self._coordinator.rollback(scope)


@runtime_checkable
class TransactionManagerAware(Protocol):
    """Component that receives the transaction manager by injection."""

    def set_transaction_manager(self, transaction_manager: TransactionManager) -> None:
        """Attach ``transaction_manager`` to the component."""
        raise NotImplementedError


def run_in_transaction(
    manager: TransactionManager,
    fn: Callable[[EntityManager], TResult],
) -> TResult:
    """Execute ``fn`` inside ``manager`` with commit/rollback semantics.

    Args:
        manager: Transaction manager providing the scope.
        fn: Callable that receives the isolated entity manager.

    Returns:
        TResult: The result of the callable.
    """
    return manager.transactional(fn)
