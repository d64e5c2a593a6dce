# src/nested_uow/domain/exceptions/transaction.py
# Copyright (c) Arche.
# SPDX-License-Identifier: MIT
"""Transaction domain exceptions.

Purpose:
    Error types raised by the nested transaction coordinator, the identity
    map and the transaction handlers that sit behind them.

Layer:
    domain

Notes:
    - ``NotInTransaction`` and ``InvalidIdentifier`` are programming errors and
      are never retried internally.
    - Handlers are responsible for translating backend-specific uniqueness
      errors (e.g. ``sqlalchemy.exc.IntegrityError``) into
      ``UniquenessViolation``.
"""

from __future__ import annotations

from typing import Any

from nested_uow.domain.exceptions.base import DomainError


class TransactionError(DomainError):
    """Base class for unit-of-work errors."""

    code = "TRANSACTION_ERROR"


class NotInTransaction(TransactionError):
    """Raised when an entity operation is issued with no open scope."""

    code = "NOT_IN_TRANSACTION"

    def __init__(self, operation: str) -> None:
        super().__init__(
            f"{operation}() is available only inside a transaction",
            details={"operation": operation},
        )
        self.operation = operation


class InvalidIdentifier(TransactionError):
    """Raised when an entity identifier cannot be turned into a cache key."""

    code = "INVALID_IDENTIFIER"

    def __init__(self, entity_id: Any) -> None:
        super().__init__(
            f"Invalid identifier type: {type(entity_id).__name__}",
            details={"identifier_type": type(entity_id).__name__},
        )
        self.entity_id = entity_id


class UniquenessViolation(TransactionError):
    """Raised by a handler's ``commit`` when a uniqueness constraint fails."""

    code = "UNIQUENESS_VIOLATION"


class ScopeClosedError(TransactionError):
    """Raised when a scope that already committed or rolled back is used again."""

    code = "SCOPE_CLOSED"

    def __init__(self, depth: int) -> None:
        super().__init__(
            f"Scope at depth {depth} is already closed",
            details={"depth": depth},
        )
        self.depth = depth
