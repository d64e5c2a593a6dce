# src/nested_uow/domain/exceptions/__init__.py
# Copyright (c) Arche.
# SPDX-License-Identifier: MIT
"""Domain exceptions exported for callers and adapters."""

from __future__ import annotations

from .base import DomainError
from .transaction import (
    InvalidIdentifier,
    NotInTransaction,
    ScopeClosedError,
    TransactionError,
    UniquenessViolation,
)

__all__ = [
    "DomainError",
    "InvalidIdentifier",
    "NotInTransaction",
    "ScopeClosedError",
    "TransactionError",
    "UniquenessViolation",
]
