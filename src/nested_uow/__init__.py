# src/nested_uow/__init__.py
# Copyright (c) Arche.
# SPDX-License-Identifier: MIT
"""nested-uow: nested units of work over a transaction handler.

Public surface:
    - TransactionManager / run_in_transaction: transactional entry point.
    - ObjectTransactionHandler: the nested transaction coordinator.
    - IdentityMap, LeveledObjectStorage: building blocks used by the coordinator.
    - TransactionHandler, EntityManager, PreCommitEntityProcessor: ports.
    - Error types rooted at DomainError.
"""

from __future__ import annotations

from nested_uow.application.coordinator import ObjectTransactionHandler, Scope
from nested_uow.application.identity_map import IdentityMap, entity_key, stringify_entity_id
from nested_uow.application.isolation import IsolateWrapper
from nested_uow.application.staging import EntityHandles, LeveledObjectStorage
from nested_uow.application.transaction_manager import (
    TransactionManager,
    TransactionManagerAware,
    run_in_transaction,
)
from nested_uow.domain.exceptions import (
    DomainError,
    InvalidIdentifier,
    NotInTransaction,
    ScopeClosedError,
    TransactionError,
    UniquenessViolation,
)
from nested_uow.domain.interfaces import (
    EntityManager,
    PreCommitEntityProcessor,
    TransactionHandler,
)

__all__ = [
    "DomainError",
    "EntityHandles",
    "EntityManager",
    "IdentityMap",
    "InvalidIdentifier",
    "IsolateWrapper",
    "LeveledObjectStorage",
    "NotInTransaction",
    "ObjectTransactionHandler",
    "PreCommitEntityProcessor",
    "Scope",
    "ScopeClosedError",
    "TransactionError",
    "TransactionHandler",
    "TransactionManager",
    "TransactionManagerAware",
    "UniquenessViolation",
    "entity_key",
    "run_in_transaction",
    "stringify_entity_id",
]
