# src/nested_uow/adapters/handlers/__init__.py
# Copyright (c) Arche.
# SPDX-License-Identifier: MIT
"""
Transaction handler implementations (Adapters Layer)

Purpose:
    Provide concrete TransactionHandler implementations. Application code
    depends only on the `TransactionHandler` protocol from
    `nested_uow.domain.interfaces`.

Exports:
    - InMemoryTransactionHandler: dict-backed handler for tests and tooling.
    - SqlAlchemyTransactionHandler: handler over a synchronous SQLAlchemy Session.
    - create_session_factory: sessionmaker built from Settings.
"""

from __future__ import annotations

from .in_memory import InMemoryTransactionHandler
from .sqlalchemy_handler import SqlAlchemyTransactionHandler, create_session_factory

__all__ = [
    "InMemoryTransactionHandler",
    "SqlAlchemyTransactionHandler",
    "create_session_factory",
]
