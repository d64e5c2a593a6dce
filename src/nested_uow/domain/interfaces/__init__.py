# src/nested_uow/domain/interfaces/__init__.py
# Copyright (c) Arche.
# SPDX-License-Identifier: MIT
"""Domain ports implemented by adapters and callers."""

from __future__ import annotations

from .entity_manager import EntityManager
from .pre_commit import PreCommitEntityProcessor
from .transaction_handler import TransactionHandler

__all__ = ["EntityManager", "PreCommitEntityProcessor", "TransactionHandler"]
