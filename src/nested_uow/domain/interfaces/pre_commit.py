# src/nested_uow/domain/interfaces/pre_commit.py
# Copyright (c) Arche.
# SPDX-License-Identifier: MIT
"""Pre-commit entity processor port.

Layer:
    domain/interfaces
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from nested_uow.domain.interfaces.entity_manager import EntityManager


@runtime_checkable
class PreCommitEntityProcessor(Protocol):
    """Hook invoked once per distinct staged entity before the backend commit.

    Implementations may stage further work through ``entity_manager``; it is
    folded into the same commit.
    """

    def process(self, entity_manager: EntityManager, entity: object) -> None:
        """Validate or transform ``entity`` before it is flushed."""
        raise NotImplementedError
