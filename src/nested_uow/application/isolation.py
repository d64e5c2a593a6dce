# src/nested_uow/application/isolation.py
# Copyright (c) Arche.
# SPDX-License-Identifier: MIT
"""Isolated entity-manager view.

Transactional functions and pre-commit processors receive this wrapper
instead of the coordinator so they cannot open, commit or roll back scopes
themselves.
"""

from __future__ import annotations

from typing import Any, TypeVar

from nested_uow.domain.interfaces.entity_manager import EntityManager

__all__ = ["IsolateWrapper"]

T = TypeVar("T")


class IsolateWrapper(EntityManager):
    """Expose only ``get_locked``, ``persist`` and ``save`` of an entity manager."""

    __slots__ = ("_entity_manager",)

    def __init__(self, entity_manager: EntityManager) -> None:
        self._entity_manager = entity_manager

    def get_locked(self, entity_type: type[T] | Any, entity_id: Any) -> T | None:
        return self._entity_manager.get_locked(entity_type, entity_id)

    def persist(self, entity: object) -> None:
        self._entity_manager.persist(entity)

    def save(self, entity: object) -> None:
        self._entity_manager.save(entity)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
