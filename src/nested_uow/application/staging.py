# src/nested_uow/application/staging.py
# Copyright (c) Arche.
# SPDX-License-Identifier: MIT
"""Leveled entity staging.

Purpose:
    Hold references to entities pending insert or update, partitioned by
    scope level, until the outermost scope resolves.

Design:
    * Entities are referenced, never copied, and deduplicated by identity
      (never by ``__eq__``) within a level only. Staging the same entity at two
      levels keeps two independent entries.
    * Identity is tracked through :class:`EntityHandles`, an arena that hands
      each entity an opaque integer handle on first staging and keeps the
      entity alive while the handle exists.
    * Every entry carries a staging sequence number drawn from the arena so
      that entries from two stores sharing an arena can be merged back into
      the order in which they were staged.

Layer:
    application
"""

from __future__ import annotations

import itertools
from collections.abc import Iterator
from dataclasses import dataclass, field

__all__ = ["EntityHandles", "LeveledObjectStorage", "StagedEntry"]


@dataclass(frozen=True, slots=True)
class StagedEntry:
    """One staged reference.

    Attributes:
        level: Staging level the entry belongs to.
        handle: Opaque identity handle of the entity.
        sequence: Global staging order (shared by all stores on one arena).
        entity: The staged entity itself.
    """

    level: int
    handle: int
    sequence: int
    entity: object = field(compare=False)


class EntityHandles:
    """Arena assigning opaque handles to tracked entities.

    Handles are stable for as long as the arena is not cleared. The arena holds
    a strong reference to every tracked entity so that an identity can never be
    recycled while its handle is in use.
    """

    def __init__(self) -> None:
        self._by_identity: dict[int, tuple[int, object]] = {}
        self._handles = itertools.count(1)
        self._sequence = itertools.count(1)

    def handle_for(self, entity: object) -> int:
        """Return the handle of ``entity``, assigning one on first use."""
        known = self._by_identity.get(id(entity))
        if known is not None:
            return known[0]
        handle = next(self._handles)
        self._by_identity[id(entity)] = (handle, entity)
        return handle

    def next_sequence(self) -> int:
        """Return the next staging sequence number."""
        return next(self._sequence)

    def clear(self) -> None:
        """Forget all handles and restart sequences."""
        self._by_identity.clear()
        self._handles = itertools.count(1)
        self._sequence = itertools.count(1)

    def __len__(self) -> int:
        return len(self._by_identity)


class LeveledObjectStorage:
    """Level-indexed, identity-deduplicated holding area for entities."""

    def __init__(self, handles: EntityHandles | None = None) -> None:
        """Initialize an empty store.

        Args:
            handles: Arena to draw identity handles from. Stores that must be
                merged in staging order (insert and update stores of one
                coordinator) share an arena. A private arena is used otherwise.
        """
        self._handles = handles if handles is not None else EntityHandles()
        self._store: dict[int, dict[int, StagedEntry]] = {}

    def add_at_level(self, level: int, entity: object) -> bool:
        """Stage ``entity`` at ``level``.

        Args:
            level: Staging level (>= 1).
            entity: Entity reference to stage.

        Returns:
            bool: ``True`` if a new entry was created, ``False`` if the entity
            was already staged at that level.
        """
        handle = self._handles.handle_for(entity)
        bucket = self._store.setdefault(level, {})
        if handle in bucket:
            return False
        bucket[handle] = StagedEntry(
            level=level,
            handle=handle,
            sequence=self._handles.next_sequence(),
            entity=entity,
        )
        return True

    def discard_at_or_above(self, level: int) -> list[StagedEntry]:
        """Remove every entry whose level is greater than or equal to ``level``.

        Returns:
            list[StagedEntry]: The removed entries in ascending level order,
            insertion order within a level. Empty if nothing matched.
        """
        discarded: list[StagedEntry] = []
        for lvl in sorted(k for k in self._store if k >= level):
            discarded.extend(self._store.pop(lvl).values())
        return discarded

    def entries(self) -> list[StagedEntry]:
        """Return all entries, ascending level then insertion order."""
        return [entry for lvl in sorted(self._store) for entry in self._store[lvl].values()]

    def all_entries(self) -> list[object]:
        """Return every staged entity, duplicates across levels preserved."""
        return [entry.entity for entry in self.entries()]

    def levels(self) -> list[int]:
        """Return the non-empty levels in ascending order."""
        return sorted(lvl for lvl, bucket in self._store.items() if bucket)

    def clear(self) -> None:
        """Remove everything regardless of level."""
        self._store.clear()

    def __iter__(self) -> Iterator[object]:
        return iter(self.all_entries())

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._store.values())

    def __bool__(self) -> bool:
        return any(self._store.values())
