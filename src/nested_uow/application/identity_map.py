# src/nested_uow/application/identity_map.py
# Copyright (c) Arche.
# SPDX-License-Identifier: MIT
"""Identity Map over a transaction handler.

Purpose:
    Guarantee that a logical entity, addressed by ``(kind, id)``, is fetched
    under lock from the backend at most once per map lifetime, and that every
    caller receives the same reference.

Design:
    * The map is itself a ``TransactionHandler``: it wraps the backend handler
      and is what the coordinator talks to.
    * Cache keys come from :func:`entity_key`: the kind, whether the id is a
      composite, and the :func:`stringify_entity_id` text.
    * ``None`` results are never cached, so a missing entity is re-queried on
      every lookup.
    * ``detach`` evicts the entity so the next lookup reaches the backend.

Layer:
    application
"""

from __future__ import annotations

import json
from collections.abc import Hashable, Sequence
from typing import Any, TypeAlias, TypeVar

from nested_uow.domain.exceptions.transaction import InvalidIdentifier
from nested_uow.domain.interfaces.transaction_handler import TransactionHandler
from nested_uow.infrastructure.logging.logger import get_json_logger
from nested_uow.infrastructure.observability.metrics import get_identity_map_lookups_total

__all__ = ["EntityKey", "IdentityMap", "entity_key", "stringify_entity_id"]

T = TypeVar("T")

logger = get_json_logger(__name__)

_SCALARS = (str, int, float)
_REJECTED = (bytes, bytearray, memoryview, dict, set, frozenset)

EntityKey: TypeAlias = tuple[Hashable, bool, str]


def stringify_entity_id(entity_id: Any) -> str:
    """Turn an entity identifier into a deterministic cache key.

    Rules:
        * ``str``/``int``/``float``/``bool`` and objects whose type defines its
          own ``__str__`` (``UUID``, ``Decimal``, enums, id value objects) are
          converted with ``str()``.
        * ``list``/``tuple`` identifiers are composites: each part is
          stringified recursively and the result is encoded as a (possibly
          nested) JSON array, so ``["a_b", "c"]`` and ``["a", "b_c"]`` never
          collide, and neither do ``["a", ["x"]]`` and ``["a", '["x"]']``.

    A scalar string can still spell the same text as a composite; use
    :func:`entity_key` where the two must not meet.

    Args:
        entity_id: Identifier to stringify.

    Returns:
        str: Cache key fragment.

    Raises:
        InvalidIdentifier: For ``None``, mappings, sets, bytes and objects
            relying on ``object.__str__``.
    """
    encoded = _encode(entity_id, top=entity_id)
    if isinstance(encoded, list):
        return json.dumps(encoded, separators=(",", ":"))
    return encoded


def entity_key(entity_type: Hashable, entity_id: Any) -> EntityKey:
    """Return the ``(kind, composite, text)`` key identifying an entity."""
    return (entity_type, isinstance(entity_id, (list, tuple)), stringify_entity_id(entity_id))


def _encode(part: Any, *, top: Any) -> str | list[Any]:
    if isinstance(part, (list, tuple)):
        return [_encode(p, top=top) for p in part]
    if isinstance(part, _SCALARS):
        return str(part)
    if part is None or isinstance(part, _REJECTED):
        raise InvalidIdentifier(top)
    if type(part).__str__ is object.__str__:
        raise InvalidIdentifier(top)
    return str(part)


class IdentityMap(TransactionHandler):
    """Caching ``TransactionHandler`` decorator for locked reads."""

    def __init__(self, transaction_handler: TransactionHandler, *, metrics: bool = True) -> None:
        """Wrap ``transaction_handler``.

        Args:
            transaction_handler: Backend handler receiving all delegated calls.
            metrics: Record lookup results in Prometheus.
        """
        self._handler = transaction_handler
        self._metrics = metrics
        self._map: dict[EntityKey, object] = {}

    @property
    def handler(self) -> TransactionHandler:
        """The wrapped backend handler."""
        return self._handler

    # ------------------------------------------------------------------
    # Pass-through lifecycle
    # ------------------------------------------------------------------

    def begin(self) -> None:
        self._handler.begin()

    def persist(self, entity: object) -> None:
        self._handler.persist(entity)

    def commit(self, entities: Sequence[object]) -> None:
        self._handler.commit(entities)

    def rollback(self) -> None:
        self._handler.rollback()

    def detach(self, entity: object) -> None:
        """Evict every cache entry holding ``entity`` and forward the detach.

        One instance can sit under several keys when the backend resolves two
        spellings of an id (``1`` and ``(1,)``) to the same row.
        """
        self._evict(entity)
        self._handler.detach(entity)

    def clear(self) -> None:
        """Empty the cache and forward ``clear`` to the backend."""
        self._map.clear()
        self._handler.clear()

    def forget_all(self) -> None:
        """Empty the cache without contacting the backend."""
        self._map.clear()

    # ------------------------------------------------------------------
    # Locked reads
    # ------------------------------------------------------------------

    def get_locked(self, entity_type: type[T] | Any, entity_id: Any) -> T | None:
        """Return the locked entity for ``(entity_type, entity_id)``.

        Args:
            entity_type: Entity kind (usually the class).
            entity_id: Scalar, composite or string-convertible identifier.

        Returns:
            The cached or freshly fetched entity, or ``None`` if absent.

        Raises:
            InvalidIdentifier: If ``entity_id`` cannot be stringified. No
                backend call is made in that case.
        """
        key = entity_key(entity_type, entity_id)

        cached = self._map.get(key)
        if cached is not None:
            self._record("hit")
            logger.debug("uow.identity_map.hit", extra={"entity_key": key[2]})
            return cached  # type: ignore[return-value]

        entity = self._handler.get_locked(entity_type, entity_id)
        if entity is None:
            self._record("absent")
            logger.debug("uow.identity_map.absent", extra={"entity_key": key[2]})
            return None

        self._map[key] = entity
        self._record("miss")
        logger.debug("uow.identity_map.miss", extra={"entity_key": key[2]})
        return entity

    def __contains__(self, item: object) -> bool:
        if not (isinstance(item, tuple) and len(item) == 2):
            return False
        entity_type, entity_id = item
        return entity_key(entity_type, entity_id) in self._map

    def __len__(self) -> int:
        return len(self._map)

    def _evict(self, entity: object) -> None:
        stale = [key for key, cached in self._map.items() if cached is entity]
        for key in stale:
            del self._map[key]

    def _record(self, result: str) -> None:
        if self._metrics:
            get_identity_map_lookups_total().labels(result=result).inc()
