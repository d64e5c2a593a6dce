# src/nested_uow/infrastructure/observability/metrics.py
# Copyright (c) Arche.
# SPDX-License-Identifier: MIT
"""Prometheus metrics for unit-of-work activity (registry-aware).

Accessors return collectors bound to the **current**
``prometheus_client.REGISTRY``:
    - Safe under hot reload and tests that swap the default registry.
    - No duplicate-registration errors.
    - Cache automatically resets when the active registry changes.

Collectors:
    * ``nested_uow_scopes_total{scope,outcome}``: scopes closed, by
      ``scope=outermost|nested`` and ``outcome=commit|rollback``.
    * ``nested_uow_entities_flushed_total{operation}``: entities forwarded to
      the handler, by ``operation=persist|commit``.
    * ``nested_uow_detached_total``: entities detached by rollbacks.
    * ``nested_uow_identity_map_lookups_total{result}``: ``hit|miss|absent``.
    * ``nested_uow_commit_latency_seconds``: outermost commit latency.

Example:
    get_scopes_total().labels(scope="nested", outcome="commit").inc()
"""

from __future__ import annotations

import logging
import threading
from contextlib import suppress
from typing import Final, TypeVar

import prometheus_client as prom
from prometheus_client import Counter, Histogram

_log = logging.getLogger(__name__)

# Seconds; outermost commits are dominated by backend latency.
_BUCKETS: Final[tuple[float, ...]] = (
    0.001,
    0.005,
    0.010,
    0.025,
    0.050,
    0.100,
    0.250,
    0.500,
    1.000,
    2.500,
    5.000,
)

_registry_id: int | None = None
_hist_cache: dict[str, Histogram] = {}
_counter_cache: dict[str, Counter] = {}
_lock = threading.RLock()

C = TypeVar("C", Counter, Histogram)


def _ensure_registry() -> None:
    """Reset caches if the active registry changed."""
    global _registry_id
    with _lock:
        rid = id(prom.REGISTRY)
        if _registry_id != rid:
            _hist_cache.clear()
            _counter_cache.clear()
            _registry_id = rid


def _lookup_existing(name: str, kind: type[C]) -> C | None:
    """Return a collector of ``kind`` already registered under ``name``."""
    with _lock, suppress(Exception):
        mapping = getattr(prom.REGISTRY, "_names_to_collectors", None)
        if isinstance(mapping, dict):
            col = mapping.get(name)
            if isinstance(col, kind):
                return col
    return None


def _get_or_create_counter(
    name: str,
    help_text: str,
    *,
    labelnames: tuple[str, ...] = (),
) -> Counter:
    """Get or create a registry-bound ``Counter`` with stable identity.

    Args:
        name: Metric name (snake_case, without the ``_total`` suffix).
        help_text: Human-readable description.
        labelnames: Optional label names tuple.

    Returns:
        Counter: Bound to ``prom.REGISTRY``.
    """
    _ensure_registry()
    with _lock:
        cached = _counter_cache.get(name)
        if cached is not None:
            return cached

        existing = _lookup_existing(name, Counter)
        if existing is not None:
            _counter_cache[name] = existing
            return existing

        try:
            c = Counter(name, help_text, labelnames, registry=prom.REGISTRY)
        except ValueError as exc:
            if "Duplicated timeseries" in str(exc):
                again = _lookup_existing(name, Counter)
                if again is not None:
                    _counter_cache[name] = again
                    return again
            _log.exception("Failed to register Prometheus counter %s", name)
            raise
        _counter_cache[name] = c
        return c


def _get_or_create_hist(name: str, help_text: str) -> Histogram:
    """Get or create a registry-bound, unlabelled ``Histogram``."""
    _ensure_registry()
    with _lock:
        cached = _hist_cache.get(name)
        if cached is not None:
            return cached

        existing = _lookup_existing(name, Histogram)
        if existing is not None:
            _hist_cache[name] = existing
            return existing

        try:
            h = Histogram(name, help_text, buckets=_BUCKETS, registry=prom.REGISTRY)
        except ValueError as exc:
            if "Duplicated timeseries" in str(exc):
                again = _lookup_existing(name, Histogram)
                if again is not None:
                    _hist_cache[name] = again
                    return again
            _log.exception("Failed to register Prometheus histogram %s", name)
            raise
        _hist_cache[name] = h
        return h


def get_scopes_total() -> Counter:
    """Return the counter of closed scopes.

    Labels:
        scope: ``outermost`` or ``nested``.
        outcome: ``commit`` or ``rollback``.
    """
    return _get_or_create_counter(
        "nested_uow_scopes",
        "Unit-of-work scopes closed, by nesting and outcome",
        labelnames=("scope", "outcome"),
    )


def get_entities_flushed_total() -> Counter:
    """Return the counter of entities forwarded to the transaction handler.

    Labels:
        operation: ``persist`` or ``commit``.
    """
    return _get_or_create_counter(
        "nested_uow_entities_flushed",
        "Entities forwarded to the transaction handler",
        labelnames=("operation",),
    )


def get_detached_total() -> Counter:
    """Return the counter of entities detached by rollbacks."""
    return _get_or_create_counter(
        "nested_uow_detached",
        "Entities detached after being discarded by a rollback",
    )


def get_identity_map_lookups_total() -> Counter:
    """Return the identity map lookup counter.

    Labels:
        result: ``hit`` (served from cache), ``miss`` (fetched) or ``absent``
            (backend returned nothing).
    """
    return _get_or_create_counter(
        "nested_uow_identity_map_lookups",
        "Identity map lookups by result",
        labelnames=("result",),
    )


def get_commit_latency_seconds() -> Histogram:
    """Return the histogram of outermost commit latency."""
    return _get_or_create_hist(
        "nested_uow_commit_latency_seconds",
        "Latency (seconds) of outermost commits including pre-commit processing",
    )
