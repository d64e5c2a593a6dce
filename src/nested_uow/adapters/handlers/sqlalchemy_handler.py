# src/nested_uow/adapters/handlers/sqlalchemy_handler.py
# Copyright (c) Arche.
# SPDX-License-Identifier: MIT
"""SQLAlchemy-backed transaction handler.

Purpose:
    Translate the ``TransactionHandler`` contract onto a synchronous
    SQLAlchemy ``Session``. The coordinator decides when and with which
    entities these calls happen; this adapter only maps them:

        begin       -> Session.begin()
        persist     -> Session.add() (+ optional flush)
        detach      -> Session.expunge()
        commit      -> Session.add() for unattached entities, Session.commit()
        rollback    -> Session.rollback()
        clear       -> Session.expunge_all()
        get_locked  -> Session.get(..., with_for_update=True)

    ``IntegrityError`` raised while flushing is translated into
    ``UniquenessViolation`` so the transactional entry point can roll back.

Layer:
    adapters/handlers
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, TypeVar

from sqlalchemy import create_engine, inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from nested_uow.config.settings import Settings
from nested_uow.domain.exceptions.transaction import UniquenessViolation
from nested_uow.domain.interfaces.transaction_handler import TransactionHandler
from nested_uow.infrastructure.logging.logger import get_json_logger

__all__ = ["SqlAlchemyTransactionHandler", "create_session_factory"]

T = TypeVar("T")

logger = get_json_logger(__name__)


def create_session_factory(settings: Settings) -> sessionmaker[Session]:
    """Build a synchronous session factory from settings.

    Args:
        settings: Settings providing ``database_url`` and ``sqlalchemy_echo``.

    Returns:
        sessionmaker[Session]: Factory producing non-expiring sessions.

    Raises:
        ValueError: If ``database_url`` is not configured.
    """
    if not settings.database_url:
        raise ValueError("database_url must be configured")

    engine = create_engine(
        settings.database_url,
        pool_pre_ping=True,
        echo=settings.sqlalchemy_echo,
    )
    return sessionmaker(bind=engine, expire_on_commit=False, class_=Session)


class SqlAlchemyTransactionHandler(TransactionHandler):
    """``TransactionHandler`` over one SQLAlchemy ``Session``."""

    def __init__(
        self,
        session: Session,
        *,
        flush_on_persist: bool = False,
        lock_reads: bool = True,
    ) -> None:
        """Initialize the handler.

        Args:
            session: Session owned by the caller; the handler never closes it.
            flush_on_persist: Flush after each ``persist`` so constraint
                violations surface at the offending insert.
            lock_reads: Use ``SELECT ... FOR UPDATE`` for ``get_locked``.
        """
        self._session = session
        self._flush_on_persist = flush_on_persist
        self._lock_reads = lock_reads

    @classmethod
    def from_settings(cls, session: Session, settings: Settings) -> SqlAlchemyTransactionHandler:
        """Build a handler using the flush/lock toggles from ``settings``."""
        return cls(
            session,
            flush_on_persist=settings.flush_on_persist,
            lock_reads=settings.lock_reads,
        )

    @property
    def session(self) -> Session:
        return self._session

    def begin(self) -> None:
        # A lookup issued before begin() may already have autobegun.
        if not self._session.in_transaction():
            self._session.begin()

    def persist(self, entity: object) -> None:
        self._session.add(entity)
        if self._flush_on_persist:
            self._flush()

    def detach(self, entity: object) -> None:
        if inspect(entity, raiseerr=False) is None:
            return
        if entity in self._session:
            self._session.expunge(entity)

    def commit(self, entities: Sequence[object]) -> None:
        """Attach saved entities if needed and commit the session.

        Raises:
            UniquenessViolation: If the database rejects the flush with an
                integrity error.
        """
        for entity in entities:
            if entity not in self._session:
                self._session.add(entity)
        try:
            self._session.commit()
        except IntegrityError as exc:
            raise _uniqueness_violation(exc) from exc
        logger.debug("uow.sqlalchemy.commit", extra={"entities": len(entities)})

    def rollback(self) -> None:
        self._session.rollback()

    def clear(self) -> None:
        self._session.expunge_all()

    def get_locked(self, entity_type: type[T] | Any, entity_id: Any) -> T | None:
        """Load ``entity_type`` by primary key, optionally ``FOR UPDATE``.

        Composite identifiers given as lists are passed as tuples.
        """
        ident = tuple(entity_id) if isinstance(entity_id, list) else entity_id
        return self._session.get(
            entity_type,
            ident,
            with_for_update=True if self._lock_reads else None,
        )

    def _flush(self) -> None:
        try:
            self._session.flush()
        except IntegrityError as exc:
            raise _uniqueness_violation(exc) from exc


def _uniqueness_violation(exc: IntegrityError) -> UniquenessViolation:
    message = str(exc.orig) if exc.orig is not None else str(exc)
    return UniquenessViolation(message, details={"statement": exc.statement})
