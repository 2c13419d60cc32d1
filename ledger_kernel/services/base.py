"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract for every write-side
    service.  Concrete services receive a SQLAlchemy ``Session`` and persist
    through ``session.flush()`` -- never ``session.commit()``.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back themselves.  ``session_scope()`` or the
    API facade owns commit/rollback, so a multi-row mutation either lands
    completely or not at all.
"""

from abc import ABC
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base
from ledger_kernel.domain.audit import AuditRecord, AuditSink, LoggingAuditSink
from ledger_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-model projections; those live in
          ``ledger_kernel/selectors/``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
    ):
        self.session = session
        self._clock = clock or SystemClock()
        self._audit_sink = audit_sink or LoggingAuditSink()

    def _audit(
        self,
        action: str,
        entity_type: str,
        entity_id: UUID,
        actor_id: UUID | None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> None:
        self._audit_sink.record(
            AuditRecord(
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                actor_id=actor_id,
                old_values=old_values,
                new_values=new_values,
            )
        )
