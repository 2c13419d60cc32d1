"""
Audit -- outward collaborator that records every mutation.

The kernel does not store audit logs.  Each mutating service call hands an
``AuditRecord`` to the injected ``AuditSink``; where it ends up (an audit
service, a queue, a file) is the caller's choice.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from ledger_kernel.logging_config import get_logger

logger = get_logger("domain.audit")


@dataclass(frozen=True)
class AuditRecord:
    action: str
    entity_type: str
    entity_id: UUID
    actor_id: UUID | None
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = field(default=None)


@runtime_checkable
class AuditSink(Protocol):
    def record(self, record: AuditRecord) -> None: ...


class LoggingAuditSink:
    """Default sink: one structured log line per mutation."""

    def record(self, record: AuditRecord) -> None:
        logger.info(
            "audit_record",
            extra={
                "action": record.action,
                "entity_type": record.entity_type,
                "entity_id": str(record.entity_id),
                "audit_actor_id": str(record.actor_id) if record.actor_id else None,
                "old_values": record.old_values,
                "new_values": record.new_values,
            },
        )


class InMemoryAuditSink:
    """Collects records in a list.  Used by tests."""

    def __init__(self) -> None:
        self.records: list[AuditRecord] = []

    def record(self, record: AuditRecord) -> None:
        self.records.append(record)

    def actions(self, entity_type: str | None = None) -> list[str]:
        return [
            r.action for r in self.records
            if entity_type is None or r.entity_type == entity_type
        ]
