"""
Domain events published on Post, Void and Close.

Publishing happens after the service has flushed its changes but before the
caller commits; subscribers that need committed data should defer work until
their own transaction sees it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from ledger_kernel.logging_config import get_logger

logger = get_logger("domain.events")


class LedgerEventType(str, Enum):
    ENTRY_POSTED = "journal_entry.posted"
    ENTRY_VOIDED = "journal_entry.voided"
    PERIOD_CLOSED = "fiscal_period.closed"


@dataclass(frozen=True)
class DomainEvent:
    event_type: LedgerEventType
    aggregate_id: UUID
    occurred_at: datetime
    actor_id: UUID | None
    payload: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class EventPublisher(Protocol):
    def publish(self, event: DomainEvent) -> None: ...


class LoggingEventPublisher:
    def publish(self, event: DomainEvent) -> None:
        logger.info(
            "domain_event_published",
            extra={
                "event_type": event.event_type.value,
                "aggregate_id": str(event.aggregate_id),
                "payload": event.payload,
            },
        )


class InMemoryEventPublisher:
    """Keeps published events in order.  Used by tests."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    def publish(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: LedgerEventType) -> list[DomainEvent]:
        return [e for e in self.events if e.event_type == event_type]
