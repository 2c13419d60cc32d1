"""
Module: ledger_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors, the "Q"
    side of the CQRS-lite split.
Architecture position: Kernel > Selectors.  May import from db/ and
    models/.  MUST NOT import from services/.

Invariants enforced:
    - Selectors never call session.add(), delete(), commit() or flush().
    - Results are frozen dataclasses, not ORM instances.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Read-only query access over a caller-owned session."""

    def __init__(self, session: Session):
        self.session = session
