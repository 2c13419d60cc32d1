"""
Mapping checks over every ORM model.

Relationships must use loader strategies that current SQLAlchemy releases
support without deprecation warnings.
"""

import warnings

import pytest
from sqlalchemy.orm import configure_mappers

from ledger_kernel.db.base import Base
import ledger_kernel.models  # noqa: F401  (registers every table)

SUPPORTED_LOADERS = {"select", "selectin", "joined", "raise", "raise_on_sql"}


RELATIONSHIPS = {
    f"{mapper.class_.__name__}.{rel.key}": rel
    for mapper in Base.registry.mappers
    for rel in mapper.relationships
}


@pytest.mark.parametrize("name", sorted(RELATIONSHIPS))
def test_relationship_loader_strategy(name):
    rel = RELATIONSHIPS[name]
    assert rel.lazy in SUPPORTED_LOADERS, f"{name} uses lazy={rel.lazy!r}"


def test_account_has_no_line_collection():
    from ledger_kernel.models.account import Account

    assert "journal_lines" not in Account.__mapper__.relationships


def test_mappers_configure_cleanly():
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        configure_mappers()
