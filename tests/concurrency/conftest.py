"""
Fixtures for multi-session tests.

Each test gets its own file-backed SQLite database so that separate
sessions hold separate connections and only see each other's committed
work.
"""

import pytest
from sqlalchemy.orm import sessionmaker

from ledger_kernel.db.base import Base
from ledger_kernel.db.engine import build_engine
import ledger_kernel.models  # noqa: F401  (registers every table)


@pytest.fixture
def file_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_factory(file_engine):
    return sessionmaker(bind=file_engine, expire_on_commit=False)
