from __future__ import annotations

import os
from functools import partial
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002
from sqlalchemy.orm import Session, sessionmaker

from sheetport.adapters.sqlalchemy import create_all_tables
from sheetport.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyRecordUnitOfWork,
    shutdown,
    startup,
)
from sheetport.config import ReconcileSettings, TransactionMode
from tests.helpers.records import InMemoryRecordStore
from tests.helpers.schema import make_registry

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from sheetport.domain.schema import SchemaRegistry


@pytest.fixture
def registry() -> SchemaRegistry:
    return make_registry()


@pytest.fixture
def settings() -> ReconcileSettings:
    return ReconcileSettings()


@pytest.fixture
def batch_settings() -> ReconcileSettings:
    return ReconcileSettings(transaction_mode=TransactionMode.BATCH)


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    create_all_tables(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_session(sqlite_engine: Engine) -> Iterator[Session]:
    session_factory = sessionmaker(bind=sqlite_engine, future=True)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sqlite_unit_of_work(
    sqlite_engine: Engine,
    registry: SchemaRegistry,
) -> Iterator[Callable[[], SqlAlchemyRecordUnitOfWork]]:
    startup(engine=sqlite_engine, force=True)
    try:
        yield partial(SqlAlchemyRecordUnitOfWork, registry)
    finally:
        shutdown()
