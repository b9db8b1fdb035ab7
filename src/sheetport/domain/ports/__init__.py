"""Domain port definitions for adapters."""

from __future__ import annotations

from .persistence import RecordRepository
from .rows import RowSink, RowSource
from .schema import SchemaProvider
from .unit_of_work import (
    RecordRepositories,
    RecordUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
)

__all__ = [
    "RecordRepositories",
    "RecordRepository",
    "RecordUnitOfWork",
    "RepositoryCollection",
    "RowSink",
    "RowSource",
    "SchemaProvider",
    "UnitOfWork",
]
