"""SQLAlchemy adapter package for sheetport."""

from __future__ import annotations

from .mappings import UTCDateTime, create_all_tables, metadata, record_table
from .repositories import RecordWriteError, SqlAlchemyRecordRepository
from .unit_of_work import (
    SqlAlchemyRecordUnitOfWork,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "RecordWriteError",
    "SqlAlchemyRecordRepository",
    "SqlAlchemyRecordUnitOfWork",
    "StartupError",
    "UTCDateTime",
    "configured_engine",
    "create_all_tables",
    "is_started",
    "metadata",
    "record_table",
    "shutdown",
    "startup",
]
