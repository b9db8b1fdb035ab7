"""Record repository backed by a SQLAlchemy session."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import UTC, date, datetime, time
from decimal import Decimal
from logging import getLogger
from typing import TYPE_CHECKING, cast

from sqlalchemy import insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from sheetport.adapters.sqlalchemy.mappings import record_table
from sheetport.adapters.sqlalchemy.predicates import coerce_record_id, equality_predicates
from sheetport.config.reconcile import IDENTIFIER_KEY, SYSTEM_KEYS
from sheetport.domain.errors import RecordNotFoundError, RepositoryError, WriteError
from sheetport.domain.filters import matches
from sheetport.domain.schema import FieldKind
from sheetport.domain.types import Reference

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.engine import CursorResult, Row
    from sqlalchemy.orm import Session

    from sheetport.domain.ports.schema import SchemaProvider
    from sheetport.domain.schema import RecordType
    from sheetport.domain.types import Record

log = getLogger(__name__)


class RecordWriteError(WriteError):
    """Raised when the database rejects a create or update."""


class SqlAlchemyRecordRepository:
    """Stores records as JSON documents and evaluates filters in Python.

    Equality conditions on the id and on text fields narrow the query in SQL
    first, so only candidate rows are loaded and populated.

    Relations are stored as ``{"id": ...}`` stubs and populated one level deep
    on read. Component blocks are given a string ``id`` on write so later
    imports can address them.
    """

    def __init__(self, session: Session, schema: SchemaProvider) -> None:
        self.session = session
        self.schema = schema

    # Reads -------------------------------------------------------------------

    def find_by_id(self, record_type: str, record_id: object) -> Record | None:
        key = coerce_record_id(record_id)
        if key is None:
            return None
        row = self._fetch_row(record_type, key)
        if row is None:
            return None
        return self._populate(record_type, _row_to_record(row))

    def find_first(self, record_type: str, filters: Mapping[str, object]) -> Record | None:
        for record in self._iter_populated(record_type, filters):
            if matches(record, filters):
                return record
        return None

    def find_by_filter(
        self,
        record_type: str,
        filters: Mapping[str, object] | None = None,
    ) -> list[Record]:
        return [
            record
            for record in self._iter_populated(record_type, filters)
            if matches(record, filters)
        ]

    def _iter_populated(
        self,
        record_type: str,
        filters: Mapping[str, object] | None = None,
    ) -> Iterator[Record]:
        """Populate candidate rows lazily; equality conditions are narrowed in SQL."""

        predicates = equality_predicates(filters, self.schema.find_record_type(record_type))
        stmt = (
            select(record_table)
            .where(record_table.c.record_type == record_type, *predicates)
            .order_by(record_table.c.id)
        )
        try:
            rows = self.session.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Failed to read {record_type}: {exc}") from exc
        log.debug("%s candidate %s row(s) for %s", len(rows), record_type, filters)
        targets: dict[tuple[str, int], Record | None] = {}
        for row in rows:
            yield self._populate(record_type, _row_to_record(row), targets)

    def _fetch_row(self, record_type: str, record_id: int) -> Row[tuple[object, ...]] | None:
        stmt = (
            select(record_table)
            .where(record_table.c.record_type == record_type)
            .where(record_table.c.id == record_id)
        )
        try:
            return self.session.execute(stmt).one_or_none()
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Failed to read {record_type} #{record_id}: {exc}") from exc

    def _populate(
        self,
        record_type: str,
        record: Record,
        targets: dict[tuple[str, int], Record | None] | None = None,
    ) -> Record:
        definition = self.schema.find_record_type(record_type)
        if definition is None:
            return record
        cache = targets if targets is not None else {}
        for name, spec in definition.relation_fields():
            if name not in record or spec.target is None:
                continue
            value = record[name]
            if isinstance(value, list):
                related = [self._load_target(spec.target, item, cache) for item in value]
                record[name] = [item for item in related if item is not None]
            elif value is not None:
                record[name] = self._load_target(spec.target, value, cache)
        return record

    def _load_target(
        self,
        target: str,
        stub: object,
        cache: dict[tuple[str, int], Record | None],
    ) -> Record | None:
        key = coerce_record_id(stub.get(IDENTIFIER_KEY) if isinstance(stub, Mapping) else stub)
        if key is None:
            return None
        if (target, key) not in cache:
            row = self._fetch_row(target, key)
            cache[(target, key)] = None if row is None else _row_to_record(row)
            if row is None:
                log.debug("Dangling relation to %s #%s", target, key)
        return cache[(target, key)]

    # Writes ------------------------------------------------------------------

    def create(self, record_type: str, data: Mapping[str, object]) -> Record:
        definition = self.schema.find_record_type(record_type)
        document = _to_storable(data, definition, self.schema)
        now = datetime.now(UTC)
        stmt = insert(record_table).values(
            document_id=uuid.uuid4(),
            record_type=record_type,
            data=document,
            created_at=now,
            updated_at=now,
        )
        try:
            result = cast("CursorResult[tuple[object, ...]]", self.session.execute(stmt))
            record_id = cast("int", result.inserted_primary_key[0])
        except SQLAlchemyError as exc:
            raise RecordWriteError(f"Failed to create {record_type}: {exc}") from exc
        log.debug("Created %s #%s", record_type, record_id)
        created = self.find_by_id(record_type, record_id)
        assert created is not None
        return created

    def update(self, record_type: str, record_id: object, data: Mapping[str, object]) -> Record:
        key = coerce_record_id(record_id)
        row = None if key is None else self._fetch_row(record_type, key)
        if key is None or row is None:
            raise RecordNotFoundError(f"{record_type} #{record_id} not found")

        definition = self.schema.find_record_type(record_type)
        stored = dict(cast("Mapping[str, object]", row.data))
        incoming = _to_storable(data, definition, self.schema)
        merged = _merge_documents(stored, incoming, definition)
        stmt = (
            update(record_table)
            .where(record_table.c.id == key)
            .values(data=merged, updated_at=datetime.now(UTC))
        )
        try:
            self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise RecordWriteError(f"Failed to update {record_type} #{key}: {exc}") from exc
        log.debug("Updated %s #%s", record_type, key)
        updated = self.find_by_id(record_type, key)
        assert updated is not None
        return updated


def _row_to_record(row: Row[tuple[object, ...]]) -> Record:
    data = cast("Mapping[str, object]", row.data)
    created_at = cast("datetime", row.created_at)
    updated_at = cast("datetime", row.updated_at)
    record: Record = {IDENTIFIER_KEY: row.id, "documentId": str(row.document_id)}
    record.update(data)
    record["createdAt"] = created_at.isoformat()
    record["updatedAt"] = updated_at.isoformat()
    return record


def _to_storable(
    data: Mapping[str, object],
    definition: RecordType | None,
    schema: SchemaProvider,
) -> dict[str, object]:
    document: dict[str, object] = {}
    for key, value in data.items():
        if key == IDENTIFIER_KEY or key in SYSTEM_KEYS:
            continue
        spec = definition.spec_for(key) if definition else None
        if spec is not None and spec.kind is FieldKind.COMPONENT:
            component = schema.find_record_type(spec.target)
            document[key] = _component_blocks(value, component, schema)
        else:
            document[key] = _jsonable(value)
    return document


def _component_blocks(
    value: object,
    component: RecordType | None,
    schema: SchemaProvider,
) -> object:
    if isinstance(value, list):
        return [_component_blocks(block, component, schema) for block in value]
    if not isinstance(value, Mapping):
        return _jsonable(value)
    block = _to_storable(value, component, schema)
    block_id = value.get(IDENTIFIER_KEY)
    block[IDENTIFIER_KEY] = str(uuid.uuid4()) if block_id is None else block_id
    return block


def _merge_documents(
    stored: dict[str, object],
    incoming: dict[str, object],
    definition: RecordType | None,
) -> dict[str, object]:
    merged = dict(stored)
    for key, value in incoming.items():
        spec = definition.spec_for(key) if definition else None
        old_value = stored.get(key)
        if spec is not None and spec.kind is FieldKind.COMPONENT and not spec.is_many:
            if isinstance(old_value, Mapping) and isinstance(value, Mapping):
                merged[key] = {**old_value, **value}
                continue
        merged[key] = value
    return merged


def _jsonable(value: object) -> object:
    if isinstance(value, Reference):
        return value.as_dict()
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    return value
