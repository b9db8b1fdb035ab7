"""In-memory record store and unit of work used instead of a database."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from sheetport.domain.errors import RecordNotFoundError, WriteError
from sheetport.domain.filters import matches
from sheetport.domain.ports.unit_of_work import RecordRepositories
from sheetport.domain.types import Reference

if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType

    from sheetport.domain.types import Record

type Call = tuple[Literal["create", "update"], str, dict[str, object]]


@dataclass
class InMemoryRecordStore:
    """Records by type and id, with snapshot/restore standing in for transactions."""

    records: dict[str, dict[int, Record]] = field(default_factory=dict)
    next_id: int = 1
    calls: list[Call] = field(default_factory=list)
    rejected_names: set[str] = field(default_factory=set)
    commits: int = 0
    rollbacks: int = 0

    def seed(self, record_type: str, data: Mapping[str, object]) -> int:
        record_id = self.next_id
        self.next_id += 1
        self.records.setdefault(record_type, {})[record_id] = {"id": record_id, **data}
        return record_id

    def stored(self, record_type: str) -> list[Record]:
        return [copy.deepcopy(record) for record in self.records.get(record_type, {}).values()]

    def get(self, record_type: str, record_id: int) -> Record:
        return self.records[record_type][record_id]

    def snapshot(self) -> tuple[dict[str, dict[int, Record]], int]:
        return copy.deepcopy(self.records), self.next_id

    def restore(self, state: tuple[dict[str, dict[int, Record]], int]) -> None:
        records, next_id = state
        self.records = copy.deepcopy(records)
        self.next_id = next_id

    def unit_of_work(self) -> FakeUnitOfWork:
        return FakeUnitOfWork(self)


class FakeRecordRepository:
    def __init__(self, store: InMemoryRecordStore) -> None:
        self.store = store

    def find_by_id(self, record_type: str, record_id: object) -> Record | None:
        try:
            key = int(str(record_id))
        except ValueError:
            return None
        record = self.store.records.get(record_type, {}).get(key)
        return None if record is None else self._populate(record)

    def find_first(self, record_type: str, filters: Mapping[str, object]) -> Record | None:
        found = self.find_by_filter(record_type, filters)
        return found[0] if found else None

    def find_by_filter(
        self,
        record_type: str,
        filters: Mapping[str, object] | None = None,
    ) -> list[Record]:
        populated = [
            self._populate(record) for record in self.store.records.get(record_type, {}).values()
        ]
        return [record for record in populated if matches(record, filters)]

    def create(self, record_type: str, data: Mapping[str, object]) -> Record:
        self.store.calls.append(("create", record_type, copy.deepcopy(dict(data))))
        self._check(data)
        record_id = self.store.seed(record_type, copy.deepcopy(dict(data)))
        return self._populate(self.store.get(record_type, record_id))

    def update(self, record_type: str, record_id: object, data: Mapping[str, object]) -> Record:
        self.store.calls.append(("update", record_type, copy.deepcopy(dict(data))))
        self._check(data)
        record = self.store.records.get(record_type, {}).get(int(str(record_id)))
        if record is None:
            raise RecordNotFoundError(f"{record_type} #{record_id} not found")
        record.update(copy.deepcopy(dict(data)))
        return self._populate(record)

    def _check(self, data: Mapping[str, object]) -> None:
        name = data.get("name")
        if isinstance(name, str) and name in self.store.rejected_names:
            raise WriteError(f"name {name} rejected")

    def _populate(self, record: Record) -> Record:
        populated = copy.deepcopy(record)
        for key, value in populated.items():
            if isinstance(value, Reference):
                populated[key] = self._target(value)
            elif isinstance(value, list) and value and isinstance(value[0], Reference):
                populated[key] = [self._target(item) for item in value]
        return populated

    def _target(self, reference: Reference) -> Record:
        for records in self.store.records.values():
            target = records.get(int(reference.id))
            if target is not None:
                return copy.deepcopy(target)
        return reference.as_dict()


class FakeUnitOfWork:
    def __init__(self, store: InMemoryRecordStore) -> None:
        self.store = store
        self._repositories = RecordRepositories(records=FakeRecordRepository(store))
        self._state = store.snapshot()

    @property
    def repositories(self) -> RecordRepositories:
        return self._repositories

    def __enter__(self) -> FakeUnitOfWork:
        self._state = self.store.snapshot()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool:
        # uncommitted work is discarded on exit
        self.store.restore(self._state)
        return False

    def commit(self) -> None:
        self._state = self.store.snapshot()
        self.store.commits += 1

    def rollback(self) -> None:
        self.store.restore(self._state)
        self.store.rollbacks += 1
