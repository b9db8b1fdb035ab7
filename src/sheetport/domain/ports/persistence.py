"""Ports for persisting records."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sheetport.domain.types import Record


@runtime_checkable
class RecordRepository(Protocol):
    """Record store operating inside the unit of work that handed it out.

    Records returned by the finders carry their relations populated one level
    deep, the way an export or a diff wants to see them.
    """

    def find_by_id(self, record_type: str, record_id: object) -> Record | None: ...

    def find_first(self, record_type: str, filters: Mapping[str, object]) -> Record | None: ...

    def find_by_filter(
        self,
        record_type: str,
        filters: Mapping[str, object] | None = None,
    ) -> list[Record]: ...

    def create(self, record_type: str, data: Mapping[str, object]) -> Record: ...

    def update(self, record_type: str, record_id: object, data: Mapping[str, object]) -> Record: ...
