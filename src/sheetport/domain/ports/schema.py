"""Port for read-only access to record-type definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sheetport.domain.schema import RecordType


@runtime_checkable
class SchemaProvider(Protocol):
    """Schema capability supplied by the host."""

    def list_record_types(self) -> list[RecordType]: ...

    def get_record_type(self, identifier: str) -> RecordType: ...

    def find_record_type(self, identifier: str | None) -> RecordType | None: ...

    def content_types(self) -> list[RecordType]: ...
