"""Record-type definitions and the read-only registry that serves them.

Everything that needs to know what a column or a field *is* (plain value,
relation, embedded component) asks the registry instead of guessing from the
key's spelling. The helpers at the bottom are pure functions over those
definitions so they can be tested without a store.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Final

from .errors import SchemaError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

CONTENT_NAMESPACE: Final[str] = "api"
NAMESPACE_SEPARATOR: Final[str] = "::"
MAX_SHEET_NAME_LENGTH: Final[int] = 31

TEXT_DATA_TYPES: Final[frozenset[str]] = frozenset(
    {"string", "text", "richtext", "email", "uid", "enumeration"}
)
NUMBER_DATA_TYPES: Final[frozenset[str]] = frozenset(
    {"number", "integer", "biginteger", "float", "decimal"}
)

_SHEET_NAME_INVALID = re.compile(r"[^\w\s-]")


class FieldKind(StrEnum):
    PRIMITIVE = "primitive"
    RELATION = "relation"
    COMPONENT = "component"
    IDENTIFIER = "identifier"
    MEDIA = "media"


class Cardinality(StrEnum):
    ONE = "one"
    MANY = "many"


@dataclass(frozen=True, slots=True, kw_only=True)
class FieldSpec:
    kind: FieldKind = FieldKind.PRIMITIVE
    data_type: str = "string"
    cardinality: Cardinality = Cardinality.ONE
    target: str | None = None
    is_custom_list: bool = False
    is_custom: bool = False

    @property
    def is_many(self) -> bool:
        return self.cardinality is Cardinality.MANY

    @property
    def is_text(self) -> bool:
        return self.kind is FieldKind.PRIMITIVE and self.data_type in TEXT_DATA_TYPES

    @property
    def is_number(self) -> bool:
        return (
            self.kind in (FieldKind.PRIMITIVE, FieldKind.IDENTIFIER)
            and self.data_type in NUMBER_DATA_TYPES
        )


@dataclass(frozen=True, slots=True)
class RecordType:
    """Schema of one kind of record, e.g. ``api::company.company``."""

    identifier: str
    fields: Mapping[str, FieldSpec] = field(default_factory=dict["str", "FieldSpec"])

    @property
    def namespace(self) -> str:
        namespace, separator, _ = self.identifier.partition(NAMESPACE_SEPARATOR)
        return namespace if separator else ""

    @property
    def is_content(self) -> bool:
        return self.namespace == CONTENT_NAMESPACE

    @property
    def sheet_name(self) -> str:
        name = self.identifier.rsplit(".", 1)[-1]
        if NAMESPACE_SEPARATOR in name:
            name = name.split(NAMESPACE_SEPARATOR, 1)[1]
        return _SHEET_NAME_INVALID.sub("_", name)[:MAX_SHEET_NAME_LENGTH]

    def spec_for(self, name: str) -> FieldSpec | None:
        return self.fields.get(name)

    def has_field(self, name: str) -> bool:
        return name in self.fields

    def fields_of_kind(self, *kinds: FieldKind) -> tuple[str, ...]:
        return tuple(name for name, spec in self.fields.items() if spec.kind in kinds)

    def relation_fields(self) -> Iterator[tuple[str, FieldSpec]]:
        for name, spec in self.fields.items():
            if spec.kind is FieldKind.RELATION:
                yield name, spec


class SchemaRegistry:
    """In-memory schema capability: ``list_record_types`` / ``get_record_type``."""

    def __init__(self, record_types: Iterable[RecordType]) -> None:
        self._record_types: dict[str, RecordType] = {}
        for record_type in record_types:
            if record_type.identifier in self._record_types:
                raise SchemaError(f"Duplicate record type {record_type.identifier}")
            self._record_types[record_type.identifier] = record_type

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._record_types

    def list_record_types(self) -> list[RecordType]:
        return list(self._record_types.values())

    def get_record_type(self, identifier: str) -> RecordType:
        record_type = self._record_types.get(identifier)
        if record_type is None:
            raise SchemaError(f"Content type {identifier} not found")
        return record_type

    def find_record_type(self, identifier: str | None) -> RecordType | None:
        if identifier is None:
            return None
        return self._record_types.get(identifier)

    def content_types(self) -> list[RecordType]:
        """Record types whose namespace marks them as user content."""

        return [
            record_type for record_type in self._record_types.values() if record_type.is_content
        ]


def content_type_for_sheet(sheet_name: str) -> str:
    """Map a workbook sheet name to the record type it was exported from."""

    name = sheet_name.strip()
    return f"{CONTENT_NAMESPACE}{NAMESPACE_SEPARATOR}{name}.{name}"


def component_column(component: str, subfield: str, *, separator: str = "_") -> str:
    return f"{component}{separator}{subfield}"


def split_component_column(
    column: str,
    record_type: RecordType,
    *,
    separator: str = "_",
) -> tuple[str, str] | None:
    """Return ``(component, subfield)`` when ``column`` addresses a single component.

    A column that names a field directly always wins, and only columns with exactly
    one separator whose prefix is a non-repeating component field qualify.
    """

    if record_type.has_field(column):
        return None
    parts = column.split(separator)
    if len(parts) != 2 or not all(parts):
        return None
    component, subfield = parts
    spec = record_type.spec_for(component)
    if spec is None or spec.kind is not FieldKind.COMPONENT or spec.is_many:
        return None
    return component, subfield


def lookup_field(target: RecordType, candidates: Iterable[str]) -> str | None:
    """First candidate natural-key field that exists on ``target``."""

    for candidate in candidates:
        if target.has_field(candidate):
            return candidate
    return None


def shortcut_value(
    record: Mapping[str, object],
    candidates: Iterable[str],
    target: RecordType | None = None,
) -> object | None:
    """Compact form of a related record.

    With ``target`` this is the value of the field ``lookup_field`` picks on that
    record type, so the value resolves back to the same record; a blank value
    there yields ``None``. Without it, the first non-empty candidate value wins.
    """

    if target is not None:
        key = lookup_field(target, candidates)
        value = None if key is None else record.get(key)
        return None if value is None or value == "" else value
    for candidate in candidates:
        value = record.get(candidate)
        if value is not None and value != "":
            return value
    return None


def searchable_fields(record_type: RecordType) -> list[str]:
    return [name for name, spec in record_type.fields.items() if spec.is_text and name != "locale"]


def number_fields(record_type: RecordType) -> list[str]:
    names = [name for name, spec in record_type.fields.items() if spec.is_number]
    if "id" not in names:
        names.append("id")
    return names
