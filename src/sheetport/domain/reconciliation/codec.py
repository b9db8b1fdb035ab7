"""Row codec: flat spreadsheet rows <-> schema-shaped records.

Flattening is lossy on purpose. Relations collapse to one human-readable
shortcut value and repeating components travel as a JSON string, so only
records made of plain values and single components survive a round trip.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from logging import getLogger
from typing import TYPE_CHECKING

from sheetport.config.reconcile import IDENTIFIER_KEY, ReconcileSettings
from sheetport.domain.schema import (
    FieldKind,
    component_column,
    shortcut_value,
    split_component_column,
)
from sheetport.domain.types import Reference

if TYPE_CHECKING:
    from collections.abc import Collection

    from sheetport.domain.ports.schema import SchemaProvider
    from sheetport.domain.schema import FieldSpec, RecordType
    from sheetport.domain.types import Record, Row

log = getLogger(__name__)

_OMIT = object()


def is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_json_if_needed(value: object) -> object:
    """Decode strings that look like JSON arrays/objects, keeping the literal otherwise."""

    if not isinstance(value, str):
        return value
    trimmed = value.strip()
    if not trimmed.startswith(("[", "{")):
        return value
    try:
        return json.loads(trimmed)
    except json.JSONDecodeError:
        return value


def split_list(value: object, delimiter: str) -> list[object]:
    """Turn a delimiter-joined cell into a list; lists pass through unchanged."""

    if is_blank(value):
        return []
    if isinstance(value, list):
        return list(value)
    if isinstance(value, str):
        return value.split(delimiter)
    return [value]


class RowCodec:
    """Convert between a record type's flat row shape and its nested record shape.

    With a ``schema`` a related record collapses to the value of the natural-key
    field that relation lookups use on its record type.
    """

    def __init__(
        self,
        settings: ReconcileSettings | None = None,
        *,
        schema: SchemaProvider | None = None,
    ) -> None:
        self.settings = settings or ReconcileSettings()
        self.schema = schema

    # Row -> Record -----------------------------------------------------------

    def unflatten(self, row: Mapping[str, object], record_type: RecordType) -> Record:
        record: Record = {}
        separator = self.settings.component_separator
        for column, cell in row.items():
            value = None if is_blank(cell) else cell
            spec = record_type.spec_for(column)

            if spec is not None and spec.is_custom_list:
                record[column] = None if value is None else self._split_custom_list(value)
                continue

            component = split_component_column(column, record_type, separator=separator)
            if component is not None:
                name, subfield = component
                block = record.get(name)
                if not isinstance(block, dict):
                    block = {}
                    record[name] = block
                block[subfield] = parse_json_if_needed(value)
                continue

            record[column] = parse_json_if_needed(value)
        return record

    def _split_custom_list(self, value: object) -> list[object]:
        return split_list(parse_json_if_needed(value), self.settings.list_delimiter)

    # Record -> Row -----------------------------------------------------------

    def flatten(
        self,
        record: Mapping[str, object],
        record_type: RecordType,
        *,
        skip: Collection[str] = (),
    ) -> Row:
        row: Row = {}
        for key, value in record.items():
            if key in self.settings.system_keys or key in skip:
                continue
            spec = record_type.spec_for(key)
            if spec is None:
                row[key] = self._cell(value)
                continue
            if spec.kind is FieldKind.COMPONENT:
                self._flatten_component(row, key, spec, value)
                continue
            if spec.kind is FieldKind.RELATION:
                shortcut = self._relation_cell(value, spec)
                if shortcut is not _OMIT:
                    row[key] = shortcut
                continue
            row[key] = self._cell(value, spec)
        return row

    def _flatten_component(
        self,
        row: Row,
        name: str,
        spec: FieldSpec,
        value: object,
    ) -> None:
        if value is None:
            return
        if spec.is_many or isinstance(value, list):
            blocks = value if isinstance(value, list) else [value]
            row[name] = json.dumps(
                [self._strip_block(block) for block in blocks],
                default=str,
                ensure_ascii=False,
            )
            return
        if not isinstance(value, Mapping):
            log.debug("Component %s holds a non-object value; exporting it verbatim", name)
            row[name] = self._cell(value)
            return
        separator = self.settings.component_separator
        for subfield, subvalue in value.items():
            if subfield == IDENTIFIER_KEY or subfield in self.settings.system_keys:
                continue
            row[component_column(name, subfield, separator=separator)] = self._cell(subvalue)

    def _strip_block(self, block: object) -> object:
        if not isinstance(block, Mapping):
            return block
        return {
            key: value
            for key, value in block.items()
            if key != IDENTIFIER_KEY and key not in self.settings.system_keys
        }

    def _relation_cell(self, value: object, spec: FieldSpec) -> object:
        if value is None:
            return None
        target = self._target_type(spec)
        if isinstance(value, list):
            shortcuts = [self._shortcut(item, target) for item in value]
            return self.settings.list_delimiter.join(
                str(item) for item in shortcuts if item is not None
            )
        shortcut = self._shortcut(value, target)
        return _OMIT if shortcut is None else shortcut

    def _target_type(self, spec: FieldSpec) -> RecordType | None:
        if self.schema is None:
            return None
        return self.schema.find_record_type(spec.target)

    def _shortcut(self, value: object, target: RecordType | None) -> object | None:
        if isinstance(value, Mapping):
            if target is not None:
                return shortcut_value(value, self.settings.relation_lookup_fields, target)
            return shortcut_value(value, self.settings.shortcut_fields)
        if isinstance(value, Reference):
            return None
        return value

    def _cell(self, value: object, spec: FieldSpec | None = None) -> object:
        if isinstance(value, list):
            if spec is not None and spec.is_custom_list:
                return self.settings.list_delimiter.join(str(item) for item in value)
            return json.dumps(value, default=str, ensure_ascii=False)
        if isinstance(value, Mapping):
            return json.dumps(value, default=str, ensure_ascii=False)
        if isinstance(value, Reference):
            return value.id
        return value
