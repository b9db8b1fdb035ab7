"""Merge incoming embedded components into the stored ones."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, cast

from sheetport.config.reconcile import IDENTIFIER_KEY
from sheetport.domain.schema import FieldKind

if TYPE_CHECKING:
    from sheetport.domain.ports.schema import SchemaProvider
    from sheetport.domain.schema import RecordType
    from sheetport.domain.types import Record


def merge_components(
    data: Mapping[str, object],
    existing: Mapping[str, object] | None,
    record_type: RecordType,
    *,
    schema: SchemaProvider,
    delimiter: str,
) -> Record:
    """Prepare component values in ``data`` for writing.

    Incoming blocks inherit the stored block's ``id`` (by position for repeating
    components) so the store updates them in place. List-typed sub-fields that
    arrive as delimiter-joined strings are split.
    """

    merged = dict(data)
    for name in record_type.fields_of_kind(FieldKind.COMPONENT):
        new_value = merged.get(name)
        if not new_value:
            continue
        spec = record_type.spec_for(name)
        component_type = schema.find_record_type(spec.target if spec else None)
        old_value = existing.get(name) if existing else None

        if isinstance(new_value, Mapping):
            old_block = old_value if isinstance(old_value, Mapping) else None
            merged[name] = _merge_block(new_value, old_block, component_type, delimiter)
        elif isinstance(new_value, list):
            old_blocks = old_value if isinstance(old_value, list) else []
            merged[name] = [
                _merge_block(
                    block,
                    _block_at(old_blocks, index),
                    component_type,
                    delimiter,
                )
                if isinstance(block, Mapping)
                else block
                for index, block in enumerate(new_value)
            ]
    return merged


def _block_at(blocks: list[object], index: int) -> Mapping[str, object] | None:
    if index < len(blocks) and isinstance(blocks[index], Mapping):
        return cast("Mapping[str, object]", blocks[index])
    return None


def _merge_block(
    block: Mapping[str, object],
    old_block: Mapping[str, object] | None,
    component_type: RecordType | None,
    delimiter: str,
) -> Record:
    merged: Record = dict(block)
    if old_block is not None and merged.get(IDENTIFIER_KEY) is None:
        old_id = old_block.get(IDENTIFIER_KEY)
        if old_id is not None:
            merged[IDENTIFIER_KEY] = old_id
    for key, value in list(merged.items()):
        if isinstance(value, str) and _is_list_subfield(key, old_block, component_type):
            merged[key] = value.split(delimiter)
    return merged


def _is_list_subfield(
    key: str,
    old_block: Mapping[str, object] | None,
    component_type: RecordType | None,
) -> bool:
    if component_type is not None:
        spec = component_type.spec_for(key)
        if spec is not None and (spec.is_custom_list or spec.is_many):
            return True
    return old_block is not None and isinstance(old_block.get(key), list)
