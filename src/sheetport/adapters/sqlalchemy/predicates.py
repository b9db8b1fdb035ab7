"""Translate the equality part of a filter expression into SQL predicates.

Only conditions that hold for every matching record are translated: ``$eq``
and ``$in`` on the record id, and on text fields when the operands are
strings. Everything else (ranges, text search, relational and ``$or``
conditions) is left to ``sheetport.domain.filters.matches``, which still runs
over the narrowed rows.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

from sheetport.adapters.sqlalchemy.mappings import record_table
from sheetport.config.reconcile import IDENTIFIER_KEY

if TYPE_CHECKING:
    from sqlalchemy import ColumnElement

    from sheetport.domain.schema import RecordType

_EQUALITY_OPERATORS = ("$eq", "$in")


def coerce_record_id(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def equality_predicates(
    filters: Mapping[str, object] | None,
    record_type: RecordType | None,
) -> list[ColumnElement[bool]]:
    """SQL predicates implied by the top-level conjunction of ``filters``."""

    if not filters:
        return []
    predicates: list[ColumnElement[bool]] = []
    for key, condition in filters.items():
        if key == "$and":
            clauses = condition if isinstance(condition, list) else [condition]
            for clause in clauses:
                if isinstance(clause, Mapping):
                    predicates.extend(equality_predicates(clause, record_type))
            continue
        if key.startswith("$"):
            continue
        for operands in _equality_operands(condition):
            predicate = _field_predicate(key, operands, record_type)
            if predicate is not None:
                predicates.append(predicate)
    return predicates


def _equality_operands(condition: object) -> list[list[object]]:
    if not isinstance(condition, Mapping):
        return [[condition]]
    found: list[list[object]] = []
    for operator in _EQUALITY_OPERATORS:
        if operator not in condition:
            continue
        operand = condition[operator]
        if operator == "$in":
            if not isinstance(operand, (list, tuple)):
                continue
            found.append(list(operand))
        else:
            found.append([operand])
    return found


def _field_predicate(
    key: str,
    operands: list[object],
    record_type: RecordType | None,
) -> ColumnElement[bool] | None:
    if key == IDENTIFIER_KEY:
        ids = [coerce_record_id(operand) for operand in operands]
        if any(record_id is None for record_id in ids):
            return None
        return record_table.c.id.in_(ids)

    spec = record_type.spec_for(key) if record_type is not None else None
    if spec is None or not spec.is_text:
        return None
    if not all(isinstance(operand, str) for operand in operands):
        return None
    return record_table.c.data[key].as_string().in_(operands)
