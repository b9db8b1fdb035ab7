"""Resolve relation cells to references by natural key."""

from __future__ import annotations

from collections.abc import Mapping
from logging import getLogger
from typing import TYPE_CHECKING, cast

from sheetport.config.reconcile import IDENTIFIER_KEY, ReconcileSettings
from sheetport.domain.errors import RelationResolutionError, SchemaError
from sheetport.domain.schema import lookup_field
from sheetport.domain.types import Reference

from .codec import is_blank, split_list

if TYPE_CHECKING:
    from sheetport.domain.ports.persistence import RecordRepository
    from sheetport.domain.ports.schema import SchemaProvider
    from sheetport.domain.schema import FieldSpec, RecordType
    from sheetport.domain.types import Record

log = getLogger(__name__)


class RelationResolver:
    """Replace raw relation values with ``Reference`` objects.

    Each raw value is looked up on the target record type through the first
    configured natural-key field that the target actually has. Nothing is ever
    created on the fly: an unknown value fails the field, and the caller turns
    that into a row error.
    """

    def __init__(self, schema: SchemaProvider, settings: ReconcileSettings | None = None) -> None:
        self.schema = schema
        self.settings = settings or ReconcileSettings()

    def resolve(
        self,
        record: Mapping[str, object],
        record_type: RecordType,
        *,
        repository: RecordRepository,
    ) -> Record:
        """Return a copy of ``record`` with every present relation field resolved.

        Relation fields missing from ``record`` stay missing so they are left untouched.
        """

        resolved = dict(record)
        for name, spec in record_type.relation_fields():
            if name not in record:
                continue
            resolved[name] = self.resolve_field(name, spec, record[name], repository=repository)
        return resolved

    def resolve_field(
        self,
        name: str,
        spec: FieldSpec,
        raw: object,
        *,
        repository: RecordRepository,
    ) -> Reference | list[Reference] | None:
        target = self._target_type(name, spec, raw)
        delimiter = self.settings.list_delimiter

        if spec.is_many:
            values = split_list(raw, delimiter)
            return [
                self._resolve_value(name, target, value, repository=repository)
                for value in values
                if not is_blank(value)
            ]

        if is_blank(raw):
            return None
        if isinstance(raw, (list, tuple)) or (isinstance(raw, str) and delimiter in raw):
            raise RelationResolutionError(f"{name} is not an array", field=name, value=raw)
        return self._resolve_value(name, target, raw, repository=repository)

    def _target_type(self, name: str, spec: FieldSpec, raw: object) -> RecordType:
        if spec.target is None:
            raise RelationResolutionError("relation has no target type", field=name, value=raw)
        try:
            return self.schema.get_record_type(spec.target)
        except SchemaError as exc:
            raise RelationResolutionError(str(exc), field=name, value=raw) from exc

    def _resolve_value(
        self,
        name: str,
        target: RecordType,
        value: object,
        *,
        repository: RecordRepository,
    ) -> Reference:
        if isinstance(value, Reference):
            return value
        if isinstance(value, Mapping):
            target_id = value.get(IDENTIFIER_KEY)
            if target_id is None:
                raise RelationResolutionError("object without id", field=name, value=value)
            return Reference(target_id)

        key = lookup_field(target, self.settings.relation_lookup_fields)
        if key is None:
            candidates = ", ".join(self.settings.relation_lookup_fields)
            raise RelationResolutionError(
                f"{target.identifier} has none of the lookup fields {candidates}",
                field=name,
                value=value,
            )

        match = repository.find_first(target.identifier, {key: {"$eq": value}})
        if match is None:
            raise RelationResolutionError(
                f"Data with {key} {value} not found", field=name, value=value
            )
        target_id = cast("int | str", match[IDENTIFIER_KEY])
        log.debug("Resolved %s=%r to %s #%s", name, value, target.identifier, target_id)
        return Reference(target_id)
