"""Bulk reconciler: decide create / update / skip for every imported row.

Per row the reconciler runs

    lookup-existing -> resolve-relations -> resolve-components
        -> create        (no existing record)
        -> update        (existing record and ``has_changes``)
        -> skip          (existing record, nothing changed)

Any exception discards the row's progress and is reported with the
spreadsheet row number (data starts on row 2, below the header).

Transaction granularity follows ``ReconcileSettings.transaction_mode``:

``per_row``
    every row gets its own unit of work and commits on its own; failed rows
    are rolled back alone and the batch carries on.
``batch``
    one unit of work per record type; the first failing row rolls the whole
    slice back, zeroes its counters and stops the slice.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from sheetport.config.reconcile import IDENTIFIER_KEY, ReconcileSettings, TransactionMode
from sheetport.domain.errors import SchemaError, SheetportError
from sheetport.domain.types import ReconcileResult, RowOutcome

from .codec import RowCodec, is_blank
from .components import merge_components
from .diff import has_changes
from .relations import RelationResolver

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from sheetport.domain.ports.persistence import RecordRepository
    from sheetport.domain.ports.schema import SchemaProvider
    from sheetport.domain.ports.unit_of_work import RecordUnitOfWork
    from sheetport.domain.schema import RecordType
    from sheetport.domain.types import ImportBatch, Record

log = getLogger(__name__)

HEADER_ROW_OFFSET = 2
_MISSING_ID_MARKERS = frozenset({"null", "undefined"})


def has_identifier(value: object) -> bool:
    """Whether a row's id cell should trigger a lookup of the stored record."""

    if is_blank(value):
        return False
    return not (isinstance(value, str) and value.strip() in _MISSING_ID_MARKERS)


@dataclass(slots=True)
class _RowState:
    row_number: int
    existing: Record | None = None

    def failure_message(self, exc: BaseException) -> str:
        action = "updating" if self.existing is not None else "creating"
        return f"Failed {action} on row {self.row_number}: {exc}"


@dataclass(slots=True)
class BulkReconciler:
    """Apply an import batch to the record store through units of work."""

    schema: SchemaProvider
    unit_of_work_factory: Callable[[], RecordUnitOfWork]
    settings: ReconcileSettings = field(default_factory=ReconcileSettings)
    codec: RowCodec | None = None
    resolver: RelationResolver | None = None

    def __post_init__(self) -> None:
        if self.codec is None:
            self.codec = RowCodec(self.settings, schema=self.schema)
        if self.resolver is None:
            self.resolver = RelationResolver(self.schema, self.settings)

    def reconcile(self, batch: ImportBatch, *, unflatten: bool = True) -> ReconcileResult:
        """Reconcile every record-type slice of ``batch``.

        ``unflatten`` is ``False`` for JSON imports, whose entries already carry the
        nested record shape.
        """

        result = ReconcileResult()
        for identifier, rows in batch.items():
            try:
                record_type = self.schema.get_record_type(identifier)
            except SchemaError as exc:
                log.warning("Skipping rows for unknown record type %s", identifier)
                result.add_error(str(exc))
                continue
            if isinstance(rows, (str, bytes, Mapping)) or not isinstance(rows, list):
                result.add_error(f"Invalid data format for {identifier}")
                continue
            slice_result = self.reconcile_rows(record_type, rows, unflatten=unflatten)
            log.info(
                "Reconciled %s: created=%s, updated=%s, skipped=%s, errors=%s",
                identifier,
                slice_result.created,
                slice_result.updated,
                slice_result.skipped,
                len(slice_result.errors),
            )
            result.merge(slice_result)
        return result

    def reconcile_rows(
        self,
        record_type: RecordType,
        rows: Sequence[object],
        *,
        unflatten: bool = True,
    ) -> ReconcileResult:
        if self.settings.transaction_mode is TransactionMode.BATCH:
            return self._reconcile_in_one_transaction(record_type, rows, unflatten=unflatten)
        return self._reconcile_row_by_row(record_type, rows, unflatten=unflatten)

    def _reconcile_row_by_row(
        self,
        record_type: RecordType,
        rows: Sequence[object],
        *,
        unflatten: bool,
    ) -> ReconcileResult:
        result = ReconcileResult()
        for index, row in enumerate(rows):
            state = _RowState(row_number=index + HEADER_ROW_OFFSET)
            with self.unit_of_work_factory() as uow:
                try:
                    outcome = self._reconcile_row(
                        uow.repositories.records, record_type, row, state, unflatten=unflatten
                    )
                    uow.commit()
                except Exception as exc:  # noqa: BLE001
                    uow.rollback()
                    message = state.failure_message(exc)
                    log.warning("%s: %s", record_type.identifier, message)
                    result.add_error(message, row_number=state.row_number)
                    continue
            result.record(outcome)
        return result

    def _reconcile_in_one_transaction(
        self,
        record_type: RecordType,
        rows: Sequence[object],
        *,
        unflatten: bool,
    ) -> ReconcileResult:
        result = ReconcileResult()
        with self.unit_of_work_factory() as uow:
            for index, row in enumerate(rows):
                state = _RowState(row_number=index + HEADER_ROW_OFFSET)
                try:
                    outcome = self._reconcile_row(
                        uow.repositories.records, record_type, row, state, unflatten=unflatten
                    )
                except Exception as exc:  # noqa: BLE001
                    uow.rollback()
                    result.add_error(state.failure_message(exc), row_number=state.row_number)
                    result.reset_counts()
                    log.error(  # noqa: TRY400
                        "Transaction for %s rolled back after row %s: %s",
                        record_type.identifier,
                        state.row_number,
                        exc,
                    )
                    return result
                result.record(outcome)
            uow.commit()
        return result

    def _reconcile_row(
        self,
        repository: RecordRepository,
        record_type: RecordType,
        row: object,
        state: _RowState,
        *,
        unflatten: bool,
    ) -> RowOutcome:
        if not isinstance(row, Mapping):
            raise SheetportError(f"Expected an object per row, got {type(row).__name__}")
        assert self.codec is not None
        assert self.resolver is not None

        data = self.codec.unflatten(row, record_type) if unflatten else dict(row)
        record_id = data.pop(IDENTIFIER_KEY, None)
        for key in self.settings.system_keys:
            data.pop(key, None)

        if has_identifier(record_id):
            state.existing = repository.find_by_id(record_type.identifier, record_id)
            if state.existing is None:
                log.debug("%s #%s not found; creating it", record_type.identifier, record_id)

        data = self.resolver.resolve(data, record_type, repository=repository)
        data = merge_components(
            data,
            state.existing,
            record_type,
            schema=self.schema,
            delimiter=self.settings.list_delimiter,
        )

        if state.existing is None:
            repository.create(record_type.identifier, data)
            return RowOutcome.CREATED
        if not has_changes(state.existing, data, ignored_keys=self.settings.ignored_diff_keys):
            return RowOutcome.SKIPPED
        repository.update(record_type.identifier, state.existing[IDENTIFIER_KEY], data)
        return RowOutcome.UPDATED
