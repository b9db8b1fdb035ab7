"""Application orchestration entry points."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from functools import partial
from logging import getLogger
from typing import TYPE_CHECKING

from sheetport.adapters.sheets import (
    JsonDocumentCodec,
    SheetFormat,
    XlsxRowCodec,
    reader_for,
)
from sheetport.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyRecordUnitOfWork,
    is_started,
    startup,
)
from sheetport.config import get_reconcile_settings
from sheetport.domain.export import EMPTY_TYPE_ROW, NO_DATA_ROW, ExportProjector
from sheetport.domain.reconciliation import BulkReconciler

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from sheetport.config import ReconcileSettings
    from sheetport.domain.export import ExportRequest
    from sheetport.domain.ports.schema import SchemaProvider
    from sheetport.domain.ports.unit_of_work import RecordUnitOfWork
    from sheetport.domain.types import ReconcileResult

type UnitOfWorkFactory = Callable[[], RecordUnitOfWork]

DEFAULT_EXPORT_STEM = "sheetport"

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ImportReport:
    """Import outcome as reported to callers."""

    result: ReconcileResult

    @property
    def message(self) -> str:
        errors = len(self.result.errors)
        if errors:
            return f"Import completed with {errors} error(s). Please check the details below."
        return "Import completed successfully"

    def as_payload(self) -> dict[str, object]:
        return {
            "message": self.message,
            "result": self.result.as_payload(),
            "summary": self.result.summary(),
        }


def default_unit_of_work_factory(schema: SchemaProvider) -> UnitOfWorkFactory:
    """SQLAlchemy units of work on the configured database, starting the adapter if needed."""

    if not is_started():
        startup()
    return partial(SqlAlchemyRecordUnitOfWork, schema)


def load_import_batch(
    path: Path,
    *,
    record_type: str | None = None,
) -> tuple[dict[str, list[object]], bool]:
    """Read ``path`` into an import batch.

    Returns the batch and whether its rows still need unflattening. Workbook
    sheets map to ``api::<sheet>.<sheet>`` unless ``record_type`` forces a
    target, in which case all sheets feed that record type. Placeholder sheets
    of an empty export are left out.
    """

    source = reader_for(path)
    batch: dict[str, list[object]] = {}
    for key, rows in source.read_rows(path).items():
        if not source.nested and _is_placeholder_sheet(rows):
            log.info("Skipping placeholder sheet %s", key)
            continue
        if record_type and not source.nested:
            identifier = record_type
        else:
            identifier = source.record_type_for(key)
        log.info("Mapped %s to record type %s", key, identifier)
        existing = batch.get(identifier)
        if isinstance(existing, list) and isinstance(rows, list):
            existing.extend(rows)
        else:
            batch[identifier] = rows
    return batch, not source.nested


def _is_placeholder_sheet(rows: object) -> bool:
    """Sheets that an export writes for record types without any records."""

    return (
        isinstance(rows, list)
        and len(rows) == 1
        and rows[0] in (dict(EMPTY_TYPE_ROW), dict(NO_DATA_ROW))
    )


def import_file(
    path: Path,
    *,
    schema: SchemaProvider,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    settings: ReconcileSettings | None = None,
    record_type: str | None = None,
    cleanup: bool = True,
) -> ImportReport:
    """Import an xlsx or JSON file and reconcile it against the record store.

    With ``cleanup`` the file is removed afterwards, whether the import
    succeeded or not.
    """

    try:
        batch, unflatten = load_import_batch(path, record_type=record_type)
        effective_settings = settings or get_reconcile_settings()
        reconciler = BulkReconciler(
            schema=schema,
            unit_of_work_factory=unit_of_work_factory or default_unit_of_work_factory(schema),
            settings=effective_settings,
        )
        log.info(
            "Starting import of %s: record types=%s, transaction mode=%s",
            path.name,
            ", ".join(batch) or "<none>",
            effective_settings.transaction_mode,
        )
        result = reconciler.reconcile(batch, unflatten=unflatten)
    finally:
        if cleanup:
            _remove_upload(path)

    log.info(
        "Finished import of %s: created=%s, updated=%s, skipped=%s, errors=%s",
        path.name,
        result.created,
        result.updated,
        result.skipped,
        len(result.errors),
    )
    return ImportReport(result)


def _remove_upload(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        log.warning("Could not remove uploaded file %s", path, exc_info=True)


def export_records(
    request: ExportRequest,
    *,
    schema: SchemaProvider,
    sheet_format: SheetFormat = SheetFormat.XLSX,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    settings: ReconcileSettings | None = None,
    now: datetime | None = None,
) -> bytes:
    """Export records matching ``request`` as workbook or JSON document bytes."""

    projector = ExportProjector(
        schema,
        unit_of_work_factory or default_unit_of_work_factory(schema),
        settings=settings or get_reconcile_settings(),
    )
    log.info(
        "Starting %s export: record type=%s, search=%r, selected=%s",
        sheet_format,
        request.record_type or "<all>",
        request.search,
        len(request.selected_ids),
    )
    if sheet_format is SheetFormat.JSON:
        return JsonDocumentCodec().write_document(projector.export_document(request, now=now))
    return XlsxRowCodec().write_rows(projector.export_rows(request))


def export_single_record(
    record_type: str,
    record_id: object,
    *,
    schema: SchemaProvider,
    sheet_format: SheetFormat = SheetFormat.JSON,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    settings: ReconcileSettings | None = None,
    now: datetime | None = None,
) -> bytes:
    """Export one record; raises ``RecordNotFoundError`` when it does not exist."""

    projector = ExportProjector(
        schema,
        unit_of_work_factory or default_unit_of_work_factory(schema),
        settings=settings or get_reconcile_settings(),
    )
    document = projector.export_single(record_type, record_id, now=now)
    if sheet_format is SheetFormat.JSON:
        return JsonDocumentCodec().write_document(document)
    data = document["data"]
    assert isinstance(data, dict)
    return XlsxRowCodec().write_rows(projector.project(data))


def export_filename(
    record_type: str | None,
    sheet_format: SheetFormat,
    *,
    now: datetime | None = None,
) -> str:
    """``<type>-export-<YYYY-MM-DD>.<ext>``, e.g. ``company.company-export-2024-05-01.xlsx``."""

    stem = record_type.removeprefix("api::") if record_type else DEFAULT_EXPORT_STEM
    day = (now or datetime.now(UTC)).astimezone(UTC).date().isoformat()
    return f"{stem}-export-{day}{sheet_format.extension}"


def single_export_filename(
    record_id: object,
    sheet_format: SheetFormat,
    *,
    now: datetime | None = None,
) -> str:
    day = (now or datetime.now(UTC)).astimezone(UTC).date().isoformat()
    return f"entry-{record_id}-{day}{sheet_format.extension}"
