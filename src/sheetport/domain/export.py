"""Export projector: read records matching a request and shape them for output."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Final

from sheetport import __version__
from sheetport.config.reconcile import IDENTIFIER_KEY, ReconcileSettings
from sheetport.domain.errors import RecordNotFoundError, SheetportError
from sheetport.domain.filters import (
    build_search_filter,
    combine_filters,
    parse_query_filters,
    selection_filter,
)
from sheetport.domain.reconciliation.codec import RowCodec
from sheetport.domain.schema import MAX_SHEET_NAME_LENGTH, FieldKind

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from sheetport.domain.filters import FilterExpression
    from sheetport.domain.ports.schema import SchemaProvider
    from sheetport.domain.ports.unit_of_work import RecordUnitOfWork
    from sheetport.domain.schema import RecordType
    from sheetport.domain.types import Record, Row

log = getLogger(__name__)

EMPTY_TYPE_ROW: Final[Mapping[str, str]] = {"message": "No data found"}
NO_DATA_SHEET: Final[str] = "NoData"
NO_DATA_ROW: Final[Mapping[str, str]] = {"message": "No data to export"}


@dataclass(frozen=True, slots=True)
class ExportRequest:
    """What to export: one or all content types, narrowed by filters, search or ids."""

    record_type: str | None = None
    filters: Mapping[str, object] | None = None
    search: str | None = None
    selected_ids: tuple[object, ...] = field(default_factory=tuple)
    selected_field: str = IDENTIFIER_KEY

    @classmethod
    def from_query(cls, params: Mapping[str, object]) -> ExportRequest:
        """Build a request from URL query parameters.

        ``selectedIds`` may be a list or a comma-separated string.
        """

        record_type = params.get("contentType")
        search = params.get("_q")
        selected_field = params.get("selectedField")
        return cls(
            record_type=str(record_type) if record_type else None,
            filters=parse_query_filters(params) or None,
            search=str(search) if search not in (None, "") else None,
            selected_ids=_selected_ids(params.get("selectedIds")),
            selected_field=str(selected_field) if selected_field else IDENTIFIER_KEY,
        )


def _selected_ids(raw: object) -> tuple[object, ...]:
    if raw is None or raw == "":
        return ()
    if isinstance(raw, str):
        return tuple(part.strip() for part in raw.split(",") if part.strip())
    if isinstance(raw, (list, tuple)):
        return tuple(raw)
    return (raw,)


class ExportProjector:
    """Collects records through a unit of work and projects them to rows or documents."""

    def __init__(
        self,
        schema: SchemaProvider,
        unit_of_work_factory: Callable[[], RecordUnitOfWork],
        *,
        codec: RowCodec | None = None,
        settings: ReconcileSettings | None = None,
        version: str = __version__,
    ) -> None:
        self.schema = schema
        self.unit_of_work_factory = unit_of_work_factory
        self.settings = settings or ReconcileSettings()
        self.codec = codec or RowCodec(self.settings, schema=schema)
        self.version = version

    # Selection ---------------------------------------------------------------

    def record_types_for(self, request: ExportRequest) -> list[RecordType]:
        if request.record_type:
            return [self.schema.get_record_type(request.record_type)]
        return self.schema.content_types()

    def filters_for(self, record_type: RecordType, request: ExportRequest) -> FilterExpression:
        if request.selected_ids:
            return selection_filter(record_type, request.selected_ids, request.selected_field)
        return combine_filters(request.filters, build_search_filter(record_type, request.search))

    def collect(self, request: ExportRequest) -> dict[str, list[Record]]:
        """Return ``record type -> records``; unknown explicit types raise ``SchemaError``."""

        record_types = self.record_types_for(request)
        collected: dict[str, list[Record]] = {}
        with self.unit_of_work_factory() as uow:
            for record_type in record_types:
                identifier = record_type.identifier
                try:
                    filters = self.filters_for(record_type, request)
                    log.debug("Exporting %s with filters %s", identifier, filters)
                    records = uow.repositories.records.find_by_filter(identifier, filters)
                except SheetportError:
                    log.exception("Failed to export %s", identifier)
                    uow.rollback()
                    records = []
                log.info("Collected %s %s record(s)", len(records), identifier)
                collected[identifier] = records
        return collected

    # Projection --------------------------------------------------------------

    def skip_fields(self, record_type: RecordType) -> frozenset[str]:
        """Fields never written to a sheet: media, internal custom fields, the denylist."""

        skipped = set(record_type.fields_of_kind(FieldKind.MEDIA))
        skipped.update(
            name
            for name, spec in record_type.fields.items()
            if spec.is_custom and not spec.is_custom_list
        )
        skipped.update(self.settings.export_denylist)
        return frozenset(skipped)

    def flatten_record(self, record: Mapping[str, object], record_type: RecordType) -> Row:
        return self.codec.flatten(record, record_type, skip=self.skip_fields(record_type))

    def project(self, records_by_type: Mapping[str, Sequence[Record]]) -> dict[str, list[Row]]:
        """Flatten records into ``sheet name -> rows``.

        Record types without records still get a sheet holding a placeholder row,
        and an export without any record type yields a single ``NoData`` sheet.
        """

        sheets: dict[str, list[Row]] = {}
        for identifier, records in records_by_type.items():
            record_type = self.schema.get_record_type(identifier)
            sheet_name = _unique_sheet_name(record_type.sheet_name, sheets)
            if records:
                sheets[sheet_name] = [
                    self.flatten_record(record, record_type) for record in records
                ]
            else:
                sheets[sheet_name] = [dict(EMPTY_TYPE_ROW)]
        if not sheets:
            sheets[NO_DATA_SHEET] = [dict(NO_DATA_ROW)]
        return sheets

    def export_rows(self, request: ExportRequest) -> dict[str, list[Row]]:
        return self.project(self.collect(request))

    # Documents ---------------------------------------------------------------

    def export_document(
        self,
        request: ExportRequest,
        *,
        now: datetime | None = None,
    ) -> dict[str, object]:
        """JSON export shape ``{version, timestamp, data}``; empty types are left out."""

        data = {
            identifier: records
            for identifier, records in self.collect(request).items()
            if records
        }
        return self._document(data, now=now)

    def export_single(
        self,
        record_type: str,
        record_id: object,
        *,
        now: datetime | None = None,
    ) -> dict[str, object]:
        definition = self.schema.get_record_type(record_type)
        with self.unit_of_work_factory() as uow:
            record = uow.repositories.records.find_by_id(definition.identifier, record_id)
        if record is None:
            raise RecordNotFoundError(f"Entry {record_id} of {record_type} not found")
        return self._document({definition.identifier: [record]}, now=now)

    def _document(
        self,
        data: dict[str, list[Record]],
        *,
        now: datetime | None,
    ) -> dict[str, object]:
        return {
            "version": self.version,
            "timestamp": format_timestamp(now or datetime.now(UTC)),
            "data": data,
        }


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    moment = moment.astimezone(UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _unique_sheet_name(name: str, taken: Mapping[str, object]) -> str:
    if name not in taken:
        return name
    counter = 2
    while True:
        suffix = f"_{counter}"
        candidate = f"{name[: MAX_SHEET_NAME_LENGTH - len(suffix)]}{suffix}"
        if candidate not in taken:
            log.warning("Sheet name %s is taken; using %s", name, candidate)
            return candidate
        counter += 1
