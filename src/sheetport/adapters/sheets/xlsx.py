"""Workbook reading and writing with openpyxl.

One worksheet per record type. The first row holds the column names; every
following non-empty row becomes one ``Row``. Blank cells are kept as ``None``
so an emptied cell clears the stored value on import.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import datetime
from io import BytesIO
from typing import TYPE_CHECKING, ClassVar
from zipfile import BadZipFile

from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.utils.exceptions import InvalidFileException

from sheetport.domain.errors import ValidationError
from sheetport.domain.schema import content_type_for_sheet

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

    from openpyxl.worksheet.worksheet import Worksheet

    from sheetport.domain.types import Row

log = logging.getLogger(__name__)


class XlsxRowCodec:
    """``RowSource`` and ``RowSink`` for ``.xlsx`` workbooks."""

    nested: ClassVar[bool] = False

    def read_rows(self, path: Path) -> dict[str, list[Row]]:
        try:
            workbook = load_workbook(path, read_only=True, data_only=True)
        except (InvalidFileException, BadZipFile, KeyError, OSError) as exc:
            raise ValidationError(f"Cannot read workbook {path.name}: {exc}") from exc

        sheets: dict[str, list[Row]] = {}
        try:
            for worksheet in workbook.worksheets:
                rows = _sheet_rows(worksheet.iter_rows(values_only=True))
                if not rows:
                    log.info("Skipping empty sheet %s", worksheet.title)
                    continue
                log.info("Reading sheet %r -> %s rows", worksheet.title, len(rows))
                sheets[worksheet.title] = rows
        finally:
            workbook.close()
        return sheets

    def record_type_for(self, sheet_name: str) -> str:
        return content_type_for_sheet(sheet_name)

    def write_rows(self, sheets: Mapping[str, Sequence[Row]]) -> bytes:
        if not sheets:
            raise ValidationError("A workbook needs at least one sheet")
        workbook = Workbook()
        default_sheet = workbook.active
        if default_sheet is not None:
            workbook.remove(default_sheet)
        for title, rows in sheets.items():
            _write_sheet(workbook.create_sheet(title=title), rows)
        buffer = BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()


def _sheet_rows(values: Iterable[tuple[object, ...]]) -> list[Row]:
    iterator = iter(values)
    header = next(iterator, None)
    if header is None:
        return []
    columns = [
        (index, str(name).strip())
        for index, name in enumerate(header)
        if name is not None and str(name).strip()
    ]
    rows: list[Row] = []
    for raw in iterator:
        row: Row = {}
        for index, name in columns:
            cell = raw[index] if index < len(raw) else None
            if isinstance(cell, str) and not cell.strip():
                cell = None
            row[name] = cell
        if any(value is not None for value in row.values()):
            rows.append(row)
    return rows


def _headers(rows: Sequence[Row]) -> list[str]:
    headers: dict[str, None] = {}
    for row in rows:
        for key in row:
            headers.setdefault(key, None)
    return list(headers)


def _write_sheet(worksheet: Worksheet, rows: Sequence[Row]) -> None:
    headers = _headers(rows)
    for column, header in enumerate(headers, start=1):
        worksheet.cell(row=1, column=column, value=header)
    for row_index, row in enumerate(rows, start=2):
        for column, header in enumerate(headers, start=1):
            value = _excel_value(row.get(header))
            cell = worksheet.cell(row=row_index, column=column, value=value)
            if isinstance(value, str) and value.startswith("="):
                # keep user text from being evaluated as a formula
                cell.data_type = "s"


def _excel_value(value: object) -> object:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, datetime):
        return value.isoformat() if value.tzinfo is not None else value
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, default=str, ensure_ascii=False)
    return str(value)
