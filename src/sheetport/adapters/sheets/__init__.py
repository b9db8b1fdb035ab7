"""Tabular file adapters: xlsx workbooks and JSON documents."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

from sheetport.domain.errors import ValidationError

from .json_document import JsonDocumentCodec
from .xlsx import XlsxRowCodec

if TYPE_CHECKING:
    from pathlib import Path


class SheetFormat(StrEnum):
    XLSX = "xlsx"
    JSON = "json"

    @property
    def extension(self) -> str:
        return f".{self.value}"


_FORMAT_BY_SUFFIX: dict[str, SheetFormat] = {
    ".xlsx": SheetFormat.XLSX,
    ".xlsm": SheetFormat.XLSX,
    ".json": SheetFormat.JSON,
}


def detect_format(path: Path) -> SheetFormat:
    suffix = path.suffix.lower()
    try:
        return _FORMAT_BY_SUFFIX[suffix]
    except KeyError:
        raise ValidationError(
            f"Unsupported file type {suffix or '<none>'!r} for {path.name}; "
            "expected .xlsx, .xlsm or .json"
        ) from None


def codec_for(sheet_format: SheetFormat) -> XlsxRowCodec | JsonDocumentCodec:
    if sheet_format is SheetFormat.JSON:
        return JsonDocumentCodec()
    return XlsxRowCodec()


def reader_for(path: Path) -> XlsxRowCodec | JsonDocumentCodec:
    """Pick the reader for ``path`` by its extension."""

    return codec_for(detect_format(path))


__all__ = [
    "JsonDocumentCodec",
    "SheetFormat",
    "XlsxRowCodec",
    "codec_for",
    "detect_format",
    "reader_for",
]
