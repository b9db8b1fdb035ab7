"""JSON import/export documents.

Exports are written as ``{"version", "timestamp", "data": {record type: [records]}}``.
Imports accept that document or a bare ``{record type: [records]}`` mapping.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import date, datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING, ClassVar, cast
from uuid import UUID

from sheetport.domain.errors import ValidationError
from sheetport.domain.types import Reference

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from sheetport.domain.types import Row

log = logging.getLogger(__name__)

DOCUMENT_DATA_KEY = "data"


class JsonDocumentCodec:
    """``RowSource`` and ``RowSink`` for JSON documents of nested records."""

    nested: ClassVar[bool] = True

    def read_rows(self, path: Path) -> dict[str, list[Row]]:
        try:
            payload = json.loads(path.read_bytes())
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValidationError(f"Cannot read JSON file {path.name}: {exc}") from exc
        if not isinstance(payload, Mapping):
            raise ValidationError(f"{path.name} must contain a JSON object")

        document = cast("Mapping[str, object]", payload)
        data = document.get(DOCUMENT_DATA_KEY)
        if isinstance(data, Mapping):
            document = cast("Mapping[str, object]", data)
        log.info("Parsed JSON data: %s", ", ".join(document) or "<empty>")
        # slices are handed over as-is; malformed ones are reported per record type
        return {str(key): cast("list[Row]", value) for key, value in document.items()}

    def record_type_for(self, key: str) -> str:
        return key

    def write_rows(self, sheets: Mapping[str, Sequence[Row]]) -> bytes:
        return self.write_document(sheets)

    def write_document(self, document: Mapping[str, object]) -> bytes:
        return json.dumps(
            document,
            indent=2,
            ensure_ascii=False,
            default=_json_default,
        ).encode("utf-8")


def _json_default(value: object) -> object:
    if isinstance(value, Reference):
        return value.as_dict()
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
