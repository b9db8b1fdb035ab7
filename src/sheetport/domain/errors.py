"""Error taxonomy for import and export operations."""

from __future__ import annotations

import json


class SheetportError(Exception):
    """Base class for all import/export failures."""


class SchemaError(SheetportError):
    """Raised when a referenced record type is unknown."""


class ValidationError(SheetportError):
    """Raised when an input file or request cannot be processed at all."""


class RepositoryError(SheetportError):
    """Raised when the record store fails."""


class WriteError(RepositoryError):
    """Raised when the record store rejects a create or update."""


class RecordNotFoundError(SheetportError):
    """Raised when a requested record does not exist."""


class RelationResolutionError(SheetportError):
    """Raised when a relation cell cannot be turned into record references."""

    def __init__(self, reason: str, *, field: str, value: object = None) -> None:
        self.reason = reason
        self.field = field
        self.value = value
        super().__init__(
            f"Failed processing field {field} with value "
            f"{json.dumps(value, default=str)}: {reason}"
        )
