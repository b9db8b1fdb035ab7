"""Reconciliation defaults shared by import and export."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Final

from .env import optional_env_var
from .errors import ConfigurationError

IDENTIFIER_KEY: Final[str] = "id"
DEFAULT_LIST_DELIMITER: Final[str] = "|"
DEFAULT_COMPONENT_SEPARATOR: Final[str] = "_"

SYSTEM_KEYS: Final[frozenset[str]] = frozenset(
    {
        "documentId",
        "locale",
        "createdAt",
        "updatedAt",
        "publishedAt",
        "createdBy",
        "updatedBy",
        "localizations",
        "status",
    }
)

# Natural keys tried, in order, when a relation cell has to be resolved to a record.
DEFAULT_RELATION_LOOKUP_FIELDS: Final[tuple[str, ...]] = (
    "email",
    "businessEmail",
    "name",
    "title",
    "tickerCode",
)

# Human-friendly fields used to collapse a related record into one cell on export.
DEFAULT_SHORTCUT_FIELDS: Final[tuple[str, ...]] = (
    "email",
    "businessEmail",
    "name",
    "title",
    "tickerCode",
)

DEFAULT_EXPORT_DENYLIST: Final[frozenset[str]] = frozenset({"wishlist", "availableSlot"})


class TransactionMode(StrEnum):
    """How many rows share one unit of work during an import."""

    PER_ROW = "per_row"
    BATCH = "batch"


@dataclass(frozen=True, slots=True)
class ReconcileSettings:
    list_delimiter: str = DEFAULT_LIST_DELIMITER
    component_separator: str = DEFAULT_COMPONENT_SEPARATOR
    relation_lookup_fields: tuple[str, ...] = DEFAULT_RELATION_LOOKUP_FIELDS
    shortcut_fields: tuple[str, ...] = DEFAULT_SHORTCUT_FIELDS
    system_keys: frozenset[str] = SYSTEM_KEYS
    export_denylist: frozenset[str] = DEFAULT_EXPORT_DENYLIST
    transaction_mode: TransactionMode = TransactionMode.PER_ROW
    ignored_diff_keys: frozenset[str] = field(init=False)

    def __post_init__(self) -> None:
        if not self.list_delimiter:
            raise ConfigurationError("List delimiter must not be empty")
        if len(self.component_separator) != 1:
            raise ConfigurationError("Component separator must be a single character")
        if self.list_delimiter == self.component_separator:
            raise ConfigurationError("List delimiter and component separator must differ")
        object.__setattr__(self, "ignored_diff_keys", self.system_keys | {IDENTIFIER_KEY})


def get_reconcile_settings() -> ReconcileSettings:
    """Return reconcile settings, honouring environment overrides."""

    delimiter = optional_env_var("SHEETPORT_LIST_DELIMITER") or DEFAULT_LIST_DELIMITER
    mode_value = optional_env_var("SHEETPORT_TRANSACTION_MODE") or TransactionMode.PER_ROW.value
    try:
        mode = TransactionMode(mode_value.lower())
    except ValueError as exc:
        choices = ", ".join(m.value for m in TransactionMode)
        raise ConfigurationError(
            f"Invalid SHEETPORT_TRANSACTION_MODE {mode_value!r}; expected one of: {choices}"
        ) from exc
    return ReconcileSettings(list_delimiter=delimiter, transaction_mode=mode)
