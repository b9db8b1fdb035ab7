"""Shared value types for rows, records and reconciliation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

type Record = dict[str, object]
type Row = dict[str, object]
type ImportBatch = Mapping[str, Sequence[Row | Record]]


@dataclass(frozen=True, slots=True)
class Reference:
    """Pointer to another record; carries nothing but the target's id."""

    id: int | str

    def as_dict(self) -> dict[str, int | str]:
        return {"id": self.id}


class RowOutcome(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class RowError:
    """Error attached to a spreadsheet row, or to a whole slice when ``row_number`` is None."""

    message: str
    row_number: int | None = None


@dataclass(slots=True)
class ReconcileResult:
    """Outcome of one import call."""

    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[RowError] = field(default_factory=list["RowError"])

    def record(self, outcome: RowOutcome) -> None:
        if outcome is RowOutcome.CREATED:
            self.created += 1
        elif outcome is RowOutcome.UPDATED:
            self.updated += 1
        else:
            self.skipped += 1

    def add_error(self, message: str, *, row_number: int | None = None) -> None:
        self.errors.append(RowError(message=message, row_number=row_number))

    def reset_counts(self) -> None:
        self.created = 0
        self.updated = 0
        self.skipped = 0

    def merge(self, other: ReconcileResult) -> None:
        self.created += other.created
        self.updated += other.updated
        self.skipped += other.skipped
        self.errors.extend(other.errors)

    def messages(self) -> list[str]:
        return [error.message for error in self.errors]

    def as_payload(self) -> dict[str, object]:
        """Shape exposed to callers: ``{created, updated, errors}``."""

        return {"created": self.created, "updated": self.updated, "errors": self.messages()}

    def summary(self) -> dict[str, int]:
        return {
            "total": self.created + self.updated,
            "created": self.created,
            "updated": self.updated,
            "errors": len(self.errors),
        }
