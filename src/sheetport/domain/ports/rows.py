"""Ports for reading and writing tabular files."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

    from sheetport.domain.types import Row


@runtime_checkable
class RowSource(Protocol):
    """Reads ``sheet name -> rows`` from a file."""

    def read_rows(self, path: Path) -> dict[str, list[Row]]: ...


@runtime_checkable
class RowSink(Protocol):
    """Serialises ``sheet name -> rows`` into file bytes."""

    def write_rows(self, sheets: Mapping[str, Sequence[Row]]) -> bytes: ...
