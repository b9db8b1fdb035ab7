"""Command-line interface: export records to a file or import an edited file."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from sheetport.adapters.schema_file import load_schema
from sheetport.adapters.sheets import SheetFormat
from sheetport.app import (
    export_filename,
    export_records,
    export_single_record,
    import_file,
    single_export_filename,
)
from sheetport.config import (
    ConfigurationError,
    TransactionMode,
    configure_logging,
    get_reconcile_settings,
    require_env_var,
)
from sheetport.domain.errors import SchemaError, ValidationError
from sheetport.domain.export import ExportRequest

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from sheetport.domain.schema import SchemaRegistry

log = logging.getLogger(__name__)

SCHEMA_ENV_VAR = "SHEETPORT_SCHEMA"


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import and export records as xlsx or JSON")
    parser.add_argument(
        "--schema",
        type=Path,
        help=f"JSON schema document describing the record types (defaults to ${SCHEMA_ENV_VAR})",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    export = subparsers.add_parser("export", help="Export records to a file")
    export.add_argument(
        "--content-type",
        type=str,
        help="Record type to export, e.g. api::company.company (defaults to all content types)",
    )
    export.add_argument(
        "--format",
        type=SheetFormat,
        choices=list(SheetFormat),
        default=SheetFormat.XLSX,
        help="Output format (default: %(default)s)",
    )
    export.add_argument(
        "--search",
        type=str,
        help="Free-text search over text fields (numeric input also matches number fields)",
    )
    export.add_argument(
        "--filter",
        dest="filters",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Query-style filter, e.g. 'filters[$and][0][name][$containsi]=acme' (repeatable)",
    )
    export.add_argument(
        "--selected-ids",
        type=str,
        help="Comma-separated values of --selected-field to export; overrides filters",
    )
    export.add_argument(
        "--selected-field",
        type=str,
        default="id",
        help="Field matched by --selected-ids (default: %(default)s)",
    )
    export.add_argument(
        "--output",
        type=Path,
        help="Destination file (defaults to <type>-export-<date>.<format>)",
    )

    entry = subparsers.add_parser("export-entry", help="Export a single record")
    entry.add_argument("--content-type", type=str, required=True, help="Record type")
    entry.add_argument("--id", dest="record_id", type=str, required=True, help="Record id")
    entry.add_argument(
        "--format",
        type=SheetFormat,
        choices=list(SheetFormat),
        default=SheetFormat.JSON,
        help="Output format (default: %(default)s)",
    )
    entry.add_argument("--output", type=Path, help="Destination file")

    imports = subparsers.add_parser("import", help="Import an xlsx or JSON file")
    imports.add_argument("path", type=Path, help="File to import (.xlsx, .xlsm or .json)")
    imports.add_argument(
        "--content-type",
        type=str,
        help="Force every workbook sheet into this record type",
    )
    imports.add_argument(
        "--transaction-mode",
        type=TransactionMode,
        choices=list(TransactionMode),
        help="Commit each row on its own or each record type at once (defaults to config)",
    )
    imports.add_argument(
        "--remove-file",
        action="store_true",
        help="Delete the imported file afterwards, whether the import succeeds or not",
    )

    return parser.parse_args(list(argv))


def _query_params(args: argparse.Namespace) -> dict[str, object]:
    params: dict[str, object] = {}
    for item in args.filters:
        key, separator, value = item.partition("=")
        if not separator or not key.startswith("filters["):
            raise ValueError(f"Invalid filter {item!r}; expected filters[...]=value")
        params[key] = value
    if args.content_type:
        params["contentType"] = args.content_type
    if args.search:
        params["_q"] = args.search
    if args.selected_ids:
        params["selectedIds"] = args.selected_ids
        params["selectedField"] = args.selected_field
    return params


def _load_registry(args: argparse.Namespace) -> SchemaRegistry:
    schema_path = args.schema or Path(require_env_var(SCHEMA_ENV_VAR))
    return load_schema(schema_path)


def _write_output(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)
    log.info("Wrote %s bytes to %s", len(payload), path)


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    configure_logging()
    parsed_args: argparse.Namespace
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        schema = _load_registry(parsed_args)
        request = None
        if parsed_args.command == "export":
            request = ExportRequest.from_query(_query_params(parsed_args))
    except (ValueError, SchemaError, ConfigurationError):
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        if parsed_args.command == "export":
            assert request is not None
            payload = export_records(request, schema=schema, sheet_format=parsed_args.format)
            output = parsed_args.output or Path(
                export_filename(request.record_type, parsed_args.format)
            )
            _write_output(output, payload)
        elif parsed_args.command == "export-entry":
            payload = export_single_record(
                parsed_args.content_type,
                parsed_args.record_id,
                schema=schema,
                sheet_format=parsed_args.format,
            )
            output = parsed_args.output or Path(
                single_export_filename(parsed_args.record_id, parsed_args.format)
            )
            _write_output(output, payload)
        elif parsed_args.command == "import":
            settings = get_reconcile_settings()
            if parsed_args.transaction_mode is not None:
                settings = replace(settings, transaction_mode=parsed_args.transaction_mode)
            report = import_file(
                parsed_args.path,
                schema=schema,
                settings=settings,
                record_type=parsed_args.content_type,
                cleanup=parsed_args.remove_file,
            )
            summary = report.result.summary()
            log.info(
                "%s (total=%s, created=%s, updated=%s, errors=%s)",
                report.message,
                summary["total"],
                summary["created"],
                summary["updated"],
                summary["errors"],
            )
            for message in report.result.messages():
                log.warning("%s", message)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except ValidationError:
        log.exception("Invalid input")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error during %s", parsed_args.command)
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    """Console-script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
