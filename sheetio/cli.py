"""Typer based command line entry points for sheetio."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Dict, NoReturn

import typer

from .errors import SheetIOError
from .excel_reader import ExcelReader
from .excel_writer import ExcelWriter
from .mapping import Record
from .schema import WorkbookSchema, load_schema_file
from .utils.log import get_logger

app = typer.Typer(help="Validate, dump and template Excel workbooks against a sheet schema.")


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        help="Set package logging level (e.g. DEBUG/INFO/WARNING).",
    ),
) -> None:
    """Configure global CLI behaviour before executing commands."""

    level_value = getattr(logging, log_level.upper(), None)
    if not isinstance(level_value, int):
        raise typer.BadParameter(f"Unknown log level: {log_level}")
    get_logger("cli")
    logging.getLogger("sheetio").setLevel(level_value)


def _load(schema_path: Path) -> WorkbookSchema:
    try:
        return load_schema_file(schema_path)
    except (SheetIOError, FileNotFoundError) as exc:
        _fail(exc)


def _fail(exc: Exception) -> NoReturn:
    typer.secho(f"Error: {exc}", err=True, fg=typer.colors.RED)
    raise typer.Exit(code=1) from exc


@app.command("check")
def check(
    schema_path: Path = typer.Argument(..., help="YAML/JSON schema file."),
    workbook_path: Path = typer.Argument(..., help="Workbook to validate."),
) -> None:
    """Validate a workbook and print the number of data rows per sheet."""

    schema = _load(schema_path)
    counts: Dict[str, int] = {}

    def _count(_record: Record, _row_number: int, sheet_key: str) -> None:
        counts[sheet_key] = counts.get(sheet_key, 0) + 1

    reader = ExcelReader(workbook_path, schema)
    try:
        total = asyncio.run(reader.for_each_row(_count))
    except (SheetIOError, FileNotFoundError) as exc:
        _fail(exc)

    for sheet in schema.sheets:
        if sheet.sheet_key in counts:
            typer.echo(f"{sheet.sheet_key}: {counts[sheet.sheet_key]} rows")
    typer.echo(f"OK: {total} rows")


@app.command("dump")
def dump(
    schema_path: Path = typer.Argument(..., help="YAML/JSON schema file."),
    workbook_path: Path = typer.Argument(..., help="Workbook to read."),
) -> None:
    """Print one JSON line per record: ``{"sheet", "row", "record"}``."""

    schema = _load(schema_path)

    def _emit(record: Record, row_number: int, sheet_key: str) -> None:
        line = {"sheet": sheet_key, "row": row_number, "record": record}
        typer.echo(json.dumps(line, ensure_ascii=False, default=str))

    reader = ExcelReader(workbook_path, schema)
    try:
        asyncio.run(reader.for_each_row(_emit))
    except (SheetIOError, FileNotFoundError) as exc:
        _fail(exc)


@app.command("template")
def template(
    schema_path: Path = typer.Argument(..., help="YAML/JSON schema file."),
    output: Path = typer.Argument(..., help="Workbook to create."),
) -> None:
    """Write an empty workbook that only contains the header row of each sheet."""

    schema = _load(schema_path)
    writer = ExcelWriter(schema, destination=output)
    try:
        payload = asyncio.run(writer.save())
    except SheetIOError as exc:
        _fail(exc)
    typer.echo(f"Written {output} ({len(payload)} bytes, {len(schema.sheets)} sheets)")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
