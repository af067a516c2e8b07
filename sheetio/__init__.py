"""`sheetio` top-level package exports the schema-driven Excel reader and writer."""

# Module responsibilities:
# - Re-export the reader/writer pipelines, schema models and error types as a stable API surface.
# - Provide the package version.

from __future__ import annotations

from .errors import (
    ConfigError,
    InvalidHeaderError,
    KeyNotFoundError,
    ParseError,
    SchemaNotFoundError,
    SheetIOError,
    SheetNameNotAllowedError,
    WriteError,
    WriterClosedError,
)
from .excel_reader import ExcelReader, read_frames
from .excel_writer import ExcelWriter, WriterStats
from .schema import (
    HeaderSchema,
    RowSchema,
    SheetSchema,
    WorkbookSchema,
    load_schema,
    load_schema_file,
)
from .workbook import FormulaValue, open_workbook, resolve_value

__all__ = [
    "ExcelReader",
    "ExcelWriter",
    "WriterStats",
    "read_frames",
    "HeaderSchema",
    "RowSchema",
    "SheetSchema",
    "WorkbookSchema",
    "load_schema",
    "load_schema_file",
    "FormulaValue",
    "open_workbook",
    "resolve_value",
    "SheetIOError",
    "ConfigError",
    "SchemaNotFoundError",
    "SheetNameNotAllowedError",
    "InvalidHeaderError",
    "KeyNotFoundError",
    "ParseError",
    "WriteError",
    "WriterClosedError",
]

__version__ = "0.1.0"
