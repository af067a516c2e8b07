"""Header-to-field mapping between worksheet rows and records."""

# Module responsibilities:
# - Validate a parsed workbook against a WorkbookSchema (sheet names, schema lookup, header row).
# - Resolve header columns once per sheet and project data rows into keyed records.
# - Assemble record values into row cells in declared header order with defaults.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from .errors import InvalidHeaderError, SchemaNotFoundError, SheetNameNotAllowedError
from .schema import HeaderSchema, SheetSchema, WorkbookSchema
from .workbook import Row, Sheet, Workbook, resolve_value

Record = Dict[str, Any]
ColumnHeaders = Dict[int, str]


def header_columns(sheet: Sheet, header_row: int) -> ColumnHeaders:
    """Map column index -> header text for the non-empty cells of ``header_row``."""

    columns: ColumnHeaders = {}
    for cell in sheet.row(header_row).cells:
        value = resolve_value(cell.value)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            columns[cell.column] = text
    return columns


@dataclass(frozen=True)
class SheetLayout:
    """A validated sheet together with the lookups needed to project its rows."""

    sheet: Sheet
    schema: SheetSchema
    columns: ColumnHeaders
    headers: Dict[str, HeaderSchema] = field(default_factory=dict)

    @classmethod
    def build(cls, sheet: Sheet, schema: SheetSchema, columns: ColumnHeaders) -> "SheetLayout":
        headers: Dict[str, HeaderSchema] = {}
        for header in schema.rows.allowed_headers:
            # Duplicate names: first declaration wins.
            headers.setdefault(header.name, header)
        return cls(sheet=sheet, schema=schema, columns=columns, headers=headers)

    @property
    def sheet_key(self) -> str:
        return self.schema.sheet_key

    @property
    def header_row(self) -> int:
        return self.schema.rows.header_row


def check_sheet_name(name: str, schema: WorkbookSchema) -> None:
    """Every declared ``allowedNames`` list acts as a workbook-wide whitelist."""

    for sheet_schema in schema.sheets:
        allowed = sheet_schema.allowed_names
        if allowed is not None and name not in allowed:
            raise SheetNameNotAllowedError(name, allowed)


def match_sheet_schema(name: str, schema: WorkbookSchema) -> SheetSchema:
    sheet_schema = schema.sheet_named(name)
    if sheet_schema is None:
        raise SchemaNotFoundError(name)
    return sheet_schema


def check_headers(sheet_schema: SheetSchema, columns: ColumnHeaders) -> None:
    """Fail when the header row holds a value outside ``allowedHeaders``.

    Allowed headers missing from the sheet are fine; the schema is a superset.
    """

    allowed = sheet_schema.rows.header_names
    allowed_set = set(allowed)
    unexpected = [text for text in columns.values() if text not in allowed_set]
    if unexpected:
        raise InvalidHeaderError(
            sheet_schema.name, sheet_schema.rows.header_row, unexpected, allowed
        )


def validate_workbook(workbook: Workbook, schema: WorkbookSchema) -> List[SheetLayout]:
    """Validate every workbook sheet in native order, stopping at the first failure.

    Args:
        workbook: Fully parsed workbook.
        schema: Validated workbook schema.

    Returns:
        One :class:`SheetLayout` per workbook sheet, in workbook order.

    Raises:
        SheetNameNotAllowedError: When a sheet name is outside a declared ``allowedNames``.
        SchemaNotFoundError: When a sheet has no schema with the same name.
        InvalidHeaderError: When a header row contains values not in ``allowedHeaders``.
    """

    layouts: List[SheetLayout] = []
    for sheet in workbook.sheets():
        check_sheet_name(sheet.name, schema)
        sheet_schema = match_sheet_schema(sheet.name, schema)
        columns = header_columns(sheet, sheet_schema.rows.header_row)
        check_headers(sheet_schema, columns)
        layouts.append(SheetLayout.build(sheet, sheet_schema, columns))
    return layouts


def project_row(row: Row, layout: SheetLayout) -> Record:
    """Project the populated cells of ``row`` into a record keyed by header ``key``."""

    record: Record = {}
    for cell in row.cells:
        name = layout.columns.get(cell.column)
        if name is None:
            continue
        header = layout.headers.get(name)
        if header is None:
            continue
        record[header.key] = resolve_value(cell.value)
    return record


def iter_records(layout: SheetLayout) -> Iterator[Tuple[int, Record]]:
    """Yield ``(row_number, record)`` for data rows, numbered relative to the header row."""

    header_row = layout.header_row
    for row in layout.sheet.rows():
        if row.number <= header_row:
            continue
        yield row.number - header_row, project_row(row, layout)


def _cell_for(header: HeaderSchema, record: Mapping[str, Any]) -> Any:
    value: Optional[Any] = record.get(header.key)
    if value is not None:
        return value
    if header.default is not None:
        return header.default
    return ""


def assemble_row(sheet_schema: SheetSchema, record: Mapping[str, Any]) -> List[Any]:
    """Order record values by the sheet's declared headers, substituting defaults."""

    return [_cell_for(header, record) for header in sheet_schema.rows.allowed_headers]
