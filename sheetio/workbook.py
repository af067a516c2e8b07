"""Workbook source: a parsed, read-only view of an ``.xlsx`` file."""

# Module responsibilities:
# - Open a workbook from bytes, a path or a binary stream via openpyxl, off the event loop.
# - Materialize every sheet into ordered rows of populated cells before any row is consumed.
# - Keep formula cells explicit (formula text + cached result) so consumers pick the result.

from __future__ import annotations

import asyncio
import io
import zipfile
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import BinaryIO, Dict, Iterable, Iterator, List, Sequence, Tuple, Union

from openpyxl import load_workbook
from openpyxl.cell.cell import Cell as OpenpyxlCell
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.formula import ArrayFormula
from openpyxl.worksheet.worksheet import Worksheet

from .errors import ParseError
from .utils.log import get_logger

logger = get_logger("workbook")

CellLiteral = Union[str, int, float, bool, datetime, date, time, timedelta, None]
WorkbookInput = Union[bytes, bytearray, str, Path, BinaryIO]


@dataclass(frozen=True, slots=True)
class FormulaValue:
    """A computed cell: the formula text and the result cached by the last calculation."""

    formula: str
    result: CellLiteral = None


CellValue = Union[CellLiteral, FormulaValue]


def resolve_value(value: CellValue) -> CellLiteral:
    """Return the value a consumer should see; formula cells yield their cached result."""

    if isinstance(value, FormulaValue):
        return value.result
    return value


@dataclass(frozen=True, slots=True)
class Cell:
    column: int
    value: CellValue


@dataclass(frozen=True, slots=True)
class Row:
    """One physical row (1-based ``number``) holding only its populated cells."""

    number: int
    cells: Tuple[Cell, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.cells


class Sheet:
    """Named grid of rows; only rows with at least one populated cell are stored."""

    def __init__(self, name: str, rows: Iterable[Row] = ()) -> None:
        self.name = name
        self._rows: Dict[int, Row] = {row.number: row for row in rows if not row.is_empty}

    def row(self, index: int) -> Row:
        """Return row ``index`` (1-based); missing rows come back empty."""

        return self._rows.get(index) or Row(number=index)

    def rows(self) -> Iterator[Row]:
        """Yield non-empty rows in ascending order."""

        for number in sorted(self._rows):
            yield self._rows[number]

    @property
    def max_row(self) -> int:
        return max(self._rows, default=0)

    def __repr__(self) -> str:
        return f"Sheet(name={self.name!r}, rows={len(self._rows)})"


class Workbook:
    def __init__(self, sheets: Sequence[Sheet]) -> None:
        self._sheets = tuple(sheets)

    def sheets(self) -> Tuple[Sheet, ...]:
        """Return sheets in the workbook's native order."""

        return self._sheets

    @property
    def sheet_names(self) -> List[str]:
        return [sheet.name for sheet in self._sheets]


def _read_bytes(source: WorkbookInput) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Source workbook not found: {path}")
        return path.read_bytes()
    return source.read()


def _cell_value(cell: OpenpyxlCell, cached_sheet: Worksheet) -> CellValue:
    if cell.data_type != "f":
        return cell.value
    raw = cell.value
    formula = raw.text if isinstance(raw, ArrayFormula) else str(raw)
    cached = cached_sheet.cell(row=cell.row, column=cell.column).value
    return FormulaValue(formula=formula or "", result=cached)


def _parse(payload: bytes) -> Workbook:
    # Two views of the same payload: formula text and last calculated values.
    try:
        formulas = load_workbook(io.BytesIO(payload), data_only=False)
        results = load_workbook(io.BytesIO(payload), data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, TypeError) as exc:
        raise ParseError(f"Failed to parse workbook: {exc}") from exc

    sheets: List[Sheet] = []
    try:
        for worksheet in formulas.worksheets:
            cached_sheet = results[worksheet.title]
            rows: List[Row] = []
            for cells in worksheet.iter_rows():
                populated = tuple(
                    Cell(column=cell.column, value=_cell_value(cell, cached_sheet))
                    for cell in cells
                    if cell.value is not None
                )
                if populated:
                    rows.append(Row(number=cells[0].row, cells=populated))
            sheets.append(Sheet(worksheet.title, rows))
    finally:
        formulas.close()
        results.close()
    return Workbook(sheets)


def _load(source: WorkbookInput) -> Workbook:
    payload = _read_bytes(source)
    logger.debug("Parsing workbook", extra={"bytes": len(payload)})
    return _parse(payload)


async def open_workbook(source: WorkbookInput) -> Workbook:
    """Open and fully parse a workbook.

    Args:
        source: Raw ``.xlsx`` bytes, a path, or a binary file object.

    Returns:
        Parsed :class:`Workbook` with every sheet materialized.

    Raises:
        FileNotFoundError: When ``source`` is a path that does not exist.
        ParseError: When the payload is not a readable ``.xlsx`` workbook.
    """

    workbook = await asyncio.to_thread(_load, source)
    logger.debug("Workbook parsed", extra={"sheets": workbook.sheet_names})
    return workbook
