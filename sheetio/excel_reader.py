"""Excel input: schema-validated, record-oriented workbook reading."""

# Module responsibilities:
# - Gate every read operation behind one memoized "parse + validate" task.
# - Deliver each data row of every sheet to an async consumer callback as a keyed record.
# - Offer collected-record and pandas DataFrame conveniences on top of the callback API.

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Optional

import pandas as pd

from .errors import ConfigError, SheetIOError
from .mapping import Record, SheetLayout, iter_records, validate_workbook
from .schema import SchemaSource, WorkbookSchema, load_schema
from .utils.gate import ReadinessGate
from .utils.log import get_logger
from .workbook import WorkbookInput, open_workbook

logger = get_logger("excel_reader")

RowCallback = Callable[[Record, int, str], Any]


class ExcelReader:
    """Read a workbook against a schema.

    The configuration is validated on construction, but any failure (like any
    parse or layout failure) is only raised from the first awaited operation.

    Args:
        source: Raw ``.xlsx`` bytes, a path, or a binary file object.
        config: Raw configuration mapping or a validated :class:`WorkbookSchema`.
    """

    def __init__(self, source: WorkbookInput, config: SchemaSource) -> None:
        self._source = source
        self._schema: Optional[WorkbookSchema] = None
        self._config_error: Optional[ConfigError] = None
        try:
            self._schema = load_schema(config)
        except ConfigError as exc:
            self._config_error = exc
        self._gate: ReadinessGate[List[SheetLayout]] = ReadinessGate(self._read)

    @property
    def schema(self) -> Optional[WorkbookSchema]:
        return self._schema

    @property
    def debug(self) -> bool:
        return bool(self._schema and self._schema.debug)

    async def _read(self) -> List[SheetLayout]:
        if self._config_error is not None:
            raise self._config_error
        assert self._schema is not None
        try:
            workbook = await open_workbook(self._source)
            layouts = validate_workbook(workbook, self._schema)
        except SheetIOError as exc:
            logger.error(
                "Workbook rejected", extra={"kind": exc.kind, "sheet": exc.sheet, "error": str(exc)}
            )
            raise
        if self.debug:
            logger.info(
                "Workbook validated",
                extra={"sheets": [layout.sheet.name for layout in layouts]},
            )
        return layouts

    async def ready(self) -> List[SheetLayout]:
        """Wait for parsing and validation; concurrent callers share the same task."""

        return await self._gate.wait()

    async def for_each_row(self, callback: RowCallback) -> int:
        """Invoke ``callback(record, row_number, sheet_key)`` once per data row.

        Rows are delivered in order within a sheet, sheets in workbook order. Awaitables
        returned by the callback run concurrently; the call completes once all of them have,
        and a failing callback is raised only after the others have settled.

        Args:
            callback: Consumer receiving the projected record, the row number relative
                to the header row (first data row is 1) and the sheet key.

        Returns:
            Number of rows delivered.

        Raises:
            ConfigError: When the configuration was invalid.
            ParseError: When the workbook could not be parsed.
            SheetNameNotAllowedError, SchemaNotFoundError, InvalidHeaderError: When the
                workbook layout does not match the schema. No row is delivered.
        """

        layouts = await self.ready()
        pending: List[Awaitable[Any]] = []
        counts: Dict[str, int] = {}
        try:
            for layout in layouts:
                counts[layout.sheet_key] = 0
                for row_number, record in iter_records(layout):
                    result = callback(record, row_number, layout.sheet_key)
                    if inspect.isawaitable(result):
                        pending.append(result)
                    counts[layout.sheet_key] += 1
        except BaseException:
            for awaitable in pending:
                if inspect.iscoroutine(awaitable):
                    awaitable.close()
            raise

        if pending:
            # Every callback settles before the first failure is raised.
            results = await asyncio.gather(*pending, return_exceptions=True)
            for result in results:
                if isinstance(result, BaseException):
                    raise result

        total = sum(counts.values())
        if self.debug:
            logger.info("Rows read", extra={"total_rows": total, "sheet_rows": counts})
        return total

    async def read_records(self) -> Dict[str, List[Record]]:
        """Collect every record, grouped by sheet key, in row order."""

        layouts = await self.ready()
        collected: Dict[str, List[Record]] = {layout.sheet_key: [] for layout in layouts}

        def _collect(record: Record, _row_number: int, sheet_key: str) -> None:
            collected[sheet_key].append(record)

        await self.for_each_row(_collect)
        return collected


def _frame_columns(layout: SheetLayout) -> List[str]:
    present = set(layout.columns.values())
    return [
        header.key
        for header in layout.schema.rows.allowed_headers
        if header.name in present and layout.headers.get(header.name) is header
    ]


async def read_frames(source: WorkbookInput, config: SchemaSource) -> Dict[str, pd.DataFrame]:
    """Load every sheet into a DataFrame keyed by sheet key.

    Columns follow ``allowedHeaders`` order; headers absent from the sheet are omitted.
    """

    reader = ExcelReader(source, config)
    layouts = await reader.ready()
    records = await reader.read_records()
    frames: Dict[str, pd.DataFrame] = {}
    for layout in layouts:
        frames[layout.sheet_key] = pd.DataFrame(
            records[layout.sheet_key], columns=_frame_columns(layout)
        )
        if reader.debug:
            logger.info(
                "Sheet loaded into frame",
                extra={"sheet": layout.sheet_key, "rows": len(frames[layout.sheet_key].index)},
            )
    return frames
