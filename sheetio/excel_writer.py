"""Excel output: streaming, schema-ordered workbook writing."""

# Module responsibilities:
# - Create one streaming sheet per schema entry and write its header row up front.
# - Append records as rows in declared header order, keeping per-key submission order.
# - Finalize the workbook exactly once and hand back the resulting bytes.

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import pandas as pd

from .errors import ConfigError, KeyNotFoundError, WriterClosedError
from .mapping import assemble_row
from .schema import SchemaSource, SheetSchema, WorkbookSchema, load_schema
from .sink import Destination, SheetSink, WorkbookSink, create_sink
from .utils.gate import ReadinessGate
from .utils.log import get_logger

logger = get_logger("excel_writer")


def _is_missing(value: Any) -> bool:
    return pd.api.types.is_scalar(value) and bool(pd.isna(value))


@dataclass(slots=True)
class WriterStats:
    """Row counters for diagnostics; header rows are not counted."""

    total_rows: int = 0
    sheet_rows: Dict[str, int] = field(default_factory=dict)

    def record(self, key: str) -> None:
        self.total_rows += 1
        self.sheet_rows[key] = self.sheet_rows.get(key, 0) + 1


class ExcelWriter:
    """Write records into a new workbook laid out by a schema.

    Every sheet schema must declare a ``key``; records are routed by that key.
    Configuration problems surface from the first awaited operation.

    Args:
        config: Raw configuration mapping or a validated :class:`WorkbookSchema`.
        destination: Optional path or binary stream that also receives the saved bytes.
    """

    def __init__(self, config: SchemaSource, destination: Destination = None) -> None:
        self._schema: Optional[WorkbookSchema] = None
        self._config_error: Optional[ConfigError] = None
        try:
            self._schema = load_schema(config)
        except ConfigError as exc:
            self._config_error = exc
        self._destination = destination
        self._sink: Optional[WorkbookSink] = None
        self._sheets: Dict[str, SheetSink] = {}
        self._sheet_schemas: Dict[str, SheetSchema] = {}
        self._turns: Dict[str, asyncio.Future[None]] = {}
        self._saving = False
        self.stats = WriterStats()
        self._gate: ReadinessGate[None] = ReadinessGate(self._create_layout)

    @property
    def debug(self) -> bool:
        return bool(self._schema and self._schema.debug)

    async def _create_layout(self) -> None:
        if self._config_error is not None:
            raise self._config_error
        assert self._schema is not None
        for sheet_schema in self._schema.sheets:
            if not sheet_schema.key:
                raise ConfigError(
                    f"No key specified for sheet: {sheet_schema.name}",
                    sheet=sheet_schema.name,
                    field="key",
                )

        sink = create_sink(self._destination)
        for sheet_schema in self._schema.sheets:
            if self.debug:
                logger.info("Creating sheet", extra={"sheet": sheet_schema.name})
            sheet = sink.add_sheet(sheet_schema.name)
            for _ in range(sheet_schema.rows.header_row - 1):
                await sheet.append_row([])
            await sheet.append_row(sheet_schema.rows.header_names)
            self._sheets[sheet_schema.sheet_key] = sheet
            self._sheet_schemas[sheet_schema.sheet_key] = sheet_schema
        self._sink = sink

    async def ready(self) -> None:
        """Wait for the layout (sheets + header rows); concurrent callers share one task."""

        await self._gate.wait()

    async def add_data(self, key: str, record: Mapping[str, Any]) -> None:
        """Append one record to the sheet registered under ``key``.

        Calls for the same key are written in submission order; calls for different
        keys do not wait on each other.

        Raises:
            ConfigError: When the configuration was invalid or a sheet lacks a key.
            KeyNotFoundError: When no sheet uses ``key``; nothing is appended.
            WriterClosedError: When :meth:`save` has already been called.
            WriteError: When a value cannot be stored in a cell.
        """

        if self._saving:
            raise WriterClosedError(f"Workbook already saved; cannot add data to {key!r}")

        previous = self._turns.get(key)
        turn: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._turns[key] = turn
        try:
            await self.ready()
            if previous is not None:
                await previous
            sheet = self._sheets.get(key)
            if sheet is None:
                raise KeyNotFoundError(key)
            await sheet.append_row(assemble_row(self._sheet_schemas[key], record))
            self.stats.record(key)
        finally:
            turn.set_result(None)
            if self._turns.get(key) is turn:
                del self._turns[key]

    async def add_frame(self, key: str, frame: pd.DataFrame) -> int:
        """Append every DataFrame row to ``key``'s sheet; NaN cells count as missing."""

        appended = 0
        for raw in frame.to_dict(orient="records"):
            record = {name: value for name, value in raw.items() if not _is_missing(value)}
            await self.add_data(key, record)
            appended += 1
        return appended

    async def save(self) -> bytes:
        """Close every sheet and finalize the workbook.

        Returns:
            The ``.xlsx`` payload; it is also written to the destination when one was given.

        Raises:
            ConfigError: When the configuration was invalid or a sheet lacks a key.
            WriterClosedError: When called more than once.
            WriteError: When the workbook cannot be serialised or copied out.
        """

        if self._saving:
            raise WriterClosedError("Workbook has already been saved")
        self._saving = True
        await self.ready()
        in_flight = list(self._turns.values())
        if in_flight:
            await asyncio.gather(*in_flight)

        assert self._sink is not None
        for sheet in self._sheets.values():
            sheet.close()
        if self.debug:
            logger.info(
                "Committing workbook",
                extra={"total_rows": self.stats.total_rows, "sheet_rows": dict(self.stats.sheet_rows)},
            )
        payload = await self._sink.finalize()
        logger.debug("Workbook written", extra={"bytes": len(payload)})
        return payload
