"""Workbook sink: streaming, append-only ``.xlsx`` output."""

# Module responsibilities:
# - Wrap an openpyxl write-only workbook so rows are flushed to disk as they are appended.
# - Reject values openpyxl cannot store before they reach the row stream.
# - Serialise the workbook exactly once, returning bytes and optionally copying them out.

from __future__ import annotations

import asyncio
import io
from datetime import datetime, time
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Sequence, Union

from openpyxl import Workbook
from openpyxl.cell import WriteOnlyCell
from openpyxl.utils.exceptions import IllegalCharacterError, WorkbookAlreadySaved
from openpyxl.worksheet._write_only import WriteOnlyWorksheet

from .errors import WriteError, WriterClosedError
from .utils.log import get_logger

logger = get_logger("sink")

Destination = Union[str, Path, BinaryIO, None]


class SheetSink:
    """Append-only row stream for one worksheet."""

    def __init__(self, worksheet: WriteOnlyWorksheet) -> None:
        self._worksheet = worksheet
        self._closed = False
        self.rows_written = 0

    @property
    def name(self) -> str:
        return self._worksheet.title

    @property
    def closed(self) -> bool:
        return self._closed

    def _prepare_values(self, values: Sequence[object]) -> List[object]:
        row: List[object] = []
        for column, value in enumerate(values, start=1):
            if isinstance(value, (datetime, time)) and value.tzinfo is not None:
                raise WriteError(
                    f"Column {column}: timezone-aware values cannot be stored in a workbook",
                    sheet=self.name,
                )
            try:
                cell = WriteOnlyCell(self._worksheet, value=value)
            except (ValueError, IllegalCharacterError) as exc:
                raise WriteError(
                    f"Column {column}: cannot store value {value!r}: {exc}", sheet=self.name
                ) from exc
            if isinstance(value, str) and cell.data_type == "f":
                # Text starting with "=" is stored as text, never as a formula.
                cell.data_type = "s"
                row.append(cell)
            else:
                row.append(value)
        return row

    async def append_row(self, values: Sequence[object]) -> None:
        """Commit one row of cell values in column order.

        Values are stored as given; strings are always stored as text.
        """

        if self._closed:
            raise WriterClosedError(f"Sheet {self.name!r} is closed", sheet=self.name)
        row = self._prepare_values(values)
        self._worksheet.append(row)
        self.rows_written += 1

    def close(self) -> None:
        if self._closed:
            raise WriterClosedError(f"Sheet {self.name!r} is already closed", sheet=self.name)
        self._worksheet.close()
        self._closed = True


class WorkbookSink:
    """Write-only workbook that is finalized exactly once."""

    def __init__(self, destination: Destination = None) -> None:
        self._workbook = Workbook(write_only=True)
        self._destination = destination
        self._sheets: Dict[str, SheetSink] = {}
        self._payload: Optional[bytes] = None

    @property
    def finalized(self) -> bool:
        return self._payload is not None

    def add_sheet(self, name: str) -> SheetSink:
        if self.finalized:
            raise WriterClosedError("Workbook has already been finalized", sheet=name)
        try:
            worksheet = self._workbook.create_sheet(title=name)
        except ValueError as exc:
            raise WriteError(f"Cannot create sheet {name!r}: {exc}", sheet=name) from exc
        sheet = SheetSink(worksheet)
        self._sheets[name] = sheet
        return sheet

    def _serialise(self) -> bytes:
        buffer = io.BytesIO()
        self._workbook.save(buffer)
        return buffer.getvalue()

    def _copy_out(self, payload: bytes) -> None:
        destination = self._destination
        if destination is None:
            return
        if isinstance(destination, (str, Path)):
            path = Path(destination)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(payload)
        else:
            destination.write(payload)

    async def finalize(self) -> bytes:
        """Close remaining sheets, serialise the workbook and return its bytes.

        Raises:
            WriterClosedError: When called a second time.
            WriteError: When serialisation or copying to the destination fails.
        """

        if self.finalized:
            raise WriterClosedError("Workbook has already been finalized")
        for sheet in self._sheets.values():
            if not sheet.closed:
                sheet.close()
        try:
            payload = await asyncio.to_thread(self._serialise)
            await asyncio.to_thread(self._copy_out, payload)
        except (OSError, WorkbookAlreadySaved, ValueError, TypeError) as exc:
            logger.error("Failed to finalize workbook", extra={"error": str(exc)})
            raise WriteError(f"Failed to write workbook: {exc}") from exc
        self._payload = payload
        return payload


def create_sink(destination: Destination = None) -> WorkbookSink:
    """Create a sink; ``destination`` (path or binary stream) also receives the final bytes."""

    return WorkbookSink(destination)
