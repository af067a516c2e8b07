from __future__ import annotations

import io
import logging
import os
import re
import sys
import tempfile
import zipfile
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Sequence

import pytest
from openpyxl import Workbook

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Keep log files out of the home directory during tests.
os.environ.setdefault("SHEETIO_LOG_DIR", tempfile.mkdtemp(prefix="sheetio-logs-"))

SheetRows = Sequence[Sequence[object]]
WorkbookBuilder = Callable[[Dict[str, SheetRows]], bytes]


def build_workbook(sheets: Dict[str, SheetRows]) -> bytes:
    """Build an ``.xlsx`` payload; each sheet's rows start at row 1 (``None`` = blank cell)."""

    wb = Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(title=name)
        for row in rows:
            ws.append(list(row))
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def with_cached_result(payload: bytes, formula: str, result: object) -> bytes:
    """Inject the cached result Excel would store next to ``formula``.

    openpyxl never computes formulas, so the ``<v>`` element is patched in the sheet XML.
    """

    source = zipfile.ZipFile(io.BytesIO(payload))
    out = io.BytesIO()
    pattern = re.compile(r"(<f>" + re.escape(formula) + r"</f>)<v(?:\s*/>|></v>)")
    replaced = 0
    with zipfile.ZipFile(out, "w", zipfile.ZIP_DEFLATED) as target:
        for item in source.infolist():
            data = source.read(item.filename)
            if item.filename.startswith("xl/worksheets/sheet"):
                text, count = pattern.subn(rf"\g<1><v>{result}</v>", data.decode("utf-8"))
                replaced += count
                data = text.encode("utf-8")
            target.writestr(item, data)
    assert replaced == 1, f"formula {formula!r} not found in workbook XML"
    return out.getvalue()


@pytest.fixture
def make_workbook() -> WorkbookBuilder:
    return build_workbook


@pytest.fixture
def data_schema() -> Dict[str, object]:
    return {
        "sheets": [
            {
                "name": "Data",
                "key": "data",
                "rows": {
                    "headerRow": 1,
                    "allowedHeaders": [
                        {"name": "Sr No", "key": "index"},
                        {"name": "Name", "key": "name"},
                    ],
                },
            }
        ]
    }


@pytest.fixture
def package_records() -> Iterator[List[logging.LogRecord]]:
    """Capture records emitted on the ``sheetio`` logger (it does not propagate to root)."""

    records: List[logging.LogRecord] = []

    class _Collector(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            records.append(record)

    handler = _Collector(level=logging.DEBUG)
    package_logger = logging.getLogger("sheetio")
    previous_level = package_logger.level
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG)
    try:
        yield records
    finally:
        package_logger.removeHandler(handler)
        package_logger.setLevel(previous_level)
