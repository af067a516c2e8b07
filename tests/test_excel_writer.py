"""Integration tests for the streaming Excel writer."""

# Module responsibilities:
# - Validate header layout, schema-ordered rows and default values in saved workbooks.
# - Assert the writer lifecycle: key routing, per-key ordering and single finalization.

from __future__ import annotations

import asyncio
import io
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

import pandas as pd
import pytest
from openpyxl import load_workbook

from sheetio.errors import ConfigError, KeyNotFoundError, WriteError, WriterClosedError
from sheetio.excel_writer import ExcelWriter

TWO_SHEETS: Dict[str, object] = {
    "sheets": [
        {
            "name": "Items",
            "key": "items",
            "rows": {
                "allowedHeaders": [
                    {"name": "Sr No", "key": "index"},
                    {"name": "Name", "key": "name"},
                    {"name": "Status", "key": "status", "default": "open"},
                ]
            },
        },
        {
            "name": "Notes",
            "key": "notes",
            "rows": {
                "headerRow": 3,
                "allowedHeaders": [
                    {"name": "Text", "key": "text"},
                    {"name": "Author", "key": "author"},
                ],
            },
        },
    ]
}


def _rows(payload: bytes, sheet: str) -> List[tuple]:
    ws = load_workbook(io.BytesIO(payload))[sheet]
    return [tuple(row) for row in ws.iter_rows(values_only=True)]


@pytest.mark.asyncio
async def test_headers_written_without_data() -> None:
    writer = ExcelWriter(TWO_SHEETS)

    payload = await writer.save()

    wb = load_workbook(io.BytesIO(payload))
    assert wb.sheetnames == ["Items", "Notes"]
    assert _rows(payload, "Items") == [("Sr No", "Name", "Status")]
    notes = wb["Notes"]
    assert notes.cell(row=1, column=1).value is None
    assert notes.cell(row=2, column=1).value is None
    assert [notes.cell(row=3, column=c).value for c in (1, 2)] == ["Text", "Author"]
    assert writer.stats.total_rows == 0


@pytest.mark.asyncio
async def test_rows_follow_declared_header_order_with_defaults() -> None:
    writer = ExcelWriter(TWO_SHEETS)

    await writer.add_data("items", {"name": "Alpha", "index": 1, "ignored": "x"})
    await writer.add_data("items", {"index": 2, "name": "Beta", "status": "closed"})
    await writer.add_data("items", {"index": 3, "name": None})
    payload = await writer.save()

    assert _rows(payload, "Items") == [
        ("Sr No", "Name", "Status"),
        (1, "Alpha", "open"),
        (2, "Beta", "closed"),
        (3, None, "open"),
    ]


@pytest.mark.asyncio
async def test_data_routed_to_each_sheet_by_key() -> None:
    writer = ExcelWriter(TWO_SHEETS)

    await asyncio.gather(
        writer.add_data("notes", {"text": "first", "author": "kim"}),
        writer.add_data("items", {"index": 1, "name": "Alpha"}),
        writer.add_data("notes", {"text": "second"}),
    )
    payload = await writer.save()

    assert _rows(payload, "Items")[1] == (1, "Alpha", "open")
    notes = load_workbook(io.BytesIO(payload))["Notes"]
    assert [notes.cell(row=r, column=1).value for r in (4, 5)] == ["first", "second"]
    assert notes.cell(row=5, column=2).value is None
    assert writer.stats.sheet_rows == {"notes": 2, "items": 1}
    assert writer.stats.total_rows == 3


@pytest.mark.asyncio
async def test_same_key_rows_keep_submission_order() -> None:
    writer = ExcelWriter(TWO_SHEETS)

    await asyncio.gather(*(writer.add_data("items", {"index": i}) for i in range(1, 41)))
    payload = await writer.save()

    assert [row[0] for row in _rows(payload, "Items")[1:]] == list(range(1, 41))


@pytest.mark.asyncio
async def test_save_waits_for_in_flight_rows() -> None:
    writer = ExcelWriter(TWO_SHEETS)

    *_, payload = await asyncio.gather(
        writer.add_data("items", {"index": 1}),
        writer.add_data("items", {"index": 2}),
        writer.save(),
    )

    assert [row[0] for row in _rows(payload, "Items")[1:]] == [1, 2]


@pytest.mark.asyncio
async def test_unknown_key_rejects_and_appends_nothing() -> None:
    writer = ExcelWriter(TWO_SHEETS)

    with pytest.raises(KeyNotFoundError, match="No such sheet key: missing"):
        await writer.add_data("missing", {"index": 1})
    await writer.add_data("items", {"index": 1})
    payload = await writer.save()

    assert len(_rows(payload, "Items")) == 2
    assert writer.stats.sheet_rows == {"items": 1}


@pytest.mark.asyncio
async def test_sheet_without_key_rejects_first_operation() -> None:
    config = {"sheets": [{"name": "Items", "rows": {"allowedHeaders": []}}]}

    with pytest.raises(ConfigError, match="No key specified for sheet: Items") as excinfo:
        await ExcelWriter(config).add_data("Items", {})
    assert excinfo.value.sheet == "Items"

    with pytest.raises(ConfigError, match="No key specified"):
        await ExcelWriter(config).save()


@pytest.mark.asyncio
async def test_invalid_configuration_rejects_first_operation() -> None:
    writer = ExcelWriter(
        {"sheets": [{"name": "Items", "key": "items", "rows": {"headerRow": 0, "allowedHeaders": []}}]}
    )

    with pytest.raises(ConfigError, match="headerRow"):
        await writer.ready()


@pytest.mark.asyncio
async def test_save_is_single_use() -> None:
    writer = ExcelWriter(TWO_SHEETS)
    await writer.save()

    with pytest.raises(WriterClosedError):
        await writer.save()
    with pytest.raises(WriterClosedError):
        await writer.add_data("items", {"index": 1})


@pytest.mark.asyncio
async def test_destination_path_receives_payload(tmp_path: Path) -> None:
    target = tmp_path / "out" / "book.xlsx"
    writer = ExcelWriter(TWO_SHEETS, destination=target)
    await writer.add_data("items", {"index": 1, "name": "Alpha"})

    payload = await writer.save()

    assert target.read_bytes() == payload


@pytest.mark.asyncio
async def test_destination_stream_receives_payload() -> None:
    stream = io.BytesIO()
    writer = ExcelWriter(TWO_SHEETS, destination=stream)

    payload = await writer.save()

    assert stream.getvalue() == payload


@pytest.mark.asyncio
async def test_add_frame_treats_nan_as_missing() -> None:
    writer = ExcelWriter(TWO_SHEETS)
    frame = pd.DataFrame(
        {"index": [1, 2], "name": ["Alpha", None], "status": [float("nan"), "closed"]}
    )

    appended = await writer.add_frame("items", frame)
    payload = await writer.save()

    assert appended == 2
    assert _rows(payload, "Items")[1:] == [(1, "Alpha", "open"), (2, None, "closed")]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "value",
    [
        "bad\x01text",
        datetime(2024, 1, 2, tzinfo=timezone.utc),
        {"nested": "mapping"},
    ],
)
async def test_unstorable_values_raise_write_error(value: object) -> None:
    writer = ExcelWriter(TWO_SHEETS)

    with pytest.raises(WriteError) as excinfo:
        await writer.add_data("items", {"index": 1, "name": value})
    assert excinfo.value.sheet == "Items"

    await writer.add_data("items", {"index": 2, "name": "ok"})
    payload = await writer.save()
    assert _rows(payload, "Items")[1:] == [(2, "ok", "open")]


@pytest.mark.asyncio
async def test_equals_prefixed_strings_are_written_as_text() -> None:
    writer = ExcelWriter(TWO_SHEETS)
    await writer.add_data("items", {"index": 1, "name": "=1+1", "status": "=A1"})

    payload = await writer.save()

    cells = load_workbook(io.BytesIO(payload))["Items"][2]
    assert [cell.value for cell in cells] == [1, "=1+1", "=A1"]
    assert [cell.data_type for cell in cells[1:]] == ["s", "s"]


@pytest.mark.asyncio
async def test_invalid_sheet_title_raises_write_error() -> None:
    writer = ExcelWriter({"sheets": [{"name": "Q1/Q2", "key": "q", "rows": {"allowedHeaders": []}}]})

    with pytest.raises(WriteError, match="Cannot create sheet"):
        await writer.save()


@pytest.mark.asyncio
async def test_debug_logs_layout_and_commit(package_records: list) -> None:
    writer = ExcelWriter({**TWO_SHEETS, "debug": True})
    await writer.add_data("items", {"index": 1})
    await writer.save()

    messages = [record.getMessage() for record in package_records]
    assert messages.count("Creating sheet") == 2
    commit = next(r for r in package_records if r.getMessage() == "Committing workbook")
    assert commit.total_rows == 1
    assert commit.sheet_rows == {"items": 1}


@pytest.mark.asyncio
async def test_no_info_logs_without_debug(package_records: list) -> None:
    writer = ExcelWriter(TWO_SHEETS)
    await writer.add_data("items", {"index": 1})
    await writer.save()

    assert [r for r in package_records if r.levelname == "INFO"] == []
