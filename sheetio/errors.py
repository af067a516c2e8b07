"""Custom exceptions used across sheetio."""

# Module responsibilities:
# - Define one exception type per failure kind so callers can branch on type or ``kind``.
# - Carry the identifying sheet/field context alongside the human-readable message.

from __future__ import annotations

from typing import Optional, Sequence


class SheetIOError(Exception):
    """Base error for the package."""

    kind = "sheetio"

    def __init__(
        self,
        message: str,
        *,
        sheet: Optional[str] = None,
        field: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.sheet = sheet
        self.field = field


class ConfigError(SheetIOError):
    """Malformed or incomplete schema configuration."""

    kind = "config"


class SchemaNotFoundError(SheetIOError):
    """A workbook sheet has no schema with a matching name."""

    kind = "schema_not_found"

    def __init__(self, sheet: str) -> None:
        super().__init__(f"Schema not found for sheet: {sheet}", sheet=sheet)


class SheetNameNotAllowedError(SheetIOError):
    """A workbook sheet name is outside a declared ``allowedNames`` list."""

    kind = "sheet_name_not_allowed"

    def __init__(self, sheet: str, allowed_names: Sequence[str]) -> None:
        super().__init__(
            f"Sheet name {sheet!r} is not allowed. "
            f"Only these sheet names are allowed: {', '.join(allowed_names)}",
            sheet=sheet,
        )
        self.allowed_names = tuple(allowed_names)


class InvalidHeaderError(SheetIOError):
    """The header row holds values outside ``allowedHeaders``."""

    kind = "invalid_header"

    def __init__(
        self,
        sheet: str,
        header_row: int,
        unexpected: Sequence[str],
        allowed: Sequence[str],
    ) -> None:
        super().__init__(
            f"Row {header_row} of sheet {sheet!r} contains unexpected headers "
            f"({', '.join(unexpected)}). Only these header values are allowed: "
            f"{', '.join(allowed)}",
            sheet=sheet,
        )
        self.header_row = header_row
        self.unexpected = tuple(unexpected)
        self.allowed = tuple(allowed)


class KeyNotFoundError(SheetIOError):
    """No writer sheet is registered under the requested key."""

    kind = "key_not_found"

    def __init__(self, key: str) -> None:
        super().__init__(f"No such sheet key: {key}", field=key)
        self.key = key


class ParseError(SheetIOError):
    """The workbook source could not be opened or parsed."""

    kind = "parse"


class WriteError(SheetIOError):
    """The workbook sink failed to store a row or serialise the workbook."""

    kind = "write"


class WriterClosedError(SheetIOError):
    """A row or save was requested after the workbook was finalized."""

    kind = "writer_closed"
