"""Workbook schema models shared by the reader and writer pipelines."""

# Module responsibilities:
# - Provide strongly typed, immutable configuration containers for sheet/header mapping.
# - Translate raw configuration payloads (dicts, YAML files) into validated schemas.
# - Report the first violation as a ConfigError naming the offending field.

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ConfigError

_MODEL_CONFIG = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


class HeaderSchema(BaseModel):
    """One allowed header cell and the record field it maps to."""

    model_config = _MODEL_CONFIG

    name: str = Field(min_length=1)
    key: str = Field(min_length=1)
    default: Any = None


class RowSchema(BaseModel):
    """Header row position and the headers allowed in it."""

    model_config = _MODEL_CONFIG

    header_row: int = Field(default=1, ge=1, alias="headerRow")
    allowed_headers: List[HeaderSchema] = Field(alias="allowedHeaders")

    @model_validator(mode="after")
    def _check_unique_keys(self) -> "RowSchema":
        seen: set[str] = set()
        for header in self.allowed_headers:
            if header.key in seen:
                raise ValueError(f"allowedHeaders key {header.key!r} is declared more than once")
            seen.add(header.key)
        return self

    @property
    def header_names(self) -> List[str]:
        return [header.name for header in self.allowed_headers]


class SheetSchema(BaseModel):
    """Expected layout of one sheet, identified by its display name."""

    model_config = _MODEL_CONFIG

    name: str = Field(min_length=1)
    key: Optional[str] = Field(default=None, min_length=1)
    allowed_names: Optional[List[str]] = Field(default=None, alias="allowedNames")
    rows: RowSchema

    @property
    def sheet_key(self) -> str:
        """Identifier handed to consumers; falls back to the sheet name."""

        return self.key or self.name


class WorkbookSchema(BaseModel):
    """Complete configuration for a reader or writer instance."""

    model_config = _MODEL_CONFIG

    sheets: List[SheetSchema] = Field(min_length=1)
    debug: bool = False

    @model_validator(mode="after")
    def _check_unique_sheets(self) -> "WorkbookSchema":
        names: set[str] = set()
        keys: set[str] = set()
        for sheet in self.sheets:
            if sheet.name in names:
                raise ValueError(f"sheet name {sheet.name!r} is declared more than once")
            if sheet.sheet_key in keys:
                raise ValueError(f"sheet key {sheet.sheet_key!r} is declared more than once")
            names.add(sheet.name)
            keys.add(sheet.sheet_key)
        return self

    def sheet_named(self, name: str) -> Optional[SheetSchema]:
        for sheet in self.sheets:
            if sheet.name == name:
                return sheet
        return None

    def sheet_keyed(self, key: str) -> Optional[SheetSchema]:
        for sheet in self.sheets:
            if sheet.sheet_key == key:
                return sheet
        return None


SchemaSource = Union[WorkbookSchema, Mapping[str, Any]]


def _format_location(loc: Sequence[Union[str, int]]) -> str:
    text = ""
    for part in loc:
        if isinstance(part, int):
            text += f"[{part}]"
        else:
            text += f".{part}" if text else str(part)
    return text or "configuration"


def load_schema(raw: SchemaSource) -> WorkbookSchema:
    """Validate a raw configuration payload.

    Args:
        raw: Mapping shaped like ``{"sheets": [...], "debug": bool}`` or an existing
            :class:`WorkbookSchema` (returned unchanged).

    Returns:
        Validated, immutable workbook schema.

    Raises:
        ConfigError: On the first structural or constraint violation.
    """

    if isinstance(raw, WorkbookSchema):
        return raw
    if not isinstance(raw, Mapping):
        raise ConfigError(
            f"configuration must be a mapping, got {type(raw).__name__}",
            field="configuration",
        )
    try:
        return WorkbookSchema.model_validate(dict(raw))
    except ValidationError as exc:
        first: Dict[str, Any] = exc.errors()[0]
        location = _format_location(first["loc"])
        raise ConfigError(f"{location}: {first['msg']}", field=location) from exc


def load_schema_file(path: Path) -> WorkbookSchema:
    """Load a schema from a YAML (or JSON) file."""

    if not path.exists():
        raise FileNotFoundError(f"Schema file not found: {path}")
    with path.open("r", encoding="utf-8") as fh:
        try:
            payload = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid schema file {path}: {exc}", field="configuration") from exc
    if not isinstance(payload, dict):
        raise ConfigError(
            "Invalid schema file structure (expected mapping)", field="configuration"
        )
    return load_schema(payload)
