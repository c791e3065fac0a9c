"""Field schema: the typed description of what the caller wants extracted.

A schema is an ordered mapping of field name -> FieldSpec. Declared order is
preserved so prompts render identically for identical schemas.
"""

import json
import logging
import re
from collections.abc import Iterator, Mapping
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from .errors import SchemaError

logger = logging.getLogger(__name__)


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ENUM = "enum"
    ARRAY = "array"
    OBJECT = "object"


class FieldSpec(BaseModel):
    """Specification of a single field."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: FieldType
    required: bool = True
    description: str | None = None

    # Type-specific options
    enum: tuple[str, ...] | None = None  # allowed values, enum only
    items: "FieldSpec | None" = None  # element spec, array only
    min: float | None = None  # inclusive bounds, number only
    max: float | None = None
    pattern: str | None = None  # full-match regex, string only

    @model_validator(mode="after")
    def _check_type_options(self) -> "FieldSpec":
        if self.type is FieldType.ENUM:
            if not self.enum:
                raise ValueError("enum field requires a non-empty 'enum' list")
            if len(set(self.enum)) != len(self.enum):
                raise ValueError("enum values must be unique")
        elif self.enum is not None:
            raise ValueError(f"'enum' is only valid for enum fields, not {self.type.value}")

        if self.items is not None and self.type is not FieldType.ARRAY:
            raise ValueError(f"'items' is only valid for array fields, not {self.type.value}")

        if (self.min is not None or self.max is not None) and self.type is not FieldType.NUMBER:
            raise ValueError(f"'min'/'max' are only valid for number fields, not {self.type.value}")
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"'min' ({self.min}) is greater than 'max' ({self.max})")

        if self.pattern is not None:
            if self.type is not FieldType.STRING:
                raise ValueError(f"'pattern' is only valid for string fields, not {self.type.value}")
            try:
                re.compile(self.pattern)
            except re.error as e:
                raise ValueError(f"invalid pattern {self.pattern!r}: {e}") from e
        return self


class Schema(BaseModel):
    """Ordered set of named fields to extract."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    fields: dict[str, FieldSpec]
    name: str | None = None
    description: str | None = None

    @model_validator(mode="after")
    def _check_fields(self) -> "Schema":
        if not self.fields:
            raise ValueError("schema must declare at least one field")
        for field_name in self.fields:
            if not field_name or field_name != field_name.strip():
                raise ValueError(f"invalid field name {field_name!r}")
        return self

    def __len__(self) -> int:
        return len(self.fields)

    def items(self) -> Iterator[tuple[str, FieldSpec]]:
        """Yield (name, FieldSpec) pairs in declared order."""
        return iter(self.fields.items())

    def required_fields(self) -> list[str]:
        return [name for name, spec in self.fields.items() if spec.required]


def validate_schema(source: "Schema | Mapping[str, Any] | str") -> Schema:
    """Validate a schema definition and return an immutable Schema.

    Accepts an existing Schema, a mapping shaped like
    ``{"fields": {...}, "name": ..., "description": ...}`` or the same
    structure as JSON text. Duplicate keys can only be detected in JSON text,
    since a mapping has already collapsed them.

    Raises SchemaError describing every problem found.
    """
    if isinstance(source, Schema):
        return source

    if isinstance(source, str):
        try:
            source = json.loads(source, object_pairs_hook=_reject_duplicate_keys)
        except json.JSONDecodeError as e:
            raise SchemaError(f"Schema is not valid JSON: {e}") from e

    if not isinstance(source, Mapping):
        raise SchemaError(f"Schema must be an object, got {type(source).__name__}")
    if not isinstance(source.get("fields"), Mapping):
        raise SchemaError("Schema must contain a 'fields' object")

    try:
        return Schema.model_validate(dict(source))
    except ValidationError as e:
        raise SchemaError(f"Invalid schema: {_describe(e)}") from e


def load_schema(path: str | Path) -> Schema:
    """Read and validate a JSON schema file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SchemaError(f"Cannot read schema file {path}: {e}") from e

    schema = validate_schema(text)
    logger.debug("Loaded schema %s with %d fields", path, len(schema))
    return schema


def _reject_duplicate_keys(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise SchemaError(f"Duplicate field name: {key!r}")
        result[key] = value
    return result


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item["loc"])
        parts.append(f"{loc}: {item['msg']}" if loc else item["msg"])
    return "; ".join(parts)
