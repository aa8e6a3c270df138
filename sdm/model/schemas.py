"""
Column role metadata for time-series payloads.

Arrow tables carry the role of each column in field metadata under
``iox::column::type`` (the convention InfluxDB 3 uses on query results):

- iox::column_type::tag
- iox::column_type::field::<float|integer|uinteger|string|boolean>
- iox::column_type::timestamp

pandas frames carry the same strings in ``df.attrs["column_types"]``
(column name -> role). Short forms ``tag``, ``field``, ``field::float`` and
``timestamp`` are accepted there as well.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

import pyarrow as pa

from ..exceptions import ValidationError

COLUMN_TYPE_KEY = b"iox::column::type"
COLUMN_TYPES_ATTR = "column_types"
_PREFIX = "iox::column_type::"


class ColumnRole(str, Enum):
    """Role of a column in a time-series record."""
    TAG = "tag"
    FIELD = "field"
    TIMESTAMP = "timestamp"


class FieldType(str, Enum):
    FLOAT = "float"
    INTEGER = "integer"
    UINTEGER = "uinteger"
    STRING = "string"
    BOOLEAN = "boolean"


def parse_column_type(value) -> Tuple[ColumnRole, Optional[FieldType]]:
    """
    Parse a role string into (role, field_type).

    Raises:
        ValidationError: if the string is not a known role
    """
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    if not isinstance(value, str):
        raise ValidationError(f"Column type must be a string, got {type(value).__name__}")
    s = value.strip()
    if s.startswith(_PREFIX):
        s = s[len(_PREFIX):]

    head, _, tail = s.partition("::")
    try:
        role = ColumnRole(head)
    except ValueError:
        raise ValidationError(f"Unknown column type: {value!r}") from None

    if role is not ColumnRole.FIELD:
        if tail:
            raise ValidationError(f"Only fields carry a value type: {value!r}")
        return role, None
    if not tail:
        return role, None
    try:
        return role, FieldType(tail)
    except ValueError:
        raise ValidationError(f"Unknown field type in {value!r}") from None


def format_column_type(role: ColumnRole, field_type: Optional[FieldType] = None) -> str:
    role = ColumnRole(role)
    if role is ColumnRole.FIELD and field_type is not None:
        return f"{_PREFIX}field::{FieldType(field_type).value}"
    return f"{_PREFIX}{role.value}"


def infer_field_type(dtype: pa.DataType) -> FieldType:
    """Map an Arrow value type to the line protocol field type."""
    if pa.types.is_boolean(dtype):
        return FieldType.BOOLEAN
    if pa.types.is_unsigned_integer(dtype):
        return FieldType.UINTEGER
    if pa.types.is_integer(dtype):
        return FieldType.INTEGER
    if pa.types.is_floating(dtype) or pa.types.is_decimal(dtype):
        return FieldType.FLOAT
    return FieldType.STRING


def annotate_table(
    table: pa.Table,
    tags=(),
    fields=None,
    timestamp: Optional[str] = None,
) -> pa.Table:
    """
    Return a copy of ``table`` with column role metadata attached.

    Args:
        table: Arrow table
        tags: columns to mark as tags
        fields: columns to mark as fields (default: every other non-timestamp column)
        timestamp: column to mark as the timestamp

    Returns:
        Table with the same data and annotated schema
    """
    names = table.column_names
    tags = list(tags or [])
    if fields is None:
        fields = [n for n in names if n not in tags and n != timestamp]
    missing = [n for n in [*tags, *fields, *([timestamp] if timestamp else [])] if n not in names]
    if missing:
        raise ValidationError(f"Columns not in table: {missing}")

    new_fields = []
    for f in table.schema:
        meta = dict(f.metadata or {})
        if f.name in tags:
            meta[COLUMN_TYPE_KEY] = format_column_type(ColumnRole.TAG).encode()
        elif f.name in fields:
            meta[COLUMN_TYPE_KEY] = format_column_type(ColumnRole.FIELD, infer_field_type(f.type)).encode()
        elif f.name == timestamp:
            meta[COLUMN_TYPE_KEY] = format_column_type(ColumnRole.TIMESTAMP).encode()
        new_fields.append(f.with_metadata(meta) if meta else f)
    return pa.Table.from_arrays(table.columns, schema=pa.schema(new_fields, metadata=table.schema.metadata))


def annotate_frame(df, tags=(), fields=None, timestamp: Optional[str] = None):
    """Attach column roles to a DataFrame via ``df.attrs`` (modifies in place and returns it)."""
    names = [str(c) for c in df.columns]
    tags = list(tags or [])
    if fields is None:
        fields = [n for n in names if n not in tags and n != timestamp]
    types: Dict[str, str] = {}
    for n in tags:
        types[n] = ColumnRole.TAG.value
    for n in fields:
        types[n] = ColumnRole.FIELD.value
    if timestamp:
        types[timestamp] = ColumnRole.TIMESTAMP.value
    missing = [n for n in types if n not in names]
    if missing:
        raise ValidationError(f"Columns not in frame: {missing}")
    df.attrs[COLUMN_TYPES_ATTR] = types
    return df


def column_types_from_schema(schema: pa.Schema) -> Dict[str, str]:
    """Raw role strings per column; columns without metadata are omitted."""
    out: Dict[str, str] = {}
    for f in schema:
        meta: Mapping[bytes, bytes] = f.metadata or {}
        if COLUMN_TYPE_KEY in meta:
            out[f.name] = meta[COLUMN_TYPE_KEY].decode("utf-8")
    return out
