"""
Metadata classifier: derive tag/field/timestamp columns from payload metadata.

Works on pyarrow Tables/Schemas (field metadata) and pandas DataFrames
(``df.attrs["column_types"]``). See sdm.model.schemas for the role strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd
import pyarrow as pa

from ..exceptions import SchemaMetadataError, ValidationError
from .schemas import (
    COLUMN_TYPES_ATTR,
    ColumnRole,
    FieldType,
    column_types_from_schema,
    parse_column_type,
)


@dataclass(frozen=True)
class ColumnClassification:
    tags: Tuple[str, ...]
    fields: Tuple[str, ...]
    timestamp: Optional[str] = None
    field_types: Dict[str, Optional[FieldType]] = field(default_factory=dict)


def payload_columns(payload) -> List[str]:
    if isinstance(payload, pa.Table):
        return list(payload.column_names)
    if isinstance(payload, pa.Schema):
        return list(payload.names)
    if isinstance(payload, pd.DataFrame):
        return [str(c) for c in payload.columns]
    raise ValidationError(f"Unsupported payload type: {type(payload).__name__}")


def _raw_column_types(payload) -> Dict[str, str]:
    if isinstance(payload, pa.Table):
        return column_types_from_schema(payload.schema)
    if isinstance(payload, pa.Schema):
        return column_types_from_schema(payload)
    if isinstance(payload, pd.DataFrame):
        types = payload.attrs.get(COLUMN_TYPES_ATTR) or {}
        if not isinstance(types, dict):
            raise ValidationError(f"df.attrs[{COLUMN_TYPES_ATTR!r}] must be a dict")
        return {str(k): v for k, v in types.items()}
    raise ValidationError(f"Unsupported payload type: {type(payload).__name__}")


def has_metadata(payload) -> bool:
    return bool(_raw_column_types(payload))


def classify(payload, ignore: Optional[Iterable[str]] = None) -> ColumnClassification:
    """
    Classify payload columns by their metadata.

    Args:
        payload: pyarrow Table/Schema or pandas DataFrame
        ignore: column names to leave out of tags and fields

    Returns:
        ColumnClassification with tags/fields in payload column order

    Raises:
        SchemaMetadataError: payload carries no column metadata at all
    """
    raw = _raw_column_types(payload)
    if not raw:
        raise SchemaMetadataError(
            "Payload has no column metadata; set tags/fields explicitly or annotate the schema"
        )
    ignored = set(ignore or [])
    columns = payload_columns(payload)
    unknown = [c for c in raw if c not in columns]
    if unknown:
        raise ValidationError(f"Metadata names columns not in payload: {unknown}")

    tags: List[str] = []
    fields: List[str] = []
    field_types: Dict[str, Optional[FieldType]] = {}
    timestamp: Optional[str] = None
    for name in columns:
        if name not in raw:
            continue
        role, ftype = parse_column_type(raw[name])
        if role is ColumnRole.TIMESTAMP:
            if timestamp is None:
                timestamp = name
            continue
        if name in ignored:
            continue
        if role is ColumnRole.TAG:
            tags.append(name)
        else:
            fields.append(name)
            field_types[name] = ftype
    return ColumnClassification(tuple(tags), tuple(fields), timestamp, field_types)


def get_tags(payload, ignore: Optional[Iterable[str]] = None) -> List[str]:
    """Column names classified as tags, minus ``ignore``."""
    return list(classify(payload, ignore).tags)


def get_fields(payload, ignore: Optional[Iterable[str]] = None) -> List[str]:
    """Column names classified as fields, minus ``ignore``."""
    return list(classify(payload, ignore).fields)


def get_timestamp_column(payload) -> Optional[str]:
    return classify(payload).timestamp
