"""
Data model for a batch of time-series records and its builder.

A DataModel pairs a measurement name with a tabular payload (pyarrow Table or
pandas DataFrame) and the classified tag/field column names. It is built once
through DataModelBuilder, handed to SDMClient.write, then discarded.

Recognised config keys:
- ignore: list of columns never written (neither tag nor field)
- timestamp_column: name of the time column (default: metadata, then "time")
- precision: ns|us|ms|s, overrides the client precision for this model
"""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd
import pyarrow as pa
from loguru import logger

from ..config import PRECISIONS
from ..exceptions import ValidationError
from . import metadata as md

Payload = Union[pa.Table, pd.DataFrame]

DEFAULT_TIMESTAMP_COLUMN = "time"


@dataclass(frozen=True)
class DataModel:
    measurement: str
    payload: Payload
    tags: Tuple[str, ...]
    fields: Tuple[str, ...]
    timestamp_column: Optional[str] = None
    configs: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @staticmethod
    def builder() -> "DataModelBuilder":
        return DataModelBuilder()

    @property
    def is_arrow(self) -> bool:
        return isinstance(self.payload, pa.Table)

    @property
    def num_rows(self) -> int:
        return self.payload.num_rows if self.is_arrow else len(self.payload)

    @property
    def ignored(self) -> Tuple[str, ...]:
        return tuple(self.configs.get("ignore", ()))

    @property
    def precision(self) -> Optional[str]:
        return self.configs.get("precision")

    def to_pandas(self) -> pd.DataFrame:
        if self.is_arrow:
            return self.payload.to_pandas()
        return self.payload

    def to_arrow(self) -> pa.Table:
        if self.is_arrow:
            return self.payload
        return pa.Table.from_pandas(self.payload, preserve_index=False)


class DataModelBuilder:
    """
    Fluent builder for DataModel.

    Example:
        model = (
            DataModel.builder()
            .set_measurement("weather")
            .set_df(df)
            .set_tags(["station"])
            .set_fields(["temp", "humidity"])
            .build()
        )
    """

    def __init__(self):
        self._measurement: Optional[str] = None
        self._configs: dict = {}
        self._table: Optional[pa.Table] = None
        self._df: Optional[pd.DataFrame] = None
        self._tags: Optional[List[str]] = None
        self._fields: Optional[List[str]] = None
        self._timestamp_column: Optional[str] = None

    def set_measurement(self, measurement: str) -> "DataModelBuilder":
        self._measurement = measurement
        return self

    def set_configs(self, configs: Mapping[str, Any]) -> "DataModelBuilder":
        if not isinstance(configs, MappingABC):
            raise ValidationError(f"configs must be a mapping, got {type(configs).__name__}")
        self._configs = dict(configs)
        return self

    def set_table(self, table: pa.Table) -> "DataModelBuilder":
        if not isinstance(table, pa.Table):
            raise ValidationError(f"set_table expects a pyarrow.Table, got {type(table).__name__}")
        if self._df is not None:
            raise ValidationError("A DataFrame payload is already set; table and df are mutually exclusive")
        self._table = table
        return self

    def set_df(self, df: pd.DataFrame) -> "DataModelBuilder":
        if not isinstance(df, pd.DataFrame):
            raise ValidationError(f"set_df expects a pandas.DataFrame, got {type(df).__name__}")
        if self._table is not None:
            raise ValidationError("A pyarrow Table payload is already set; table and df are mutually exclusive")
        self._df = df
        return self

    def set_tags(self, tags: Sequence[str]) -> "DataModelBuilder":
        self._tags = _as_name_list(tags, "tags")
        return self

    def set_fields(self, fields: Sequence[str]) -> "DataModelBuilder":
        self._fields = _as_name_list(fields, "fields")
        return self

    def set_timestamp_column(self, name: str) -> "DataModelBuilder":
        self._timestamp_column = name
        return self

    def build(self) -> DataModel:
        """
        Validate staged values and produce an immutable DataModel.

        Raises:
            ValidationError: missing measurement/payload, unknown or conflicting columns
            SchemaMetadataError: tags and fields must be derived but payload has no metadata
        """
        if not isinstance(self._measurement, str) or not self._measurement.strip():
            raise ValidationError("measurement must be a non-empty string")
        payload = self._table if self._table is not None else self._df
        if payload is None:
            raise ValidationError("No payload set; call set_table() or set_df()")

        configs = self._configs
        ignore = _as_name_list(configs.get("ignore", []), "configs['ignore']")
        precision = configs.get("precision")
        if precision is not None and precision not in PRECISIONS:
            raise ValidationError(f"configs['precision'] must be one of {PRECISIONS}, got {precision!r}")

        columns = md.payload_columns(payload)
        has_meta = md.has_metadata(payload)
        classification = md.classify(payload, ignore) if has_meta else None

        ts = self._resolve_timestamp(columns, classification)

        tags, fields = self._tags, self._fields
        if tags is None and fields is None:
            classification = classification or md.classify(payload, ignore)
            tags, fields = list(classification.tags), list(classification.fields)
        elif fields is None:
            if classification is not None:
                fields = [c for c in classification.fields if c not in tags]
            else:
                fields = [c for c in columns if c not in tags and c != ts and c not in ignore]
        elif tags is None:
            tags = [c for c in classification.tags if c not in fields] if classification is not None else []

        # derived lists give way to the resolved timestamp; explicit ones are checked below
        if ts is not None:
            if self._tags is None:
                tags = [c for c in tags if c != ts]
            if self._fields is None:
                fields = [c for c in fields if c != ts]

        _require_columns(tags, columns, "tag")
        _require_columns(fields, columns, "field")
        overlap = sorted(set(tags) & set(fields))
        if overlap:
            raise ValidationError(f"Columns cannot be both tag and field: {overlap}")
        if ts is not None and (ts in tags or ts in fields):
            raise ValidationError(f"Timestamp column {ts!r} cannot be a tag or field")
        clash = sorted(set(ignore) & (set(tags) | set(fields)))
        if clash:
            raise ValidationError(f"Ignored columns listed as tag/field: {clash}")
        if not fields:
            raise ValidationError(f"Measurement {self._measurement!r} has no field columns")

        model = DataModel(
            measurement=self._measurement,
            payload=payload,
            tags=tuple(tags),
            fields=tuple(fields),
            timestamp_column=ts,
            configs=MappingProxyType(dict(configs)),
        )
        logger.debug(
            f"Built DataModel {model.measurement}: rows={model.num_rows} tags={list(model.tags)} "
            f"fields={list(model.fields)} ts={model.timestamp_column}"
        )
        return model

    def _resolve_timestamp(self, columns: List[str], classification) -> Optional[str]:
        ts = self._timestamp_column or self._configs.get("timestamp_column")
        if ts is not None:
            if ts not in columns:
                raise ValidationError(f"Timestamp column {ts!r} not in payload columns")
            return ts
        if classification is not None and classification.timestamp:
            return classification.timestamp
        if DEFAULT_TIMESTAMP_COLUMN in columns:
            return DEFAULT_TIMESTAMP_COLUMN
        return None


def _as_name_list(names, what: str) -> List[str]:
    if isinstance(names, str) or not isinstance(names, (list, tuple)):
        raise ValidationError(f"{what} must be a list of column names")
    out = list(names)
    if not all(isinstance(n, str) and n for n in out):
        raise ValidationError(f"{what} must contain non-empty strings")
    if len(set(out)) != len(out):
        raise ValidationError(f"{what} contains duplicates: {out}")
    return out


def _require_columns(names: List[str], columns: List[str], what: str) -> None:
    missing = [n for n in names if n not in columns]
    if missing:
        raise ValidationError(f"Unknown {what} columns: {missing}")
