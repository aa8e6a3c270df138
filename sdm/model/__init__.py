"""Data model, builder and column metadata classification."""

from .data_model import DataModel, DataModelBuilder
from .metadata import ColumnClassification, classify, get_fields, get_tags, get_timestamp_column
from .schemas import ColumnRole, FieldType, annotate_frame, annotate_table

__all__ = [
    "DataModel",
    "DataModelBuilder",
    "ColumnClassification",
    "classify",
    "get_tags",
    "get_fields",
    "get_timestamp_column",
    "ColumnRole",
    "FieldType",
    "annotate_frame",
    "annotate_table",
]
