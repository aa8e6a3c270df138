"""
SensaDataMesh (SDM) SDK.

Time-series client with a builder-pattern data model, schema-driven tag/field
extraction, minute-level gap filling, and a batching database client.
"""

from .client import Point, SDMClient, WriteResult
from .config import SDMConfig
from .exceptions import (
    NotImplementedFeatureError,
    ReadError,
    RuntimeEnvironmentError,
    SchemaMetadataError,
    SDMConnectionError,
    SDMError,
    ValidationError,
    WriteError,
)
from .model import DataModel, DataModelBuilder, annotate_frame, annotate_table, get_fields, get_tags
from .timeseries import fill_minute_gaps

__version__ = "0.3.0"

__all__ = [
    "DataModel",
    "DataModelBuilder",
    "Point",
    "SDMClient",
    "SDMConfig",
    "WriteResult",
    "annotate_frame",
    "annotate_table",
    "fill_minute_gaps",
    "get_fields",
    "get_tags",
    "SDMError",
    "SDMConnectionError",
    "ValidationError",
    "SchemaMetadataError",
    "WriteError",
    "ReadError",
    "NotImplementedFeatureError",
    "RuntimeEnvironmentError",
]
