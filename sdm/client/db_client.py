"""
Client for an InfluxDB 3 compatible time-series store, built on influxdb3-python.

Write path: every input shape is validated before anything is sent. Frames and
tables go through the DataModel and are written as DataFrame slices of
``batch_size`` rows, serialized by the library. Points and dict records become
influxdb_client_3 Points and are encoded to lines up front. Each batch is one
synchronous ``InfluxDBClient3.write`` call.

Read path: ``InfluxDBClient3.query`` over Flight, returned in the requested shape.

Connection errors, server rejections and validation failures surface as
distinct exception types (see sdm.exceptions).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence

import pandas as pd
import pyarrow as pa
import requests
from influxdb_client_3 import (
    SYNCHRONOUS,
    InfluxDBClient3,
    Point,
    WritePrecision,
    write_client_options,
)
from influxdb_client_3.exceptions.exceptions import InfluxDBError
from loguru import logger
from pyarrow import flight
from urllib3.exceptions import HTTPError as Urllib3HTTPError
from urllib3.util.retry import Retry

from ..config import SDMConfig
from ..exceptions import (
    NotImplementedFeatureError,
    ReadError,
    SDMConnectionError,
    ValidationError,
    WriteError,
)
from ..model.data_model import DataModel
from .batching import batch_count, chunked, frame_chunks

QUERY_MODES = ("all", "arrow", "pandas", "records", "schema")
QUERY_LANGUAGES = ("sql", "influxql")
HEALTH_PATH = "/health"

WRITE_PRECISIONS = {
    "ns": WritePrecision.NS,
    "us": WritePrecision.US,
    "ms": WritePrecision.MS,
    "s": WritePrecision.S,
}

# library query mode per SDK mode; records are shaped from the Arrow table
_LIBRARY_MODES = {"all": "all", "arrow": "all", "records": "all", "pandas": "pandas", "schema": "schema"}

_BODY_PREVIEW = 500


@dataclass(frozen=True)
class WriteResult:
    lines: int
    batches: int
    database: str


@dataclass(frozen=True)
class FramePayload:
    """A validated frame ready for library serialization."""

    frame: pd.DataFrame
    measurement: str
    tags: List[str]
    timestamp_column: str


class SDMClient:
    """
    Client for writing to and querying the time-series store.

    Usage:
        with SDMClient("http://localhost:8181", token="...", database="sensors") as client:
            client.write(model)
            df = client.query("SELECT * FROM weather", mode="pandas")
    """

    def __init__(
        self,
        host: str,
        token: Optional[str] = None,
        database: Optional[str] = None,
        timeout_ms: int = 10_000,
        batch_size: int = 5_000,
        precision: str = "ns",
        verify_ssl: bool = True,
        max_retries: int = 3,
        gzip: bool = False,
    ):
        self.config = SDMConfig(
            host=host,
            token=token,
            database=database,
            timeout_ms=timeout_ms,
            batch_size=batch_size,
            precision=precision,
            verify_ssl=verify_ssl,
            max_retries=max_retries,
            gzip=gzip,
        )
        self.host = host.rstrip("/")
        self.client: Optional[InfluxDBClient3] = None

    @classmethod
    def from_config(cls, config: SDMConfig) -> "SDMClient":
        return cls(**config.to_dict(redact=False))

    @classmethod
    def from_env(cls) -> "SDMClient":
        return cls.from_config(SDMConfig.from_env())

    # ----- lifecycle -----

    def _create_client(self) -> InfluxDBClient3:
        """Create the library client with synchronous writes and a retry strategy."""
        # Writes are idempotent on (measurement, tags, time), so POST is retried too
        retries = Retry(
            total=self.config.max_retries,
            backoff_factor=0.5,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "POST"],
            raise_on_status=False,
        )
        return InfluxDBClient3(
            host=self.host,
            token=self.config.token,
            database=self.config.database,
            write_client_options=write_client_options(write_options=SYNCHRONOUS),
            timeout=self.config.timeout_ms,
            verify_ssl=self.config.verify_ssl,
            enable_gzip=self.config.gzip,
            retries=retries,
        )

    def open(self) -> "SDMClient":
        if self.client is None:
            self.client = self._create_client()
            logger.info(f"SDMClient opened: host={self.host} database={self.config.database}")
        return self

    def close(self) -> None:
        if self.client is not None:
            client, self.client = self.client, None
            client.close()
            logger.info(f"SDMClient closed: host={self.host}")

    @property
    def closed(self) -> bool:
        return self.client is None

    def __enter__(self) -> "SDMClient":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _require_open(self) -> InfluxDBClient3:
        if self.client is None:
            raise SDMConnectionError("Client is closed; call open() or use it as a context manager")
        return self.client

    def _database(self, database: Optional[str]) -> str:
        db = database or self.config.database
        if not db:
            raise ValidationError("No database given and no default database configured")
        return db

    def ping(self) -> bool:
        """True when the server answers /health with 2xx."""
        self._require_open()
        url = f"{self.host}{HEALTH_PATH}"
        headers = {"Authorization": f"Token {self.config.token}"} if self.config.token else {}
        try:
            response = requests.get(
                url, headers=headers, timeout=self.config.timeout_s, verify=self.config.verify_ssl
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Health check {url} failed: {e}")
            raise SDMConnectionError(f"Could not reach {url}: {e}") from e
        logger.debug(f"Health check {self.host}: {response.status_code}")
        return 200 <= response.status_code < 300

    # ----- write -----

    def prepare(
        self,
        data: Any,
        measurement: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        fields: Optional[Sequence[str]] = None,
        timestamp_column: Optional[str] = None,
        precision: Optional[str] = None,
    ):
        """
        Validate any supported input shape without sending it.

        Returns a FramePayload for DataModels, DataFrames and Tables, or a list
        of line-protocol strings for Points, dict records and line strings.

        ``measurement``, ``tags``, ``fields`` and ``timestamp_column`` describe a
        bare DataFrame or Table. Passing them with any other shape is a
        ValidationError, since a DataModel or Point already carries them.

        Raises:
            ValidationError: unsupported shape or invalid record
        """
        precision = precision or self.config.precision
        if isinstance(data, (pd.DataFrame, pa.Table)):
            builder = DataModel.builder().set_measurement(measurement)
            builder = builder.set_df(data) if isinstance(data, pd.DataFrame) else builder.set_table(data)
            if tags is not None:
                builder.set_tags(list(tags))
            if fields is not None:
                builder.set_fields(list(fields))
            if timestamp_column is not None:
                builder.set_timestamp_column(timestamp_column)
            return self._frame_payload(builder.build(), precision)

        given = {
            "measurement": measurement,
            "tags": tags,
            "fields": fields,
            "timestamp_column": timestamp_column,
        }
        extra = sorted(name for name, value in given.items() if value is not None)
        if extra:
            raise ValidationError(
                f"{extra} only apply to DataFrame or Table input, not {type(data).__name__}"
            )

        if isinstance(data, DataModel):
            return self._frame_payload(data, precision)
        if isinstance(data, Point):
            return [self._point_line(data, precision, "Point")]
        if isinstance(data, str):
            return [self._check_line(line) for line in data.splitlines() if line.strip()]
        if isinstance(data, (list, tuple)):
            if not data:
                return []
            if all(isinstance(item, str) for item in data):
                return [self._check_line(line) for line in data]
            if all(isinstance(item, Point) for item in data):
                return [self._point_line(p, precision, f"Point {i}") for i, p in enumerate(data)]
            if all(isinstance(item, Mapping) for item in data):
                return [self._record_line(rec, precision, i) for i, rec in enumerate(data)]
            raise ValidationError("List input must hold only Points, dict records, or line strings")
        raise ValidationError(f"Unsupported write input: {type(data).__name__}")

    @staticmethod
    def _frame_payload(model: DataModel, precision: str) -> FramePayload:
        ts = model.timestamp_column
        if ts is None:
            raise ValidationError(
                f"Model '{model.measurement}' has no timestamp column; frame writes need one"
            )
        frame = model.to_pandas()[[ts, *model.tags, *model.fields]].copy()
        column = frame[ts]
        try:
            if pd.api.types.is_numeric_dtype(column) and not pd.api.types.is_bool_dtype(column):
                # epoch values are in the write precision
                frame[ts] = pd.to_datetime(column, unit=precision, utc=True)
            else:
                frame[ts] = pd.to_datetime(column, utc=column.dtype == object)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Timestamp column '{ts}' could not be parsed: {e}") from e
        if frame[ts].isna().any():
            raise ValidationError(f"Timestamp column '{ts}' has missing values")
        return FramePayload(frame=frame, measurement=model.measurement, tags=list(model.tags), timestamp_column=ts)

    @staticmethod
    def _point_line(point: Point, precision: str, label: str) -> str:
        line = point.to_line_protocol(precision=WRITE_PRECISIONS[precision])
        if not line:
            raise ValidationError(f"{label}: needs a measurement and at least one non-null field")
        return line

    def _record_line(self, record: Mapping, precision: str, index: int) -> str:
        label = f"Record {index}"
        measurement = record.get("measurement")
        if not isinstance(measurement, str) or not measurement:
            raise ValidationError(f"{label}: 'measurement' must be a non-empty string")
        unknown = set(record) - {"measurement", "tags", "fields", "time"}
        if unknown:
            raise ValidationError(f"{label}: unknown keys {sorted(unknown)}")
        for key in ("tags", "fields"):
            if key in record and not isinstance(record[key], Mapping):
                raise ValidationError(f"{label}: '{key}' must be a mapping")
        if not record.get("fields"):
            raise ValidationError(f"{label}: needs at least one field")
        try:
            point = Point.from_dict(dict(record), write_precision=WRITE_PRECISIONS[precision])
        except (TypeError, ValueError) as e:
            raise ValidationError(f"{label}: {e}") from e
        return self._point_line(point, precision, label)

    @staticmethod
    def _check_line(line: str) -> str:
        if not isinstance(line, str) or not line.strip():
            raise ValidationError("Line protocol strings must be non-empty")
        text = line.strip()
        if "\n" in text:
            raise ValidationError("Each line protocol string must hold exactly one line")
        if text.startswith(("#", ",")) or " " not in text:
            raise ValidationError(f"Not a line protocol record: {line!r}")
        return text

    def write(
        self,
        data: Any,
        measurement: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        fields: Optional[Sequence[str]] = None,
        timestamp_column: Optional[str] = None,
        database: Optional[str] = None,
        batch_size: Optional[int] = None,
    ) -> WriteResult:
        """
        Validate, batch and write ``data``.

        ``measurement``, ``tags``, ``fields`` and ``timestamp_column`` apply to a
        bare DataFrame or Table only (see ``prepare``).

        Raises:
            ValidationError: invalid input (nothing was sent)
            SDMConnectionError: server unreachable or client closed
            WriteError: server rejected a batch (``lines_written`` counts earlier batches)
        """
        client = self._require_open()
        db = self._database(database)
        size = self.config.batch_size if batch_size is None else batch_size
        if size <= 0:
            raise ValidationError(f"batch size must be positive, got {size}")
        precision = self.config.precision
        if isinstance(data, DataModel) and data.precision:
            precision = data.precision
        if precision not in WRITE_PRECISIONS:
            raise ValidationError(f"Unknown precision {precision!r}")

        payload = self.prepare(data, measurement, tags, fields, timestamp_column, precision)
        if isinstance(payload, FramePayload):
            n_lines = len(payload.frame)
            batches = frame_chunks(payload.frame, size)
            extra = {
                "data_frame_measurement_name": payload.measurement,
                "data_frame_tag_columns": payload.tags,
                "data_frame_timestamp_column": payload.timestamp_column,
            }
        else:
            n_lines = len(payload)
            batches = chunked(payload, size)
            extra = {}

        if not n_lines:
            logger.debug(f"Nothing to write to {db}")
            return WriteResult(lines=0, batches=0, database=db)

        total_batches = batch_count(n_lines, size)
        written = 0
        for i, batch in enumerate(batches, start=1):
            self._send(client, batch, db, precision, written, **extra)
            written += len(batch)
            logger.debug(f"Wrote batch {i}/{total_batches} ({len(batch)} lines) to {db}")

        logger.info(f"Wrote {written} lines in {total_batches} batches to {db}")
        return WriteResult(lines=written, batches=total_batches, database=db)

    def _send(self, client: InfluxDBClient3, batch, database: str, precision: str, written: int, **kwargs) -> None:
        try:
            client.write(record=batch, database=database, write_precision=WRITE_PRECISIONS[precision], **kwargs)
        except InfluxDBError as e:
            response = getattr(e, "response", None)
            status = getattr(response, "status", None)
            body = getattr(response, "data", None)
            if isinstance(body, bytes):
                body = body.decode("utf-8", errors="replace")
            text = (body or getattr(e, "message", None) or str(e))[:_BODY_PREVIEW]
            logger.error(f"Write to {database} rejected ({status}): {text}")
            raise WriteError(
                f"Write to {database} failed with HTTP {status}: {text}",
                status_code=status,
                body=body,
                lines_written=written,
            ) from e
        except (Urllib3HTTPError, ConnectionError, TimeoutError) as e:
            logger.error(f"Connection to {self.host} failed: {e}")
            raise SDMConnectionError(f"Could not reach {self.host}: {e}") from e

    # ----- read -----

    def query(
        self,
        query: str,
        mode: str = "pandas",
        language: str = "sql",
        database: Optional[str] = None,
    ):
        """
        Run a read query and return the result in the requested shape.

        Args:
            query: SQL (or InfluxQL) text
            mode: 'all'/'arrow' -> pyarrow.Table, 'pandas' -> DataFrame,
                'records' -> list of dicts, 'schema' -> pyarrow.Schema
            language: 'sql' or 'influxql'
            database: override default database

        Raises:
            NotImplementedFeatureError: unknown mode or language
            ReadError: server rejected the query or returned unreadable data
            SDMConnectionError: server unreachable or client closed
        """
        if mode not in QUERY_MODES:
            raise NotImplementedFeatureError(f"Query mode {mode!r} is not supported; use one of {QUERY_MODES}")
        if language not in QUERY_LANGUAGES:
            raise NotImplementedFeatureError(
                f"Query language {language!r} is not supported; use one of {QUERY_LANGUAGES}"
            )
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("query must be a non-empty string")
        client = self._require_open()
        db = self._database(database)

        logger.debug(f"Query on {db} ({language}, mode={mode}): {query}")
        try:
            result = client.query(query=query, language=language, mode=_LIBRARY_MODES[mode], database=db)
        except (flight.FlightUnavailableError, flight.FlightTimedOutError) as e:
            logger.error(f"Query on {db} could not reach {self.host}: {e}")
            raise SDMConnectionError(f"Could not reach {self.host}: {e}") from e
        except pa.ArrowException as e:
            text = str(e)[:_BODY_PREVIEW]
            logger.error(f"Query on {db} rejected: {text}")
            raise ReadError(f"Query on {db} failed: {text}", body=str(e)) from e

        if mode == "records":
            return result.to_pylist()
        return result
