"""Unit tests for SDMClient write/query paths (no network)."""

import pandas as pd
import pyarrow as pa
import pytest
import requests
from influxdb_client_3 import SYNCHRONOUS
from influxdb_client_3.exceptions.exceptions import InfluxDBError
from pyarrow import flight
from urllib3.exceptions import NewConnectionError

from conftest import FakeHTTPResponse
from sdm.client import Point, SDMClient, WritePrecision
from sdm.client import db_client
from sdm.exceptions import (
    NotImplementedFeatureError,
    ReadError,
    SDMConnectionError,
    ValidationError,
    WriteError,
)
from sdm.model import DataModelBuilder


def _client(**kwargs) -> SDMClient:
    params = {"host": "http://tsdb:8181", "token": "secret", "database": "sensors"}
    params.update(kwargs)
    return SDMClient(**params)


def _rejection(status: int, body: bytes) -> InfluxDBError:
    err = InfluxDBError(message="write rejected")
    err.response = FakeHTTPResponse(status=status, data=body)
    return err


def test_closed_client_refuses_work():
    client = _client()

    assert client.closed
    with pytest.raises(SDMConnectionError):
        client.write(["m v=1"])
    with pytest.raises(SDMConnectionError):
        client.query("SELECT 1")


def test_context_manager_opens_and_closes(fake_influx):
    with _client() as client:
        assert not client.closed
        assert client.client is fake_influx
    assert client.closed
    assert fake_influx.closed


def test_open_and_close_are_idempotent(fake_influx):
    client = _client()
    client.open()
    client.open()
    client.close()
    client.close()

    assert client.closed


def test_close_runs_on_error(fake_influx):
    with pytest.raises(RuntimeError):
        with _client():
            raise RuntimeError("boom")
    assert fake_influx.closed


def test_open_passes_settings_to_library_client(fake_influx):
    with _client(verify_ssl=False, timeout_ms=250, gzip=True, max_retries=5):
        pass

    kwargs = fake_influx.init_kwargs
    assert kwargs["host"] == "http://tsdb:8181"
    assert kwargs["token"] == "secret"
    assert kwargs["database"] == "sensors"
    assert kwargs["timeout"] == 250
    assert kwargs["verify_ssl"] is False
    assert kwargs["enable_gzip"] is True
    assert kwargs["retries"].total == 5
    assert kwargs["write_client_options"]["write_options"] is SYNCHRONOUS


def test_write_batches_lines(fake_influx):
    lines = [f"m v={i}i {i}" for i in range(7)]

    with _client(batch_size=3) as client:
        result = client.write(lines)

    assert (result.lines, result.batches, result.database) == (7, 3, "sensors")
    assert [len(w["record"]) for w in fake_influx.writes] == [3, 3, 1]
    assert sum((w["record"] for w in fake_influx.writes), []) == lines
    first = fake_influx.writes[0]
    assert first["database"] == "sensors"
    assert first["write_precision"] == WritePrecision.NS


def test_write_record_count_preserved_for_any_batch_size(fake_influx):
    records = [{"measurement": "m", "fields": {"v": i}} for i in range(10)]

    for size in (1, 3, 10, 50):
        fake_influx.writes.clear()
        with _client() as client:
            result = client.write(records, batch_size=size)
        sent = sum(len(w["record"]) for w in fake_influx.writes)
        assert result.lines == sent == 10
        assert len(fake_influx.writes) == -(-10 // size)


def test_write_dataframe_goes_through_library_serializer(fake_influx, weather_df):
    frame = weather_df.assign(note=["x", "y", "z"])

    with _client() as client:
        with pytest.raises(ValidationError):
            client.write(frame, tags=["station"])
        result = client.write(frame, measurement="weather", tags=["station", "region"], fields=["temp", "humidity"])

    assert result.lines == 3
    call = fake_influx.writes[0]
    assert call["data_frame_measurement_name"] == "weather"
    assert call["data_frame_tag_columns"] == ["station", "region"]
    assert call["data_frame_timestamp_column"] == "time"
    assert list(call["record"].columns) == ["time", "station", "region", "temp", "humidity"]


def test_write_dataframe_in_row_batches(fake_influx, weather_df):
    with _client(batch_size=2) as client:
        result = client.write(weather_df, measurement="weather", tags=["station", "region"])

    assert (result.lines, result.batches) == (3, 2)
    assert [len(w["record"]) for w in fake_influx.writes] == [2, 1]
    assert fake_influx.writes[1]["record"]["station"].tolist() == ["bergen"]


def test_write_model_uses_model_precision(fake_influx, weather_table):
    model = DataModelBuilder().set_measurement("w").set_configs({"precision": "s"}).set_table(weather_table).build()

    with _client() as client:
        client.write(model)

    call = fake_influx.writes[0]
    assert call["write_precision"] == WritePrecision.S
    assert call["data_frame_tag_columns"] == ["station", "region"]


def test_write_epoch_timestamps_use_write_precision(fake_influx):
    frame = pd.DataFrame({"time": [1704067200, 1704067260], "v": [1.0, 2.0]})
    model = DataModelBuilder().set_measurement("m").set_configs({"precision": "s"}).set_df(frame).set_fields(["v"]).build()

    with _client() as client:
        client.write(model)

    sent = fake_influx.writes[0]["record"]["time"]
    assert sent.iloc[0] == pd.Timestamp("2024-01-01T00:00:00Z")


def test_write_model_without_timestamp_is_rejected(fake_influx):
    model = DataModelBuilder().set_measurement("m").set_df(pd.DataFrame({"v": [1.0]})).set_fields(["v"]).build()

    with _client() as client:
        with pytest.raises(ValidationError, match="timestamp"):
            client.write(model)

    assert fake_influx.writes == []


def test_write_points_and_single_string(fake_influx):
    with _client() as client:
        client.write([Point("m").field("v", 1.5), Point("m").tag("k", "a").field("v", 2.5)])
        client.write("m v=1\n\nm v=2\n")

    assert fake_influx.writes[0]["record"] == ["m v=1.5", "m,k=a v=2.5"]
    assert fake_influx.writes[1]["record"] == ["m v=1", "m v=2"]


def test_records_keep_their_python_types(fake_influx):
    records = [
        {"measurement": "m", "tags": {"site": "a"}, "fields": {"v": 3.7}, "time": 60},
        {"measurement": "m", "fields": {"flag": "false"}, "time": 60},
        {"measurement": "m", "fields": {"n": 3}, "time": 60},
    ]

    with _client() as client:
        client.write(records)

    assert fake_influx.writes[0]["record"] == ["m,site=a v=3.7 60", 'm flag="false" 60', "m n=3i 60"]


def test_validation_failure_sends_nothing(fake_influx):
    records = [{"measurement": "m", "fields": {"v": 1}}, {"measurement": "m", "fields": {}}]

    with _client(batch_size=1) as client:
        with pytest.raises(ValidationError):
            client.write(records)
        with pytest.raises(ValidationError):
            client.write([{"measurement": "m", "fields": {"v": 1}, "extra": 1}])
        with pytest.raises(ValidationError):
            client.write(["m v=1", Point("m").field("v", 1)])
        with pytest.raises(ValidationError):
            client.write([Point("m")])
        with pytest.raises(ValidationError):
            client.write(42)

    assert fake_influx.writes == []


def test_frame_arguments_rejected_for_other_shapes(fake_influx, weather_table):
    model = DataModelBuilder().set_measurement("w").set_table(weather_table).build()

    with _client() as client:
        with pytest.raises(ValidationError, match="measurement"):
            client.write(model, measurement="other")
        with pytest.raises(ValidationError, match="tags"):
            client.write(Point("m").field("v", 1.0), tags=["k"])
        with pytest.raises(ValidationError, match="fields"):
            client.write(["m v=1"], fields=["v"])

    assert fake_influx.writes == []


def test_non_positive_batch_size_is_rejected(fake_influx):
    with _client() as client:
        with pytest.raises(ValidationError, match="batch size"):
            client.write(["m v=1"], batch_size=0)
        with pytest.raises(ValidationError, match="batch size"):
            client.write(["m v=1"], batch_size=-3)

    assert fake_influx.writes == []


def test_empty_write_is_noop(fake_influx):
    with _client() as client:
        result = client.write([])

    assert (result.lines, result.batches) == (0, 0)
    assert fake_influx.writes == []


def test_write_needs_database(fake_influx):
    with _client(database=None) as client:
        with pytest.raises(ValidationError, match="database"):
            client.write(["m v=1"])
        client.write(["m v=1"], database="other")

    assert fake_influx.writes[0]["database"] == "other"


def test_rejected_batch_raises_write_error(fake_influx):
    fake_influx.write_errors = [None, _rejection(400, b"partial write: field type conflict")]

    with _client(batch_size=2) as client:
        with pytest.raises(WriteError) as excinfo:
            client.write(["m v=1", "m v=2", "m v=3", "m v=4", "m v=5"])

    err = excinfo.value
    assert err.status_code == 400
    assert err.lines_written == 2
    assert "field type conflict" in str(err)
    assert len(fake_influx.writes) == 2


def test_connection_failure_raises_connection_error(fake_influx):
    fake_influx.write_errors = [NewConnectionError(None, "refused")]

    with _client() as client:
        with pytest.raises(SDMConnectionError):
            client.write(["m v=1"])


@pytest.mark.parametrize("mode, library_mode", [
    ("pandas", "pandas"),
    ("all", "all"),
    ("arrow", "all"),
    ("records", "all"),
    ("schema", "schema"),
])
def test_query_modes(fake_influx, mode, library_mode):
    table = pa.table({"host": ["a", "b"], "usage": [0.5, 0.25]})
    answer = {"pandas": table.to_pandas(), "all": table, "schema": table.schema}[library_mode]
    fake_influx.results = [answer]

    with _client() as client:
        result = client.query("SELECT host, usage FROM cpu", mode=mode)

    call = fake_influx.queries[0]
    assert call == {"query": "SELECT host, usage FROM cpu", "language": "sql", "mode": library_mode, "database": "sensors"}
    if mode == "pandas":
        assert isinstance(result, pd.DataFrame)
        assert result["usage"].tolist() == [0.5, 0.25]
    elif mode in ("all", "arrow"):
        assert result.equals(table)
    elif mode == "records":
        assert result == [{"host": "a", "usage": 0.5}, {"host": "b", "usage": 0.25}]
    else:
        assert result.names == ["host", "usage"]


def test_query_influxql_language(fake_influx):
    fake_influx.results = [pa.table({"v": [1]}).to_pandas()]

    with _client() as client:
        client.query("SELECT v FROM m", language="influxql", database="other")

    call = fake_influx.queries[0]
    assert call["language"] == "influxql"
    assert call["database"] == "other"


def test_query_unsupported_mode_and_language(fake_influx):
    with _client() as client:
        with pytest.raises(NotImplementedFeatureError):
            client.query("SELECT 1", mode="polars")
        with pytest.raises(NotImplementedFeatureError):
            client.query("from(bucket: \"x\")", language="flux")
        with pytest.raises(ValidationError):
            client.query("   ")

    assert fake_influx.queries == []


def test_query_rejected_raises_read_error(fake_influx):
    fake_influx.results = [flight.FlightServerError("table 'nope' not found")]

    with _client() as client:
        with pytest.raises(ReadError, match="nope"):
            client.query("SELECT * FROM nope")


def test_query_unreachable_raises_connection_error(fake_influx):
    fake_influx.results = [flight.FlightUnavailableError("connection refused")]

    with _client() as client:
        with pytest.raises(SDMConnectionError):
            client.query("SELECT 1")


def test_ping(fake_influx, monkeypatch):
    class FakeResponse:
        def __init__(self, status_code):
            self.status_code = status_code

    calls = []
    answers = [FakeResponse(200), FakeResponse(503)]

    def fake_get(url, **kwargs):
        calls.append((url, kwargs))
        return answers.pop(0)

    monkeypatch.setattr(db_client.requests, "get", fake_get)
    with _client(timeout_ms=250) as client:
        assert client.ping() is True
        assert client.ping() is False

    url, kwargs = calls[0]
    assert url == "http://tsdb:8181/health"
    assert kwargs["headers"] == {"Authorization": "Token secret"}
    assert kwargs["timeout"] == 0.25


def test_ping_unreachable(fake_influx, monkeypatch):
    def fake_get(url, **kwargs):
        raise requests.exceptions.ConnectionError("refused")

    monkeypatch.setattr(db_client.requests, "get", fake_get)
    with _client() as client:
        with pytest.raises(SDMConnectionError):
            client.ping()


def test_bad_client_settings():
    with pytest.raises(ValidationError):
        _client(host="tsdb:8181")
    with pytest.raises(ValidationError):
        _client(batch_size=0)
    with pytest.raises(ValidationError):
        _client(precision="m")
