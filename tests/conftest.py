from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

import pandas as pd
import pyarrow as pa
import pytest

from sdm.model.schemas import annotate_table


@pytest.fixture()
def weather_df() -> pd.DataFrame:
    """Three readings from two stations, one minute apart."""
    return pd.DataFrame({
        "time": pd.to_datetime(["2024-01-01T00:00:00Z", "2024-01-01T00:01:00Z", "2024-01-01T00:00:00Z"]),
        "station": ["oslo", "oslo", "bergen"],
        "region": ["east", "east", "west"],
        "temp": [1.5, 2.0, 5.25],
        "humidity": [80, 81, 90],
    })


@pytest.fixture()
def weather_table(weather_df) -> pa.Table:
    """Arrow copy of weather_df with column role metadata attached."""
    table = pa.Table.from_pandas(weather_df, preserve_index=False)
    return annotate_table(table, tags=["station", "region"], fields=["temp", "humidity"], timestamp="time")


class FakeHTTPResponse:
    def __init__(self, status: int = 400, data: bytes = b""):
        self.status = status
        self.data = data


class FakeInfluxClient:
    """Stands in for InfluxDBClient3: records writes/queries, answers from queues."""

    def __init__(self):
        self.init_kwargs: Dict = {}
        self.writes: List[Dict] = []
        self.queries: List[Dict] = []
        self.write_errors: List = []
        self.results: List = []
        self.closed = False

    def write(self, record=None, database=None, **kwargs):
        self.writes.append({"record": record, "database": database, **kwargs})
        if self.write_errors:
            err = self.write_errors.pop(0)
            if err is not None:
                raise err

    def query(self, query, language="sql", mode="all", database=None, **kwargs):
        self.queries.append({"query": query, "language": language, "mode": mode, "database": database})
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def close(self):
        self.closed = True


@pytest.fixture()
def fake_influx(monkeypatch):
    """Patch db_client so open() builds a FakeInfluxClient."""
    from sdm.client import db_client

    fake = FakeInfluxClient()

    def factory(**kwargs):
        fake.init_kwargs = kwargs
        fake.closed = False
        return fake

    monkeypatch.setattr(db_client, "InfluxDBClient3", factory)
    return fake
