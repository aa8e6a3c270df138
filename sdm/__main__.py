#!/usr/bin/env python3
"""
Command line entry point for the SDM SDK.

Usage:
  python -m sdm ingest data.parquet --measurement weather
  python -m sdm ingest data.csv --measurement weather --tags station --fields temp,humidity
  python -m sdm query "SELECT * FROM weather LIMIT 10" --mode pandas --output out.csv
  python -m sdm fill-gaps data.csv --time-column time --group station \
      --start 2024-01-01T00:00 --end 2024-01-01T01:00 --columns temp --output filled.csv

Connection settings come from SDM_* environment variables or a .env file
(see sdm.config), or from --config pointing at a YAML file.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq
from loguru import logger

from .client import SDMClient
from .config import SDMConfig
from .exceptions import SDMConnectionError, SDMError, ValidationError
from .log import configure_logging
from .timeseries import fill_minute_gaps


def _split(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    return [v.strip() for v in value.split(",") if v.strip()]


def _read_input(path: Path):
    suffix = path.suffix.lower()
    if suffix in (".parquet", ".pq"):
        return pq.read_table(path)
    if suffix == ".csv":
        return pd.read_csv(path)
    if suffix in (".jsonl", ".ndjson"):
        return pd.read_json(path, lines=True)
    raise ValidationError(f"Unsupported input format: {path.suffix}")


def _write_output(data, path: Optional[Path]) -> None:
    if isinstance(data, pa.Schema):
        print(data.to_string())
        return
    if isinstance(data, list):
        text = json.dumps(data, default=str, indent=2)
        if path:
            path.write_text(text)
        else:
            print(text)
        return
    df = data.to_pandas() if isinstance(data, pa.Table) else data
    if path is None:
        print(df.to_string(index=False))
    elif path.suffix.lower() in (".parquet", ".pq"):
        df.to_parquet(path, index=False)
    else:
        df.to_csv(path, index=False)
    if path:
        logger.info(f"Wrote {len(df)} rows to {path}")


def _load_config(args) -> SDMConfig:
    if args.config:
        return SDMConfig.from_yaml(args.config)
    return SDMConfig.from_env()


def cmd_ingest(args) -> int:
    data = _read_input(Path(args.file))
    cfg = _load_config(args)
    with SDMClient.from_config(cfg) as client:
        result = client.write(
            data,
            measurement=args.measurement,
            tags=_split(args.tags),
            fields=_split(args.fields),
            timestamp_column=args.timestamp_column,
            database=args.database,
            batch_size=args.batch_size,
        )
    print(f"Wrote {result.lines} lines in {result.batches} batches to {result.database}")
    return 0


def cmd_query(args) -> int:
    cfg = _load_config(args)
    with SDMClient.from_config(cfg) as client:
        data = client.query(args.query, mode=args.mode, language=args.language, database=args.database)
    _write_output(data, Path(args.output) if args.output else None)
    return 0


def cmd_fill_gaps(args) -> int:
    data = _read_input(Path(args.file))
    df = data.to_pandas() if isinstance(data, pa.Table) else data
    filled = fill_minute_gaps(
        df,
        time_column=args.time_column,
        group_columns=_split(args.group) or [],
        start=args.start,
        end=args.end,
        fill_columns=_split(args.columns),
    )
    _write_output(filled, Path(args.output) if args.output else None)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sdm", description="SensaDataMesh SDK command line")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--log-file", type=Path, default=None, help="Also log to this file")
    parser.add_argument("--config", type=Path, default=None, help="YAML client config (default: SDM_* env)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("ingest", help="Write a CSV/Parquet/JSONL file")
    p.add_argument("file")
    p.add_argument("--measurement", required=True)
    p.add_argument("--tags", help="Comma separated tag columns")
    p.add_argument("--fields", help="Comma separated field columns")
    p.add_argument("--timestamp-column", default=None)
    p.add_argument("--database", default=None)
    p.add_argument("--batch-size", type=int, default=None)
    p.set_defaults(func=cmd_ingest)

    p = sub.add_parser("query", help="Run a read query")
    p.add_argument("query")
    p.add_argument("--mode", default="pandas", choices=["pandas", "all", "records", "schema"])
    p.add_argument("--language", default="sql", choices=["sql", "influxql"])
    p.add_argument("--database", default=None)
    p.add_argument("--output", default=None, help="CSV/Parquet/JSON output path (default: stdout)")
    p.set_defaults(func=cmd_query)

    p = sub.add_parser("fill-gaps", help="Forward-fill a file onto a one-minute grid")
    p.add_argument("file")
    p.add_argument("--time-column", default="time")
    p.add_argument("--group", default=None, help="Comma separated group columns")
    p.add_argument("--start", required=True)
    p.add_argument("--end", required=True)
    p.add_argument("--columns", required=True, help="Comma separated columns to fill")
    p.add_argument("--output", default=None)
    p.set_defaults(func=cmd_fill_gaps)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose, log_file=args.log_file)
    try:
        return args.func(args)
    except ValidationError as e:
        logger.error(f"Invalid input: {e}")
        return 2
    except SDMConnectionError as e:
        logger.error(f"Connection failed: {e}")
        return 3
    except SDMError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
