"""
Minute-level gap filling for grouped time-series rows.

Given rows keyed by (group columns, timestamp), produce a regular series with
exactly one row per minute per group over [start, end], carrying the last
known value of each requested column forward. Observations before ``start``
seed the fill; minutes before the first observation stay NaN.
"""

from __future__ import annotations

from typing import Any, Hashable, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from loguru import logger

from ..exceptions import ValidationError

GroupKey = Union[Hashable, Tuple[Hashable, ...]]


def _as_list(cols: Union[str, Iterable[str], None]) -> List[str]:
    if cols is None:
        return []
    if isinstance(cols, str):
        return [cols]
    return list(cols)


def _align_tz(ts, tz) -> pd.Timestamp:
    ts = pd.Timestamp(ts)
    if tz is not None and ts.tzinfo is None:
        return ts.tz_localize(tz)
    if tz is None and ts.tzinfo is not None:
        return ts.tz_convert(None)
    if tz is not None:
        return ts.tz_convert(tz)
    return ts


def minute_index(start, end, tz=None, name: Optional[str] = None) -> pd.DatetimeIndex:
    """
    Regular one-minute grid from floor(start) to floor(end), both inclusive.

    Raises:
        ValidationError: if end is before start
    """
    start = _align_tz(start, tz).floor("min")
    end = _align_tz(end, tz).floor("min")
    if end < start:
        raise ValidationError(f"end ({end}) is before start ({start})")
    return pd.date_range(start=start, end=end, freq="min", name=name)


def _normalize_key(key, n_groups: int) -> Tuple:
    key = key if isinstance(key, tuple) else (key,)
    if len(key) != n_groups:
        raise ValidationError(f"Group key {key!r} does not match {n_groups} group columns")
    return key


def _fill_group(
    rows: pd.DataFrame,
    grid: pd.DatetimeIndex,
    time_column: str,
    fill_columns: List[str],
) -> pd.DataFrame:
    s = rows.set_index(time_column)[fill_columns]
    s = s.reindex(s.index.union(grid)).sort_index().ffill()
    return s.reindex(grid).rename_axis(time_column).reset_index()


def _blank_group(
    grid: pd.DatetimeIndex,
    time_column: str,
    group_columns: List[str],
    key: Tuple,
    fill_columns: List[str],
    values: Mapping[str, Any],
) -> pd.DataFrame:
    filled = pd.DataFrame({time_column: grid})
    for col, value in zip(group_columns, key):
        filled[col] = value
    for col in fill_columns:
        filled[col] = values.get(col, np.nan)
    return filled


def fill_minute_gaps(
    df: pd.DataFrame,
    time_column: str,
    group_columns: Union[str, Sequence[str], None],
    start,
    end,
    fill_columns: Union[str, Sequence[str]],
    group_fields: Optional[Mapping[GroupKey, Mapping[str, Any]]] = None,
) -> pd.DataFrame:
    """
    Forward-fill grouped rows onto a one-minute grid.

    Args:
        df: input rows
        time_column: timestamp column name
        group_columns: column(s) identifying a series (may be empty)
        start: first minute of the output range (floored)
        end: last minute of the output range (floored, inclusive)
        fill_columns: columns whose last known value is carried forward
        group_fields: placeholder values for groups absent from ``df``; keys are
            scalars for one group column, tuples otherwise

    Returns:
        DataFrame with columns [time_column, *group_columns, *fill_columns],
        one row per minute per group, sorted by group then time

    Raises:
        ValidationError: on missing columns, bad group keys, or end < start
    """
    group_columns = _as_list(group_columns)
    fill_columns = _as_list(fill_columns)
    if not fill_columns:
        raise ValidationError("fill_columns must name at least one column")
    overlap = sorted(set(group_columns) & set(fill_columns))
    if overlap or time_column in group_columns or time_column in fill_columns:
        raise ValidationError(f"time, group and fill columns must be distinct (overlap: {overlap})")
    missing = [c for c in [time_column, *group_columns, *fill_columns] if c not in df.columns]
    if missing:
        raise ValidationError(f"Columns not in frame: {missing}")

    times = pd.to_datetime(df[time_column])
    tz = times.dt.tz
    grid = minute_index(start, end, tz=tz, name=time_column)
    out_columns = [time_column, *group_columns, *fill_columns]

    work = df[[*group_columns, *fill_columns]].copy()
    work[time_column] = times.dt.floor("min")
    # keys seen anywhere in the input, including rows after end
    input_keys = list(work[group_columns].drop_duplicates().itertuples(index=False, name=None)) if group_columns else []
    work = work[work[time_column].notna() & (work[time_column] <= grid[-1])]
    # stable sort keeps input order within a minute so the last row wins
    work = work.sort_values(time_column, kind="mergesort")
    work = work.drop_duplicates(subset=[*group_columns, time_column], keep="last")

    frames: List[pd.DataFrame] = []
    seen = set()
    if group_columns:
        for key, rows in work.groupby(group_columns, sort=True, dropna=False):
            key = _normalize_key(key, len(group_columns))
            seen.add(key)
            filled = _fill_group(rows, grid, time_column, fill_columns)
            for col, value in zip(group_columns, key):
                filled[col] = value
            frames.append(filled)
        for key in input_keys:
            if key not in seen:
                frames.append(_blank_group(grid, time_column, group_columns, key, fill_columns, {}))
                seen.add(key)
    else:
        frames.append(_fill_group(work, grid, time_column, fill_columns))

    placeholders = 0
    for raw_key, values in (group_fields or {}).items():
        if not group_columns:
            raise ValidationError("group_fields requires group_columns")
        key = _normalize_key(raw_key, len(group_columns))
        if key in seen:
            continue
        unknown = sorted(set(values) - set(fill_columns))
        if unknown:
            raise ValidationError(f"group_fields for {raw_key!r} names non-fill columns: {unknown}")
        frames.append(_blank_group(grid, time_column, group_columns, key, fill_columns, values))
        seen.add(key)
        placeholders += 1

    if not frames:
        return pd.DataFrame(columns=out_columns)

    result = pd.concat([f[out_columns] for f in frames], ignore_index=True)
    result = result.sort_values([*group_columns, time_column], kind="mergesort").reset_index(drop=True)
    logger.debug(
        f"Gap fill: {len(df)} input rows -> {len(result)} rows "
        f"({len(frames)} groups x {len(grid)} minutes, {placeholders} placeholder groups)"
    )
    return result
