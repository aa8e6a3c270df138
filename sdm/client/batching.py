"""Fixed-size chunking for the write path."""

from __future__ import annotations

from itertools import islice
from typing import Iterable, Iterator, List, TypeVar

import pandas as pd

from ..exceptions import ValidationError

T = TypeVar("T")


def chunked(items: Iterable[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive lists of at most ``size`` items; the last one may be shorter."""
    if size <= 0:
        raise ValidationError(f"batch size must be positive, got {size}")
    it = iter(items)
    while True:
        batch = list(islice(it, size))
        if not batch:
            return
        yield batch


def batch_count(n_items: int, size: int) -> int:
    return -(-n_items // size) if n_items else 0


def frame_chunks(frame: pd.DataFrame, size: int) -> Iterator[pd.DataFrame]:
    """Yield consecutive row slices of at most ``size`` rows."""
    if size <= 0:
        raise ValidationError(f"batch size must be positive, got {size}")
    for start in range(0, len(frame), size):
        yield frame.iloc[start:start + size]
