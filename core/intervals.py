"""Fixed-width time buckets used to group raw Midgard samples.

Interval lengths are deliberately non-calendar (30-day month, 90-day quarter,
365-day year) so bucket boundaries stay aligned with upstream's own windows.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Tuple

import numpy as np
import pandas as pd

__all__ = [
    "DEFAULT_INTERVAL",
    "IntervalKind",
    "SECONDS_PER_INTERVAL",
    "bucket",
    "bucket_starts",
    "is_valid_interval",
    "seconds_per_interval",
]


class IntervalKind(str, Enum):
    FIVE_MIN = "5min"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


SECONDS_PER_INTERVAL = {
    IntervalKind.FIVE_MIN.value: 300,
    IntervalKind.HOUR.value: 3600,
    IntervalKind.DAY.value: 86400,
    IntervalKind.WEEK.value: 604800,
    IntervalKind.MONTH.value: 2592000,
    IntervalKind.QUARTER.value: 7776000,
    IntervalKind.YEAR.value: 31536000,
}

DEFAULT_INTERVAL = IntervalKind.HOUR.value


def is_valid_interval(name: Optional[str]) -> bool:
    return name in SECONDS_PER_INTERVAL


def seconds_per_interval(interval: Optional[str | IntervalKind]) -> int:
    """Return the bucket length in seconds; unknown names fall back to hour."""
    if isinstance(interval, IntervalKind):
        interval = interval.value
    return SECONDS_PER_INTERVAL.get(
        interval or DEFAULT_INTERVAL, SECONDS_PER_INTERVAL[DEFAULT_INTERVAL]
    )


def _trunc_mod(value: int, length: int) -> int:
    # Remainder takes the sign of the dividend, like the document store's $mod.
    remainder = abs(value) % length
    return -remainder if value < 0 else remainder


def bucket(end_time: int, interval: Optional[str | IntervalKind]) -> Tuple[int, int]:
    """Map a sample's end_time to its aligned ``(bucket_start, bucket_end)``.

    The anchor is ``end_time + 1``; the group key is
    ``anchor - ((end_time - 1) mod L)`` and the bucket start is that key
    rounded down to a multiple of ``L``. A sample whose end_time falls exactly
    on a boundary therefore lands in the bucket it closes.

    >>> bucket(3599, "hour"), bucket(3600, "hour"), bucket(7199, "hour")
    ((0, 3600), (0, 3600), (3600, 7200))
    """
    length = seconds_per_interval(interval)
    anchor = int(end_time) + 1
    key = anchor - _trunc_mod(int(end_time) - 1, length)
    start = key - (key % length)
    return start, start + length


def bucket_starts(
    end_times: pd.Series, interval: Optional[str | IntervalKind]
) -> pd.Series:
    """Vectorised :func:`bucket` returning only the bucket starts."""
    length = seconds_per_interval(interval)
    values = end_times.astype("int64")
    keys = (values + 1) - np.fmod(values - 1, length)
    return (keys - np.mod(keys, length)).astype("int64")
