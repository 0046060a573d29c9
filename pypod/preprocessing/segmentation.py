"""
Session segmentation module for pypod.

A pod file can hold several workouts recorded back to back. This module splits a
record stream into sessions wherever recording paused for longer than a threshold,
and drops fragments too short to be a real session.
"""

from dataclasses import dataclass
from typing import List, Union

import numpy as np
import pandas as pd
import polars as pl

from pypod.utilities.evaluation import session_summary
from pypod.utilities.records import (
    LAT_COL,
    LON_COL,
    TIME_COL,
    _from_pandas_preserve,
    _to_pandas_preserve,
    require_columns,
)

#: Pause (seconds) that ends a session: 10 minutes
DEFAULT_GAP_THRESHOLD_S = 600.0
#: Minimum session span (seconds) to keep: 5 minutes
DEFAULT_MIN_DURATION_S = 300.0


@dataclass
class SessionBlock:
    """A maximal run of records with no internal pause above the split threshold."""

    start_time: pd.Timestamp
    end_time: pd.Timestamp
    records: Union[pd.DataFrame, pl.DataFrame]
    duration: pd.Timedelta
    total_distance_m: float = 0.0
    top_speed_kmh: float = 0.0
    avg_speed_kmh: float = 0.0


def _make_block(segment: pd.DataFrame, was_polars: bool, time_col: str,
                lat_col: str, lon_col: str) -> SessionBlock:
    start = segment[time_col].iloc[0]
    end = segment[time_col].iloc[-1]
    return SessionBlock(
        start_time=start,
        end_time=end,
        records=_from_pandas_preserve(segment, was_polars),
        duration=end - start,
        **session_summary(segment, lat_col=lat_col, lon_col=lon_col),
    )


def cluster_sessions(df: Union[pd.DataFrame, pl.DataFrame],
                     gap_threshold_s: float = DEFAULT_GAP_THRESHOLD_S,
                     min_duration_s: float = DEFAULT_MIN_DURATION_S,
                     time_col: str = TIME_COL,
                     lat_col: str = LAT_COL,
                     lon_col: str = LON_COL) -> List[SessionBlock]:
    """
    Split a record stream into sessions at long pauses.

    Parameters
    ----------
    df : pd.DataFrame or pl.DataFrame
        Record stream. Must contain a time column.
    gap_threshold_s : float, default=600
        A gap between consecutive records strictly greater than this starts a new
        session. A gap of exactly the threshold does not split.
    min_duration_s : float, default=300
        Sessions whose span (last time - first time) is shorter than this are
        discarded as noise.
    time_col : str, default='time'
        Name of the time column.
    lat_col, lon_col : str
        Coordinate columns, used for the session distance summary.

    Returns
    -------
    list of SessionBlock
        Retained sessions in chronological order. Each block's ``records`` is a
        fresh frame (same type as the input) with a reset index. Empty input returns
        an empty list.

    Examples
    --------
    >>> sessions = pp.preprocessing.cluster_sessions(result.records)
    >>> for s in sessions:
    ...     print(s.start_time, s.duration, round(s.total_distance_m))

    Notes
    -----
    **Algorithm:**
    1. Sort records by time (stable)
    2. Compute time differences between consecutive records
    3. Split where the difference exceeds ``gap_threshold_s``
    4. Keep segments spanning at least ``min_duration_s``
    """
    pdf, was_polars = _to_pandas_preserve(df)
    if len(pdf) == 0:
        return []
    require_columns(pdf, [time_col])

    pdf[time_col] = pd.to_datetime(pdf[time_col])
    pdf = pdf.sort_values(time_col, kind="mergesort").reset_index(drop=True)

    gap = pd.Timedelta(gap_threshold_s, unit="s")
    min_span = pd.Timedelta(min_duration_s, unit="s")

    # Find all points where the time gap exceeds the threshold
    time_values = pdf[time_col]
    time_diffs = time_values.diff().iloc[1:]
    split_indices = np.where(time_diffs.to_numpy() > gap.to_timedelta64())[0] + 1
    bounds = [0, *split_indices.tolist(), len(pdf)]

    blocks = []
    for start_idx, end_idx in zip(bounds[:-1], bounds[1:]):
        segment = pdf.iloc[start_idx:end_idx].reset_index(drop=True)
        span = segment[time_col].iloc[-1] - segment[time_col].iloc[0]
        if span >= min_span:
            blocks.append(_make_block(segment, was_polars, time_col, lat_col, lon_col))
    return blocks
