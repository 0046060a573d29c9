"""
Speed-bounded GPS outlier rejection module for pypod.

Final defensive layer of the pipeline. A GPS fix may not move further within one
short sample interval than the athlete's own reported speed allows; if it does,
the fix is pulled back along the segment from the previous point to the
speed-implied distance. This mostly catches residual jumps right after the
Kalman motion latch cold-starts.
"""

from typing import Tuple, Union

import numpy as np
import pandas as pd
import polars as pl

from pypod.utilities.records import (
    LAT_COL,
    LON_COL,
    SPEED_COL,
    TIME_COL,
    _from_pandas_preserve,
    _to_pandas_preserve,
    require_columns,
    time_deltas_s,
)

#: Mean Earth radius in meters
EARTH_RADIUS_M = 6371000.0
#: Default maximum displacement per sample interval in meters
DEFAULT_MAX_JUMP_M = 1.0
#: Pairs further apart than this in time are not checked
DEFAULT_MAX_INTERVAL_S = 0.15


def haversine_m(lat1, lon1, lat2, lon2):
    """
    Great-circle distance in meters between two points (degrees), vectorised.

    Accepts scalars or numpy arrays; returns a float or an array accordingly.
    """
    lat1, lon1, lat2, lon2 = map(np.radians, (lat1, lon1, lat2, lon2))
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = np.sin(dlat / 2.0) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2.0) ** 2
    return EARTH_RADIUS_M * 2.0 * np.arctan2(np.sqrt(a), np.sqrt(1.0 - a))


def reject_outliers(df: Union[pd.DataFrame, pl.DataFrame],
                    max_jump_m: float = DEFAULT_MAX_JUMP_M,
                    max_interval_s: float = DEFAULT_MAX_INTERVAL_S,
                    lat_col: str = LAT_COL,
                    lon_col: str = LON_COL,
                    time_col: str = TIME_COL) -> Tuple[Union[pd.DataFrame, pl.DataFrame], int]:
    """
    Pull implausible GPS jumps back to the speed-implied displacement.

    Parameters
    ----------
    df : pd.DataFrame or pl.DataFrame
        Smoothed record stream, in time order.
    max_jump_m : float, default=1.0
        Displacement between consecutive records above which a fix is checked.
    max_interval_s : float, default=0.15
        Only pairs with ``0 < dt <= max_interval_s`` are checked.
    lat_col, lon_col, time_col : str
        Column names.

    Returns
    -------
    tuple of (pd.DataFrame or pl.DataFrame, int)
        The corrected stream (same type as the input) and the number of corrected
        records.

    Notes
    -----
    Records are compared with the previous *corrected* record. For an eligible pair
    whose displacement ``d`` exceeds ``max_jump_m``, the expected displacement is
    ``mean(speed_prev, speed_curr) / 3.6 * dt``. When it is smaller than ``d``, the
    current position becomes ``prev + (curr - prev) * expected / d``.

    The correction is bounded by the reported speeds, not by ``max_jump_m``: a pair
    whose reported speed implies more than ``max_jump_m`` per interval can still
    exceed it after correction.
    """
    pdf, was_polars = _to_pandas_preserve(df)
    if len(pdf) < 2:
        return _from_pandas_preserve(pdf, was_polars), 0
    require_columns(pdf, [lat_col, lon_col, SPEED_COL, time_col])

    lats = pdf[lat_col].to_numpy(dtype=float).copy()
    lons = pdf[lon_col].to_numpy(dtype=float).copy()
    speeds = pdf[SPEED_COL].to_numpy(dtype=float)
    dts = time_deltas_s(pdf[time_col])

    corrections = 0
    for i in range(1, len(pdf)):
        dt = dts[i - 1]
        if not (0.0 < dt <= max_interval_s):
            continue

        distance = float(haversine_m(lats[i - 1], lons[i - 1], lats[i], lons[i]))
        if distance <= max_jump_m:
            continue

        avg_speed_ms = (speeds[i - 1] + speeds[i]) / 2.0 / 3.6
        expected = avg_speed_ms * dt
        if expected < distance:
            ratio = expected / distance if distance > 0 else 0.0
            lats[i] = lats[i - 1] + (lats[i] - lats[i - 1]) * ratio
            lons[i] = lons[i - 1] + (lons[i] - lons[i - 1]) * ratio
            corrections += 1

    pdf[lat_col] = lats
    pdf[lon_col] = lons
    return _from_pandas_preserve(pdf, was_polars), corrections
