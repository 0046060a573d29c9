"""
Track summary statistics for pypod.

Light-weight descriptive numbers attached to each detected session so a user can
recognise it (how far, how fast). These are not performance analytics; they are
computed straight from the cleaned track.
"""

from typing import Dict, Union

import numpy as np
import pandas as pd
import polars as pl
from pyproj import Geod

from pypod.utilities.records import LAT_COL, LON_COL, SPEED_COL, _to_pandas_preserve, require_columns

_GEOD = Geod(ellps="WGS84")


def track_length_m(df: Union[pd.DataFrame, pl.DataFrame],
                   lat_col: str = LAT_COL,
                   lon_col: str = LON_COL) -> float:
    """
    Total WGS84 geodesic length of a track in meters.

    Returns 0.0 for tracks with fewer than two points.
    """
    pdf, _ = _to_pandas_preserve(df)
    if len(pdf) < 2:
        return 0.0
    require_columns(pdf, [lat_col, lon_col])
    lats = pdf[lat_col].to_numpy(dtype=float)
    lons = pdf[lon_col].to_numpy(dtype=float)
    # Geod.inv expects lon, lat order
    _, _, lens = _GEOD.inv(lons[:-1], lats[:-1], lons[1:], lats[1:])
    return float(np.nansum(np.abs(lens)))


def session_summary(df: Union[pd.DataFrame, pl.DataFrame],
                    lat_col: str = LAT_COL,
                    lon_col: str = LON_COL) -> Dict[str, float]:
    """
    Distance and speed figures for a session's records.

    Returns
    -------
    dict
        ``total_distance_m`` (geodesic track length), ``top_speed_kmh`` and
        ``avg_speed_kmh`` (max and mean of the ``speed`` column). All zeros for an
        empty frame.
    """
    pdf, _ = _to_pandas_preserve(df)
    if len(pdf) == 0:
        return {"total_distance_m": 0.0, "top_speed_kmh": 0.0, "avg_speed_kmh": 0.0}
    require_columns(pdf, [SPEED_COL])
    speeds = pdf[SPEED_COL].to_numpy(dtype=float)
    return {
        "total_distance_m": track_length_m(pdf, lat_col=lat_col, lon_col=lon_col),
        "top_speed_kmh": float(np.nanmax(speeds)),
        "avg_speed_kmh": float(np.nanmean(speeds)),
    }
