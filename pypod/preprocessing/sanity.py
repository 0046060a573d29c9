"""
Record sanity-check module for pypod.

This module removes records that are corrupted or physically impossible before
any statistical processing takes place. Rejected records are deleted outright and
never repaired: a missing record leaves an honest gap that gap repair can heal,
whereas a fabricated or impossible value would drag the Kalman filter off track.

A record is rejected if any of the following holds:
- any field (position, speed or an inertial axis) is NaN or infinite (misaligned binary decode)
- both latitude and longitude are within 0.001 degrees of zero ("null island", no fix)
- any accelerometer axis exceeds 200 m/s^2 in magnitude (about 20 G)
- any gyroscope axis exceeds 40 rad/s in magnitude (above a 2000 dps sensor range)
- the speed exceeds 80 km/h (GPS glitch cap)
- all six raw inertial axes are exactly 0.0 (zero-filled payload)
"""

from typing import Union

import numpy as np
import pandas as pd
import polars as pl

from pypod.utilities.records import (
    ACCEL_COLS,
    FILTERED_ACCEL_COLS,
    GYRO_COLS,
    LAT_COL,
    LON_COL,
    SPEED_COL,
    SensorRecord,
    _from_pandas_preserve,
    _to_pandas_preserve,
    require_columns,
)

# ========== Physical Limits ==========
#: Degrees around (0, 0) treated as "no GPS fix"
NULL_ISLAND_DEG = 0.001
#: Accelerometer magnitude limit per axis in m/s^2
MAX_ACCEL = 200.0
#: Gyroscope magnitude limit per axis in rad/s
MAX_GYRO = 40.0
#: Speed limit in km/h
MAX_SPEED_KMH = 80.0


def _valid(accel: np.ndarray, gyro: np.ndarray, filtered_accel: np.ndarray,
           speed: np.ndarray, lat: np.ndarray, lon: np.ndarray) -> np.ndarray:
    """Core predicate on (n, 3) accel/gyro/filtered-accel arrays and (n,) speed/lat/lon arrays."""
    finite = (np.isfinite(accel).all(axis=1)
              & np.isfinite(gyro).all(axis=1)
              & np.isfinite(filtered_accel).all(axis=1)
              & np.isfinite(speed)
              & np.isfinite(lat)
              & np.isfinite(lon))

    # Comparisons against NaN are False, so the NaN rows are already covered by `finite`
    with np.errstate(invalid="ignore"):
        null_island = (np.abs(lat) < NULL_ISLAND_DEG) & (np.abs(lon) < NULL_ISLAND_DEG)
        accel_ok = ~(np.abs(accel) > MAX_ACCEL).any(axis=1)
        gyro_ok = ~(np.abs(gyro) > MAX_GYRO).any(axis=1)
        speed_ok = ~(speed > MAX_SPEED_KMH)

    all_zero = (accel == 0.0).all(axis=1) & (gyro == 0.0).all(axis=1)

    return finite & ~null_island & accel_ok & gyro_ok & speed_ok & ~all_zero


def is_valid_record(record: SensorRecord) -> bool:
    """
    Return ``True`` if a single record passes every sanity rule.

    Pure predicate with no side effects. See the module docstring for the rules.
    """
    accel = np.array([[record.accel_x, record.accel_y, record.accel_z]], dtype=float)
    gyro = np.array([[record.gyro_x, record.gyro_y, record.gyro_z]], dtype=float)
    filtered_accel = np.array([[record.filtered_accel_x, record.filtered_accel_y, record.filtered_accel_z]],
                              dtype=float)
    return bool(_valid(accel, gyro, filtered_accel,
                       np.array([record.speed], dtype=float),
                       np.array([record.lat], dtype=float),
                       np.array([record.lon], dtype=float))[0])


def valid_mask(df: Union[pd.DataFrame, pl.DataFrame],
               lat_col: str = LAT_COL,
               lon_col: str = LON_COL) -> np.ndarray:
    """Vectorised :func:`is_valid_record` over every row of ``df``."""
    pdf, _ = _to_pandas_preserve(df)
    require_columns(pdf, [*ACCEL_COLS, *GYRO_COLS, *FILTERED_ACCEL_COLS, SPEED_COL, lat_col, lon_col])
    return _valid(pdf[ACCEL_COLS].to_numpy(dtype=float),
                  pdf[GYRO_COLS].to_numpy(dtype=float),
                  pdf[FILTERED_ACCEL_COLS].to_numpy(dtype=float),
                  pdf[SPEED_COL].to_numpy(dtype=float),
                  pdf[lat_col].to_numpy(dtype=float),
                  pdf[lon_col].to_numpy(dtype=float))


def sanity_filter(df: Union[pd.DataFrame, pl.DataFrame],
                  lat_col: str = LAT_COL,
                  lon_col: str = LON_COL) -> Union[pd.DataFrame, pl.DataFrame]:
    """
    Drop every record that fails the sanity rules.

    Parameters
    ----------
    df : pd.DataFrame or pl.DataFrame
        Decoded records.
    lat_col : str, default='lat'
        Name of the latitude column.
    lon_col : str, default='lon'
        Name of the longitude column.

    Returns
    -------
    pd.DataFrame or pl.DataFrame
        The surviving records in their original order with a fresh index. Same type
        as the input. Never raises for bad data; an all-invalid input yields an
        empty frame.
    """
    pdf, was_polars = _to_pandas_preserve(df)
    if len(pdf) == 0:
        return _from_pandas_preserve(pdf, was_polars)

    mask = valid_mask(pdf, lat_col=lat_col, lon_col=lon_col)
    out = pdf.loc[mask].reset_index(drop=True)
    return _from_pandas_preserve(out, was_polars)
