"""
Record schema module for pypod.

Every pipeline stage consumes and produces the same tabular record shape: one row
per sensor record, with the columns defined below. This module holds the column
constants, a single-record dataclass, and the helpers that let every stage accept
both pandas and polars DataFrames while returning the type it was given.
"""

from dataclasses import dataclass, fields, asdict
from typing import Iterable, List, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import polars as pl

# ========== Column Names ==========
SEQUENCE_COL = "sequence_id"
TIME_COL = "time"
LAT_COL = "lat"
LON_COL = "lon"
SPEED_COL = "speed"

#: Raw accelerometer columns (m/s^2)
ACCEL_COLS = ["accel_x", "accel_y", "accel_z"]
#: Raw gyroscope columns (rad/s)
GYRO_COLS = ["gyro_x", "gyro_y", "gyro_z"]
#: All six raw inertial channels
RAW_IMU_COLS = [*ACCEL_COLS, *GYRO_COLS]
#: Gravity-compensated acceleration supplied by the pod (m/s^2)
FILTERED_ACCEL_COLS = ["filtered_accel_x", "filtered_accel_y", "filtered_accel_z"]

#: Full record layout, in canonical order
RECORD_COLS = [
    SEQUENCE_COL,
    TIME_COL,
    LAT_COL,
    LON_COL,
    SPEED_COL,
    *RAW_IMU_COLS,
    *FILTERED_ACCEL_COLS,
]


@dataclass(frozen=True)
class SensorRecord:
    """A single decoded pod record.

    ``lat == lon == 0`` is the "no fix" sentinel, never a real position.
    """

    sequence_id: int
    time: pd.Timestamp
    lat: float
    lon: float
    speed: float
    accel_x: float
    accel_y: float
    accel_z: float
    gyro_x: float
    gyro_y: float
    gyro_z: float
    filtered_accel_x: float = 0.0
    filtered_accel_y: float = 0.0
    filtered_accel_z: float = 0.0


_RECORD_FIELDS = [f.name for f in fields(SensorRecord)]


def records_to_frame(records: Iterable[SensorRecord]) -> pd.DataFrame:
    """Build a record DataFrame from an iterable of :class:`SensorRecord`."""
    rows = [asdict(r) for r in records]
    if not rows:
        return empty_record_frame()
    df = pd.DataFrame(rows, columns=_RECORD_FIELDS)
    df[TIME_COL] = pd.to_datetime(df[TIME_COL])
    df[SEQUENCE_COL] = df[SEQUENCE_COL].astype("int64")
    return df


def frame_to_records(df: Union[pd.DataFrame, pl.DataFrame]) -> List[SensorRecord]:
    """Convert a record DataFrame back into a list of :class:`SensorRecord`."""
    pdf, _ = _to_pandas_preserve(df)
    require_columns(pdf, RECORD_COLS)
    out = []
    for row in pdf[RECORD_COLS].itertuples(index=False):
        values = row._asdict()
        values[SEQUENCE_COL] = int(values[SEQUENCE_COL])
        values[TIME_COL] = pd.Timestamp(values[TIME_COL])
        out.append(SensorRecord(**values))
    return out


def empty_record_frame(columns: Sequence[str] = RECORD_COLS) -> pd.DataFrame:
    """Return a zero-row DataFrame with the record columns and dtypes."""
    df = pd.DataFrame({c: pd.Series(dtype="float64") for c in columns})
    if SEQUENCE_COL in df.columns:
        df[SEQUENCE_COL] = df[SEQUENCE_COL].astype("int64")
    if TIME_COL in df.columns:
        df[TIME_COL] = pd.Series(dtype="datetime64[ns]")
    return df


def require_columns(pdf: pd.DataFrame, columns: Iterable[str]) -> None:
    """Raise ``ValueError`` if any of ``columns`` is missing from ``pdf``."""
    for c in columns:
        if c not in pdf.columns:
            raise ValueError(f"Column '{c}' not found in DataFrame.")


# ========== DataFrame Type Preservation Helpers ==========
# Every stage works on pandas internally and hands back whatever type it was given.

def _to_pandas_preserve(df: Union[pd.DataFrame, pl.DataFrame]) -> Tuple[pd.DataFrame, bool]:
    """
    Convert input DataFrame to pandas and track original type.

    Returns: (pandas_df, was_polars_flag)
    """
    if isinstance(df, pl.DataFrame):
        return df.to_pandas(), True
    if isinstance(df, pd.DataFrame):
        return df.copy(), False
    raise ValueError("df must be either a pandas DataFrame or a polars DataFrame.")


def _from_pandas_preserve(pdf: pd.DataFrame, was_polars: bool) -> Union[pd.DataFrame, pl.DataFrame]:
    """
    Convert pandas DataFrame back to original type if needed.

    If was_polars=True, converts back to polars. Otherwise returns pandas.
    """
    return pl.from_pandas(pdf) if was_polars else pdf


def time_deltas_s(times: pd.Series) -> np.ndarray:
    """Seconds between consecutive entries of a datetime Series (length n-1)."""
    t_ns = pd.to_datetime(times).to_numpy(dtype="datetime64[ns]").astype("int64")
    return np.diff(t_ns) / 1e9


@dataclass
class FilterResult:
    """Output of gap repair and of a full pipeline run.

    ``health_score`` is the percentage of output records that are real
    (non-synthetic); ``original_count`` is the number of records that survived the
    sanity check, before repair.
    """

    records: Union[pd.DataFrame, pl.DataFrame]
    health_score: float
    original_count: int
    repaired_count: int
    outliers_corrected: int = 0
