"""
Pod file input/output for pypod.

Readers and writers around the record schema:

- The pod's binary log format (fixed 64-byte little-endian records)
- Delimited text export with the pod tooling's column headers
"""

import struct
from datetime import datetime
from pathlib import Path
from typing import Union

import pandas as pd
import polars as pl

from pypod.utilities.records import (
    RECORD_COLS,
    SEQUENCE_COL,
    TIME_COL,
    _to_pandas_preserve,
    empty_record_frame,
    require_columns,
)

#: Size of one binary log record in bytes
PACKET_SIZE = 64
#: Plausible year range used to find record boundaries in a damaged file
MIN_YEAR = 2022
MAX_YEAR = 2030

# uint32 tick, uint16 year, 5 x uint8 (month, day, hour, minute, second),
# uint16 millisecond, 12 x float32, 3 padding bytes
_PACKET = struct.Struct("<IHBBBBBH12f3x")

#: CSV header names, in record column order
CSV_COLUMNS = {
    TIME_COL: "Timestamp",
    SEQUENCE_COL: "KernelCount",
    "lat": "Lat",
    "lon": "Lon",
    "speed": "Speed_Kph",
    "accel_x": "AccelX",
    "accel_y": "AccelY",
    "accel_z": "AccelZ",
    "gyro_x": "GyroX",
    "gyro_y": "GyroY",
    "gyro_z": "GyroZ",
    "filtered_accel_x": "FiltAccelX",
    "filtered_accel_y": "FiltAccelY",
    "filtered_accel_z": "FiltAccelZ",
}


def _decode_packet(data: bytes, offset: int):
    tick, year, month, day, hour, minute, second, ms, *values = _PACKET.unpack_from(data, offset)
    if not (MIN_YEAR <= year <= MAX_YEAR) or not (1 <= month <= 12) or not (1 <= day <= 31):
        return None
    try:
        stamp = datetime(year, month, day, hour, minute, second) + pd.Timedelta(milliseconds=ms)
    except ValueError:
        # e.g. 31 February or hour 25
        return None
    return [tick, pd.Timestamp(stamp), *values]


def parse_pod_bytes(data: bytes) -> pd.DataFrame:
    """
    Decode a pod binary log into a record DataFrame.

    Parameters
    ----------
    data : bytes
        Raw file contents: consecutive 64-byte little-endian records.

    Returns
    -------
    pd.DataFrame
        One row per decoded record, in file order, with the columns of
        :data:`pypod.utilities.records.RECORD_COLS`. Values are returned exactly as
        stored (float32 widened to float64); no physical validation is applied.

    Notes
    -----
    **Record layout (offsets in bytes):**

    ====== ====================== ========
    Offset Field                  Type
    ====== ====================== ========
    0      kernel tick (sequence) uint32
    4      year                   uint16
    6..10  month, day, h, m, s    uint8
    11     millisecond            uint16
    13     lat, lon, speed        float32
    25     accel x, y, z          float32
    37     gyro x, y, z           float32
    49     filtered accel x, y, z float32
    61     padding                3 bytes
    ====== ====================== ========

    **Resynchronisation:**
    A candidate record whose year falls outside 2022-2030, or whose date/time
    fields do not form a valid timestamp, is treated as misaligned: the reader
    advances one byte and tries again. Trailing bytes shorter than a full record
    are ignored.
    """
    rows = []
    offset = 0
    while offset + PACKET_SIZE <= len(data):
        row = _decode_packet(data, offset)
        if row is None:
            offset += 1
            continue
        rows.append(row)
        offset += PACKET_SIZE

    if not rows:
        return empty_record_frame()
    df = pd.DataFrame(rows, columns=RECORD_COLS)
    df[SEQUENCE_COL] = df[SEQUENCE_COL].astype("int64")
    df[TIME_COL] = pd.to_datetime(df[TIME_COL])
    return df


def read_pod_file(path: Union[str, Path]) -> pd.DataFrame:
    """Read and decode a pod ``.bin`` log file (see :func:`parse_pod_bytes`)."""
    return parse_pod_bytes(Path(path).read_bytes())


def write_csv(df: Union[pd.DataFrame, pl.DataFrame], path: Union[str, Path]) -> None:
    """
    Write a record stream as CSV with the pod tooling's header names.

    Timestamps are written in ISO 8601 form.
    """
    pdf, _ = _to_pandas_preserve(df)
    require_columns(pdf, RECORD_COLS)
    out = pdf[RECORD_COLS].rename(columns=CSV_COLUMNS)
    out["Timestamp"] = pd.to_datetime(out["Timestamp"]).dt.strftime("%Y-%m-%dT%H:%M:%S.%f")
    out.to_csv(path, index=False)


def read_csv(path: Union[str, Path]) -> pd.DataFrame:
    """Read a CSV written by :func:`write_csv` back into a record DataFrame."""
    df = pd.read_csv(path)
    df = df.rename(columns={v: k for k, v in CSV_COLUMNS.items()})
    require_columns(df, RECORD_COLS)
    df[TIME_COL] = pd.to_datetime(df[TIME_COL])
    df[SEQUENCE_COL] = df[SEQUENCE_COL].astype("int64")
    return df[RECORD_COLS]
