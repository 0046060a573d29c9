from typing import Optional, Sequence

import numpy as np
import pandas as pd
import pytest

from pypod.utilities.records import SensorRecord, records_to_frame

START_TIME = pd.Timestamp("2024-05-04 10:00:00")


def make_record(sequence_id: int = 100,
                time: Optional[pd.Timestamp] = None,
                lat: float = 51.5,
                lon: float = -0.12,
                speed: float = 10.0,
                accel: Sequence[float] = (0.1, 0.2, 9.81),
                gyro: Sequence[float] = (0.01, 0.02, 0.03),
                filtered_accel: Sequence[float] = (0.0, 0.0, 0.0)) -> SensorRecord:
    return SensorRecord(
        sequence_id=sequence_id,
        time=START_TIME if time is None else time,
        lat=lat,
        lon=lon,
        speed=speed,
        accel_x=accel[0],
        accel_y=accel[1],
        accel_z=accel[2],
        gyro_x=gyro[0],
        gyro_y=gyro[1],
        gyro_z=gyro[2],
        filtered_accel_x=filtered_accel[0],
        filtered_accel_y=filtered_accel[1],
        filtered_accel_z=filtered_accel[2],
    )


def make_stream(n: int,
                start_sequence: int = 100,
                step: int = 100,
                interval_ms: float = 100.0,
                lat0: float = 51.5,
                lon0: float = -0.12,
                dlat: float = 2e-6,
                dlon: float = 0.0,
                speed: float = 10.0,
                moving: bool = True,
                start_time: pd.Timestamp = START_TIME) -> pd.DataFrame:
    """A clean 10 Hz stream moving north at a constant pace.

    With ``moving=True`` the filtered acceleration magnitude alternates between 5 and
    12 m/s^2, which keeps its windowed variance (12.25) well above the motion
    threshold.
    """
    records = []
    for i in range(n):
        faccel_z = (5.0 if i % 2 == 0 else 12.0) if moving else 0.0
        records.append(make_record(
            sequence_id=start_sequence + i * step,
            time=start_time + pd.Timedelta(milliseconds=interval_ms * i),
            lat=lat0 + i * dlat,
            lon=lon0 + i * dlon,
            speed=speed,
            accel=(0.1 + 0.01 * np.sin(i), 0.2, 9.81),
            filtered_accel=(0.0, 0.0, faccel_z),
        ))
    return records_to_frame(records)


@pytest.fixture()
def record_factory():
    return make_record


@pytest.fixture()
def stream_factory():
    return make_stream


@pytest.fixture()
def moving_stream():
    return make_stream(50)
