"""
Hybrid Kalman filtering module for pypod.

This module smooths the GPS track of a gap-repaired record stream with two
independent scalar Kalman filters (latitude and longitude) followed by a
Rauch-Tung-Striebel (RTS) backward pass. The filter adapts to the athlete's state:

- Stationary: heavily distrust GPS and assume the position does not move
- Moving: trust GPS and let the position follow it

Key Features:
- Motion detection: windowed variance of the gravity-compensated acceleration
  magnitude plus a windowed mean of the (clamped) reported speed, with hysteresis
- Motion latch: tracking starts only after ~2 s of sustained motion, so the filter
  does not accumulate drift while the athlete stands still at the start
- Innovation gating: GPS "teleports" beyond ~3 standard deviations are replaced by
  the filter's prediction
- Innovation clamping: the raw correction per step is capped in degrees
- RTS Smoother: backward pass over the stored forward history removes phase lag
"""

import warnings
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union

import numpy as np
import pandas as pd
import polars as pl
from numba import njit

from pypod.utilities.records import (
    FILTERED_ACCEL_COLS,
    LAT_COL,
    LON_COL,
    SPEED_COL,
    _from_pandas_preserve,
    _to_pandas_preserve,
    require_columns,
)

# ========== Filter Tuning ==========
#: Hard clamp (km/h) applied to speed before smoothing
PHYSICS_SPEED_LIMIT_KMH = 45.0
#: Normalised innovation above which a GPS fix is rejected (~3 sigma)
INNOVATION_THRESHOLD = 9.0
#: Acceleration-magnitude variance above which the athlete counts as moving
MOTION_VARIANCE_THRESHOLD = 2.5
#: Smoothed speed (km/h) above which the athlete counts as moving
MOTION_SPEED_THRESHOLD_KMH = 3.0
#: Consecutive qualifying samples needed before tracking starts (~2 s at 10 Hz)
REQUIRED_SUSTAINED_FRAMES = 20
#: Maximum raw innovation, in degrees, applied in a single update
MAX_INNOVATION_SHIFT_DEG = 0.0001
#: Records with |lat| below this are treated as having no fix
NO_FIX_LAT_DEG = 0.1
#: Floor for the RTS gain denominator
RTS_EPSILON = 1e-9

VARIANCE_WINDOW = 10
SPEED_WINDOW = 5


class MotionMode(Enum):
    """Filter regime selected by the motion detector."""

    MOVING = "moving"
    STATIONARY = "stationary"


_NOISE_PARAMETERS = {
    # Low Q (position holds still), high R (distrust GPS)
    MotionMode.STATIONARY: (0.0001, 50.0),
    # High Q (position may change), low R (trust GPS)
    MotionMode.MOVING: (1.0, 3.0),
}


def noise_parameters(mode: MotionMode) -> Tuple[float, float]:
    """Return the ``(q, r)`` process/measurement noise pair for a motion mode."""
    return _NOISE_PARAMETERS[mode]


@njit(cache=True)
def _rts_backward(x: np.ndarray, p: np.ndarray, q: np.ndarray, eps: float) -> np.ndarray:
    """
    Backward RTS recursion for a scalar random-walk filter.

    ``x``, ``p`` and ``q`` are the posterior estimate, posterior variance and
    process noise recorded at every forward step.
    """
    n = x.shape[0]
    smoothed = np.empty(n)
    if n == 0:
        return smoothed
    smoothed[n - 1] = x[n - 1]
    for k in range(n - 2, -1, -1):
        p_prior_next = p[k] + q[k]
        if p_prior_next > eps:
            c = p[k] / p_prior_next
        else:
            c = 0.0
        smoothed[k] = x[k] + c * (smoothed[k + 1] - x[k])
    return smoothed


class KalmanFilter1D:
    """
    Scalar Kalman filter with a random-walk model, innovation clamping and RTS.

    Parameters
    ----------
    initial_value : float
        Starting state estimate.

    Attributes
    ----------
    x : float
        Current state estimate.
    p : float
        Current estimate variance.
    q : float
        Process noise variance used by :meth:`predict`.
    r : float
        Measurement noise variance used by :meth:`update`.
    """

    def __init__(self, initial_value: float):
        self.x = float(initial_value)
        self.p = 1.0
        self.q = 1.0
        self.r = 3.0
        # Append-only (x, p, q) history for the backward pass
        self._history: List[Tuple[float, float, float]] = []

    def set_parameters(self, q: float, r: float) -> None:
        self.q = q
        self.r = r

    def predict(self) -> None:
        self.p = self.p + self.q

    def validate_innovation(self, z: float, threshold: float) -> bool:
        """Return ``True`` if measurement ``z`` is within the innovation gate."""
        s = self.p + self.r
        if s <= 0:
            return True
        return (z - self.x) ** 2 / s <= threshold

    def update(self, z: float) -> float:
        """Fuse measurement ``z`` and return the new estimate."""
        k = self.p / (self.p + self.r)
        innovation = z - self.x
        if abs(innovation) > MAX_INNOVATION_SHIFT_DEG:
            innovation = float(np.sign(innovation)) * MAX_INNOVATION_SHIFT_DEG

        self.x = self.x + k * innovation
        self.p = (1.0 - k) * self.p
        self._history.append((self.x, self.p, self.q))
        return self.x

    def clear_history(self) -> None:
        self._history.clear()

    @property
    def history(self) -> List[Tuple[float, float, float]]:
        return list(self._history)

    def rts_smooth(self) -> np.ndarray:
        """Run the RTS backward pass over the recorded history."""
        if not self._history:
            return np.zeros(0)
        hist = np.asarray(self._history, dtype=float)
        return _rts_backward(hist[:, 0], hist[:, 1], hist[:, 2], RTS_EPSILON)


class MotionDetector:
    """
    Decide whether the athlete is moving from inertial variance and speed.

    Entering the moving state requires both a high acceleration-magnitude variance
    and a high smoothed speed; once latched, either one alone sustains it.
    """

    def __init__(self,
                 variance_window: int = VARIANCE_WINDOW,
                 speed_window: int = SPEED_WINDOW):
        self._magnitudes = deque(maxlen=variance_window)
        self._speeds = deque(maxlen=speed_window)
        self.variance = 0.0
        self.smoothed_speed = 0.0

    def add(self, accel_x: float, accel_y: float, accel_z: float, speed: float) -> None:
        self._magnitudes.append(float(np.sqrt(accel_x * accel_x + accel_y * accel_y + accel_z * accel_z)))
        # Population variance; undefined below two samples
        if len(self._magnitudes) < 2:
            self.variance = 0.0
        else:
            self.variance = float(np.var(self._magnitudes))

        self._speeds.append(min(float(speed), PHYSICS_SPEED_LIMIT_KMH))
        self.smoothed_speed = float(np.mean(self._speeds))

    def is_active(self, latched: bool) -> bool:
        high_variance = self.variance > MOTION_VARIANCE_THRESHOLD
        high_speed = self.smoothed_speed > MOTION_SPEED_THRESHOLD_KMH
        if latched:
            return high_variance or high_speed
        return high_variance and high_speed


@dataclass
class _SmootherState:
    """Per-run mutable state of the hybrid smoother."""

    kf_lat: Optional[KalmanFilter1D] = None
    kf_lon: Optional[KalmanFilter1D] = None
    started_moving: bool = False
    sustained_frames: int = 0
    provisional: List[int] = field(default_factory=list)
    # (row index, speed to report) per forward-filter step
    forward: List[Tuple[int, float]] = field(default_factory=list)


def _filter_step(state: _SmootherState, lat: float, lon: float,
                 mode: MotionMode, innovation_threshold: float) -> None:
    q, r = noise_parameters(mode)
    for kf, z in ((state.kf_lat, lat), (state.kf_lon, lon)):
        kf.set_parameters(q, r)
        kf.predict()
        # A fix outside the gate is replaced by the prediction
        measurement = z if kf.validate_innovation(z, innovation_threshold) else kf.x
        kf.update(measurement)


def hybrid_kalman_smooth(df: Union[pd.DataFrame, pl.DataFrame],
                         required_sustained_frames: int = REQUIRED_SUSTAINED_FRAMES,
                         innovation_threshold: float = INNOVATION_THRESHOLD,
                         lat_col: str = LAT_COL,
                         lon_col: str = LON_COL) -> Union[pd.DataFrame, pl.DataFrame]:
    """
    Smooth the GPS track of a gap-repaired record stream.

    Parameters
    ----------
    df : pd.DataFrame or pl.DataFrame
        Monotonic, fixed-interval records (the output of gap repair). Requires the
        latitude, longitude, ``speed`` and ``filtered_accel_*`` columns.
    required_sustained_frames : int, default=20
        Consecutive motion-qualifying records needed before tracking starts.
    innovation_threshold : float, default=9.0
        Normalised innovation ``(z - x)^2 / (p + r)`` above which a GPS fix is
        replaced by the prediction.
    lat_col : str, default='lat'
        Name of the latitude column.
    lon_col : str, default='lon'
        Name of the longitude column.

    Returns
    -------
    pd.DataFrame or pl.DataFrame
        The tracked records with RTS-smoothed latitude/longitude and the reported
        speed. Same type as the input. The output can be shorter than the input:
        records without a fix, records before the motion latch triggers and records
        discarded by latch resets are dropped. Empty when motion never latches.

    Examples
    --------
    >>> repaired = pp.preprocessing.repair_gaps(valid).records
    >>> smoothed = pp.preprocessing.hybrid_kalman_smooth(repaired)
    >>> len(smoothed) <= len(repaired)
    True

    Notes
    -----
    **Motion latch:**
    Before the latch, every qualifying record is appended to a provisional buffer
    and every non-qualifying record clears it. When the buffer reaches
    ``required_sustained_frames`` records, both filters are snapped to the first
    buffered position, their history is cleared and the buffer is replayed in
    moving mode. Buffered records report their raw speed; later records report the
    windowed mean speed.

    **Output speed:**
    A record whose smoothed position is bit-identical to the previous output
    position reports speed 0, so floating-point-identical static fixes do not
    produce phantom movement.
    """
    pdf, was_polars = _to_pandas_preserve(df)
    if len(pdf) == 0:
        return _from_pandas_preserve(pdf, was_polars)
    require_columns(pdf, [lat_col, lon_col, SPEED_COL, *FILTERED_ACCEL_COLS])

    lats = pdf[lat_col].to_numpy(dtype=float)
    lons = pdf[lon_col].to_numpy(dtype=float)
    speeds = pdf[SPEED_COL].to_numpy(dtype=float)
    faccel = pdf[FILTERED_ACCEL_COLS].to_numpy(dtype=float)

    state = _SmootherState()
    detector = MotionDetector()

    # ========== FORWARD PASS ==========
    for i in range(len(pdf)):
        if abs(lats[i]) < NO_FIX_LAT_DEG:
            continue

        # Lazy initialisation at the first record with a fix
        if state.kf_lat is None:
            state.kf_lat = KalmanFilter1D(lats[i])
            state.kf_lon = KalmanFilter1D(lons[i])

        detector.add(faccel[i, 0], faccel[i, 1], faccel[i, 2], speeds[i])
        active = detector.is_active(state.started_moving)

        if state.started_moving:
            mode = MotionMode.MOVING if active else MotionMode.STATIONARY
            _filter_step(state, lats[i], lons[i], mode, innovation_threshold)
            state.forward.append((i, detector.smoothed_speed))
            continue

        # ========== Motion Latch ==========
        if not active:
            state.sustained_frames = 0
            state.provisional.clear()
            continue

        state.sustained_frames += 1
        state.provisional.append(i)
        if state.sustained_frames >= required_sustained_frames:
            state.started_moving = True
            first = state.provisional[0]
            state.kf_lat.x = lats[first]
            state.kf_lon.x = lons[first]
            state.kf_lat.clear_history()
            state.kf_lon.clear_history()
            for j in state.provisional:
                _filter_step(state, lats[j], lons[j], MotionMode.MOVING, innovation_threshold)
                state.forward.append((j, speeds[j]))
            state.provisional.clear()

    if state.kf_lat is None or not state.forward:
        warnings.warn("No sustained motion detected; the Kalman stage produced no records.")
        out = pdf.iloc[0:0].reset_index(drop=True)
        return _from_pandas_preserve(out, was_polars)

    # ========== BACKWARD RTS SMOOTHER ==========
    rts_lats = state.kf_lat.rts_smooth()
    rts_lons = state.kf_lon.rts_smooth()

    n = min(len(state.forward), len(rts_lats))
    rows = np.array([idx for idx, _ in state.forward[:n]], dtype=np.int64)
    out_speed = np.array([s for _, s in state.forward[:n]], dtype=float)
    out_lat = rts_lats[:n]
    out_lon = rts_lons[:n]

    # Force zero speed where the smoothed position did not move at all
    if n > 1:
        static = (out_lat[1:] == out_lat[:-1]) & (out_lon[1:] == out_lon[:-1])
        out_speed[1:][static] = 0.0

    out = pdf.iloc[rows].reset_index(drop=True)
    out[lat_col] = out_lat
    out[lon_col] = out_lon
    out[SPEED_COL] = out_speed
    return _from_pandas_preserve(out, was_polars)
