"""
Gap repair module for pypod.

Records reach the host over a lossy wireless link, so the stream arrives slightly
out of order, with duplicates and with holes. The Kalman filter downstream assumes
a constant time step, so this module restores that "heartbeat":

1. Sort by the hardware sequence counter and drop duplicate counter values
2. Estimate the nominal counter step (see :mod:`pypod.preprocessing.sampling_rate`)
3. Walk consecutive pairs and synthesise linearly interpolated records for every
   missing step of a small gap, while re-anchoring the clock across long pauses
4. Score the result by the share of real (non-synthetic) records

Timestamps on the output come from a virtual clock that ticks exactly one sample
interval per step, not from the pod's wall clock, which jitters.
"""

from numbers import Real
from typing import Any, Dict, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd
import polars as pl
from pandas.api.types import is_bool_dtype, is_numeric_dtype

from pypod.preprocessing.sampling_rate import estimate_step_size
from pypod.utilities.records import (
    SEQUENCE_COL,
    TIME_COL,
    FilterResult,
    _from_pandas_preserve,
    _to_pandas_preserve,
    require_columns,
)

#: Gaps of this many steps or more are pauses and are not filled
MAX_REPAIR_STEPS = 500
#: Nominal sample interval of the pod (10 Hz)
DEFAULT_SAMPLE_INTERVAL_MS = 100.0

_DUPLICATE_POLICIES = ("first", "last")


def _round_half_up(value: float) -> int:
    return int(np.floor(value + 0.5))


def interpolate_record(start: Mapping[str, Any],
                       end: Mapping[str, Any],
                       ratio: float,
                       time: pd.Timestamp,
                       sequence_id: int,
                       time_col: str = TIME_COL,
                       numeric_cols: Optional[Sequence[str]] = None) -> Dict[str, Any]:
    """
    Build a synthetic record between two real neighbours.

    Parameters
    ----------
    start, end : mapping
        The real records on either side of the gap (column -> value).
    ratio : float
        Position inside the gap, ``0 < ratio < 1``.
    time : pd.Timestamp
        Timestamp assigned to the synthetic record.
    sequence_id : int
        Sequence id assigned to the synthetic record.
    time_col : str, default='time'
        Name of the time column.
    numeric_cols : sequence of str, optional
        Columns to interpolate. When omitted, every real-valued (non-bool) field of
        ``start`` is interpolated.

    Returns
    -------
    dict
        The new record. Numeric fields are ``start + (end - start) * ratio``; every
        other field is copied from ``start``.
    """
    record = dict(start)
    if numeric_cols is None:
        numeric_cols = [k for k, v in start.items()
                        if isinstance(v, Real) and not isinstance(v, (bool, np.bool_))
                        and k not in (SEQUENCE_COL, time_col)]
    for c in numeric_cols:
        a = float(start[c])
        b = float(end[c])
        record[c] = a + (b - a) * ratio
    record[SEQUENCE_COL] = int(sequence_id)
    record[time_col] = time
    return record


def repair_gaps(df: Union[pd.DataFrame, pl.DataFrame],
                sample_interval_ms: float = DEFAULT_SAMPLE_INTERVAL_MS,
                keep: str = "last",
                time_col: str = TIME_COL) -> FilterResult:
    """
    Restore a monotonic, fixed-interval record stream from the hardware counter.

    Parameters
    ----------
    df : pd.DataFrame or pl.DataFrame
        Records that passed the sanity check. Must contain ``sequence_id`` and the
        time column.
    sample_interval_ms : float, default=100.0
        Nominal time between consecutive records; the virtual clock advances by
        exactly this much per counter step.
    keep : {'last', 'first'}, default='last'
        Which occurrence to keep when several records share a sequence id. Keeping
        the last one assumes later readings come from a more settled sensor; this is
        a heuristic, hence configurable.
    time_col : str, default='time'
        Name of the time column.

    Returns
    -------
    FilterResult
        ``records`` holds the repaired stream (same DataFrame type as the input),
        ``repaired_count`` the number of synthetic records, ``original_count`` the
        number of input records and ``health_score`` the percentage of real records
        in the output. Empty input yields an empty frame with score 0.

    Raises
    ------
    ValueError
        If ``keep`` is not a known policy, or a required column is missing.

    Examples
    --------
    >>> result = pp.preprocessing.repair_gaps(records)   # ids 100, 200, 500
    >>> result.repaired_count
    2
    >>> result.records['sequence_id'].tolist()
    [100, 200, 300, 400, 500]

    Notes
    -----
    For each consecutive pair, ``steps = round(id_delta / step_size)``:

    - ``1 < steps < 500``: ``steps - 1`` records are synthesised at ratios
      ``s / steps``, with ids ``prev_id + s * step_size`` and times
      ``clock + s * interval``; the clock then advances by ``steps * interval``.
    - ``steps >= 500``: a deliberate pause. Nothing is synthesised and the clock is
      re-anchored to the next record's own timestamp.
    - ``steps <= 1``: normal cadence; the clock advances by one interval whatever
      the wall-clock gap, which absorbs timing jitter.
    """
    if keep not in _DUPLICATE_POLICIES:
        raise ValueError(f"keep must be one of {_DUPLICATE_POLICIES}, got {keep!r}")

    pdf, was_polars = _to_pandas_preserve(df)
    if len(pdf) == 0:
        return FilterResult(records=_from_pandas_preserve(pdf, was_polars),
                            health_score=0.0, original_count=0, repaired_count=0)

    require_columns(pdf, [SEQUENCE_COL, time_col])
    original_count = len(pdf)
    pdf[time_col] = pd.to_datetime(pdf[time_col])

    # ========== Sort & Deduplicate ==========
    # Stable sort so that "last" means last in arrival order among equal ids
    pdf = pdf.sort_values(SEQUENCE_COL, kind="mergesort")
    pdf = pdf.drop_duplicates(subset=SEQUENCE_COL, keep=keep).reset_index(drop=True)

    step_size = estimate_step_size(pdf[SEQUENCE_COL].to_numpy())
    interval = pd.Timedelta(milliseconds=sample_interval_ms)

    numeric_cols = [c for c in pdf.columns
                    if c not in (SEQUENCE_COL, time_col)
                    and is_numeric_dtype(pdf[c]) and not is_bool_dtype(pdf[c])]

    # ========== Repair Loop ==========
    rows = pdf.to_dict("records")
    clock = rows[0][time_col]
    out = [{**rows[0], time_col: clock}]
    repaired_count = 0

    for prev, curr in zip(rows[:-1], rows[1:]):
        prev_id = int(prev[SEQUENCE_COL])
        steps = _round_half_up((int(curr[SEQUENCE_COL]) - prev_id) / step_size)

        if 1 < steps < MAX_REPAIR_STEPS:
            for s in range(1, steps):
                out.append(interpolate_record(prev, curr, s / steps,
                                              time=clock + s * interval,
                                              sequence_id=prev_id + s * step_size,
                                              time_col=time_col,
                                              numeric_cols=numeric_cols))
            repaired_count += steps - 1
            clock = clock + steps * interval
        elif steps >= MAX_REPAIR_STEPS:
            clock = curr[time_col]
        else:
            clock = clock + interval

        out.append({**curr, time_col: clock})

    repaired = pd.DataFrame(out, columns=pdf.columns)
    repaired[SEQUENCE_COL] = repaired[SEQUENCE_COL].astype("int64")
    repaired[time_col] = pd.to_datetime(repaired[time_col])

    # ========== Health Score ==========
    total = len(repaired)
    health = 100.0 * (total - repaired_count) / total if total > 0 else 100.0

    return FilterResult(records=_from_pandas_preserve(repaired, was_polars),
                        health_score=health,
                        original_count=original_count,
                        repaired_count=repaired_count)
