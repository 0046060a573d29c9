"""
Sampling cadence analysis module for pypod.

The pod stamps every record with a hardware counter that advances by a fixed
(but firmware-dependent) number of ticks per sample: 1, 10 or 100 counts per record
are all seen in practice. Gap repair needs that nominal step to tell a lost packet
from a normal one, so this module estimates it robustly from the counter itself.
"""

from typing import Sequence, Union

import numpy as np

#: Step used when the counter does not contain enough usable deltas
DEFAULT_STEP_SIZE = 100
#: Number of leading deltas inspected
MAX_SAMPLE_DELTAS = 50
#: Deltas at or above this value are pauses, not cadence
MAX_REPRESENTATIVE_DELTA = 5000


def estimate_step_size(sequence_ids: Union[Sequence[int], np.ndarray]) -> int:
    """
    Estimate the nominal hardware counter step between consecutive records.

    Parameters
    ----------
    sequence_ids : array-like of int
        Hardware sequence ids, sorted ascending and free of duplicates.

    Returns
    -------
    int
        The median of the IQR-inlier deltas among the first 50 positive deltas
        (deltas >= 5000 excluded). Falls back to the raw median when IQR rejection
        leaves nothing, and to 100 when fewer than 3 usable deltas exist.

    Examples
    --------
    >>> estimate_step_size([100, 200, 300, 400, 500])
    100
    >>> estimate_step_size([10, 20, 30, 900, 910, 920])
    10

    Notes
    -----
    Quartiles and the median are taken by index on the sorted sample
    (``d[n // 4]``, ``d[3n // 4]``, ``d[n // 2]``) so the result is always one of the
    observed integer deltas.
    """
    ids = np.asarray(sequence_ids, dtype=np.int64)
    if ids.size < 2:
        return DEFAULT_STEP_SIZE

    # ========== Sample Leading Deltas ==========
    head = ids[:MAX_SAMPLE_DELTAS + 1]
    deltas = np.diff(head)
    deltas = deltas[(deltas > 0) & (deltas < MAX_REPRESENTATIVE_DELTA)]
    if deltas.size < 3:
        return DEFAULT_STEP_SIZE

    # ========== IQR Outlier Rejection ==========
    deltas = np.sort(deltas)
    n = deltas.size
    q1 = deltas[n // 4]
    q3 = deltas[(n * 3) // 4]
    iqr = q3 - q1
    lower = q1 - 1.5 * iqr
    upper = q3 + 1.5 * iqr
    inliers = deltas[(deltas >= lower) & (deltas <= upper)]

    if inliers.size > 0:
        return int(inliers[inliers.size // 2])
    return int(deltas[n // 2])
