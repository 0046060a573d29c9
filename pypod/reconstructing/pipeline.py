"""
Trajectory reconstruction pipeline for pypod.

This module chains the preprocessing stages into one configurable run that turns
a raw decoded record stream into a clean, fixed-interval, smoothed trajectory:

1. Sanity check: drop physically impossible records
2. Gap repair: restore a monotonic fixed-interval stream from the hardware counter
3. Hybrid Kalman/RTS: smooth the GPS track once sustained motion is detected
4. Zero-phase filter: low-pass the raw inertial channels without phase shift
5. Outlier rejection: pull residual GPS jumps back to the speed-implied distance

Each stage can be switched off through :class:`FilterConfig`; the next enabled
stage then consumes the previous stage's output unchanged.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

import pandas as pd
import polars as pl
from tqdm import tqdm

from pypod.preprocessing.butterworth import ButterworthFilter, zero_phase_filter
from pypod.preprocessing.filtration import REQUIRED_SUSTAINED_FRAMES, hybrid_kalman_smooth
from pypod.preprocessing.gap_repair import DEFAULT_SAMPLE_INTERVAL_MS, repair_gaps
from pypod.preprocessing.outliers import DEFAULT_MAX_INTERVAL_S, DEFAULT_MAX_JUMP_M, reject_outliers
from pypod.preprocessing.sanity import sanity_filter
from pypod.preprocessing.segmentation import (
    DEFAULT_GAP_THRESHOLD_S,
    DEFAULT_MIN_DURATION_S,
    SessionBlock,
    cluster_sessions,
)
from pypod.utilities.records import FilterResult, _from_pandas_preserve, _to_pandas_preserve

_DUPLICATE_POLICIES = ("last", "first")


@dataclass
class FilterConfig:
    """
    Options for a reconstruction run.

    Parameters
    ----------
    enable_sanity_check : bool, default=True
        Drop records that fail the physical sanity rules.
    enable_gap_repair : bool, default=True
        Deduplicate, reorder and fill counter gaps.
    enable_zero_phase_filter : bool, default=True
        Low-pass the raw accelerometer and gyroscope channels.
    enable_kalman_rts : bool, default=True
        Smooth the GPS track with the motion-aware Kalman filter and RTS pass.
    enable_outlier_rejection : bool, default=True
        Correct residual GPS jumps.
    filter_cutoff_hz : float, default=5.0
        Butterworth cutoff frequency.
    filter_sampling_hz : float, default=10.0
        Nominal record rate.
    max_gps_jump_m : float, default=1.0
        Outlier rejection displacement threshold.
    sample_interval_ms : float, default=100.0
        Virtual clock step used by gap repair.
    max_outlier_interval_s : float, default=0.15
        Longest record spacing checked by outlier rejection.
    duplicate_policy : {'last', 'first'}, default='last'
        Which record to keep among duplicate sequence ids.
    required_sustained_frames : int, default=20
        Motion latch length for the Kalman stage.

    Raises
    ------
    ValueError
        On construction, if any value is out of range.
    """

    enable_sanity_check: bool = True
    enable_gap_repair: bool = True
    enable_zero_phase_filter: bool = True
    enable_kalman_rts: bool = True
    enable_outlier_rejection: bool = True
    filter_cutoff_hz: float = 5.0
    filter_sampling_hz: float = 10.0
    max_gps_jump_m: float = DEFAULT_MAX_JUMP_M
    sample_interval_ms: float = DEFAULT_SAMPLE_INTERVAL_MS
    max_outlier_interval_s: float = DEFAULT_MAX_INTERVAL_S
    duplicate_policy: str = "last"
    required_sustained_frames: int = REQUIRED_SUSTAINED_FRAMES

    def __post_init__(self):
        if self.enable_zero_phase_filter:
            # Raises ValueError on a bad cutoff/sampling pair
            ButterworthFilter(self.filter_cutoff_hz, self.filter_sampling_hz)
        elif self.filter_sampling_hz <= 0:
            raise ValueError("filter_sampling_hz must be positive")
        if self.max_gps_jump_m <= 0:
            raise ValueError("max_gps_jump_m must be positive")
        if self.sample_interval_ms <= 0:
            raise ValueError("sample_interval_ms must be positive")
        if self.max_outlier_interval_s <= 0:
            raise ValueError("max_outlier_interval_s must be positive")
        if self.duplicate_policy not in _DUPLICATE_POLICIES:
            raise ValueError(f"duplicate_policy must be one of {_DUPLICATE_POLICIES}, "
                             f"got {self.duplicate_policy!r}")
        if int(self.required_sustained_frames) < 1:
            raise ValueError("required_sustained_frames must be at least 1")


def _empty_result(pdf: pd.DataFrame, was_polars: bool, original_count: int = 0,
                  repaired_count: int = 0) -> FilterResult:
    out = pdf.iloc[0:0].reset_index(drop=True)
    return FilterResult(records=_from_pandas_preserve(out, was_polars), health_score=0.0,
                        original_count=original_count, repaired_count=repaired_count)


def reconstruct_trajectory(df: Union[pd.DataFrame, pl.DataFrame],
                           config: Optional[FilterConfig] = None) -> FilterResult:
    """
    Run the full reconstruction pipeline over a decoded record stream.

    Parameters
    ----------
    df : pd.DataFrame or pl.DataFrame
        Raw decoded records (see :data:`pypod.utilities.records.RECORD_COLS`).
    config : FilterConfig, optional
        Stage switches and tuning. Defaults to ``FilterConfig()``.

    Returns
    -------
    FilterResult
        ``records`` holds the reconstructed stream (same DataFrame type as the
        input). ``health_score`` is the gap-repair score (100 when gap repair is
        disabled), ``original_count`` the number of records that survived the
        sanity check, ``repaired_count`` the number of synthetic records and
        ``outliers_corrected`` the number of corrected GPS fixes. If the input or
        any stage's output is empty, the result holds an empty frame with health 0.

    Examples
    --------
    >>> import pypod as pp
    >>> raw = pp.utilities.read_pod_file('session.bin')
    >>> result = pp.reconstructing.reconstruct_trajectory(raw)
    >>> print(f"{result.health_score:.1f}% real, {result.repaired_count} repaired")

    >>> # Skip the inertial low-pass and use a wider outlier threshold
    >>> config = pp.reconstructing.FilterConfig(enable_zero_phase_filter=False,
    ...                                         max_gps_jump_m=2.0)
    >>> result = pp.reconstructing.reconstruct_trajectory(raw, config)

    Notes
    -----
    Data-quality problems never raise here. They are handled by exclusion (sanity
    check, latch), sanitisation (filter fallback) or an empty result.
    """
    if config is None:
        config = FilterConfig()

    pdf, was_polars = _to_pandas_preserve(df)
    if len(pdf) == 0:
        return _empty_result(pdf, was_polars)

    # ========== 1. SANITY CHECK ==========
    if config.enable_sanity_check:
        pdf = sanity_filter(pdf)
    original_count = len(pdf)
    if original_count == 0:
        return _empty_result(pdf, was_polars)

    # ========== 2. GAP REPAIR ==========
    repaired_count = 0
    health_score = 100.0
    if config.enable_gap_repair:
        repaired = repair_gaps(pdf, sample_interval_ms=config.sample_interval_ms,
                               keep=config.duplicate_policy)
        pdf = repaired.records
        repaired_count = repaired.repaired_count
        health_score = repaired.health_score

    # ========== 3. HYBRID KALMAN / RTS ==========
    if config.enable_kalman_rts:
        pdf = hybrid_kalman_smooth(pdf, required_sustained_frames=int(config.required_sustained_frames))
        if len(pdf) == 0:
            return _empty_result(pdf, was_polars, original_count, repaired_count)

    # ========== 4. ZERO-PHASE FILTER ==========
    if config.enable_zero_phase_filter:
        pdf = zero_phase_filter(pdf, cutoff_hz=config.filter_cutoff_hz,
                                sampling_hz=config.filter_sampling_hz)

    # ========== 5. OUTLIER REJECTION ==========
    outliers_corrected = 0
    if config.enable_outlier_rejection:
        pdf, outliers_corrected = reject_outliers(pdf, max_jump_m=config.max_gps_jump_m,
                                                  max_interval_s=config.max_outlier_interval_s)

    return FilterResult(records=_from_pandas_preserve(pdf.reset_index(drop=True), was_polars),
                        health_score=health_score,
                        original_count=original_count,
                        repaired_count=repaired_count,
                        outliers_corrected=outliers_corrected)


def reconstruct_sessions(df: Union[pd.DataFrame, pl.DataFrame],
                         config: Optional[FilterConfig] = None,
                         gap_threshold_s: float = DEFAULT_GAP_THRESHOLD_S,
                         min_duration_s: float = DEFAULT_MIN_DURATION_S
                         ) -> Tuple[FilterResult, List[SessionBlock]]:
    """
    Reconstruct the whole stream, then split the clean result into sessions.

    Returns
    -------
    tuple of (FilterResult, list of SessionBlock)
        The pipeline result and the sessions found in its records.
    """
    result = reconstruct_trajectory(df, config)
    sessions = cluster_sessions(result.records, gap_threshold_s=gap_threshold_s,
                                min_duration_s=min_duration_s)
    return result, sessions


def reconstruct_by_session(df: Union[pd.DataFrame, pl.DataFrame],
                           config: Optional[FilterConfig] = None,
                           gap_threshold_s: float = DEFAULT_GAP_THRESHOLD_S,
                           min_duration_s: float = DEFAULT_MIN_DURATION_S,
                           show_progress: bool = False) -> List[Tuple[SessionBlock, FilterResult]]:
    """
    Split the raw stream into sessions first, then reconstruct each one on its own.

    Long recordings are processed one session at a time, so working memory is
    bounded by the largest session rather than the whole file. Each session starts
    with fresh filter and latch state.

    Parameters
    ----------
    df : pd.DataFrame or pl.DataFrame
        Raw decoded records.
    config : FilterConfig, optional
        Applied to every session.
    gap_threshold_s, min_duration_s : float
        Session clustering parameters (see :func:`cluster_sessions`).
    show_progress : bool, default=False
        Show a ``tqdm`` progress bar over sessions.

    Returns
    -------
    list of (SessionBlock, FilterResult)
        The raw session block and its reconstruction, in chronological order.
        Sessions whose reconstruction comes back empty are still listed.
    """
    blocks = cluster_sessions(df, gap_threshold_s=gap_threshold_s, min_duration_s=min_duration_s)
    iterator = tqdm(blocks, desc="sessions") if show_progress else blocks
    return [(block, reconstruct_trajectory(block.records, config)) for block in iterator]
