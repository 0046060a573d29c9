"""
Record preprocessing module for pypod.

This module provides the individual stages of the reconstruction pipeline:
- Sanity: Drop corrupted or physically impossible records
- Gap repair: Restore a monotonic, fixed-interval stream
- Sampling rate: Estimate the hardware counter step
- Filtering: Motion-aware Kalman smoothing with an RTS backward pass
- Butterworth: Zero-phase low-pass of the inertial channels
- Outliers: Speed-bounded GPS jump correction
- Segmentation: Split a stream into sessions
"""

# Sanity
from pypod.preprocessing.sanity import is_valid_record, valid_mask, sanity_filter

# Gap repair
from pypod.preprocessing.gap_repair import interpolate_record, repair_gaps

# Sampling rate
from pypod.preprocessing.sampling_rate import estimate_step_size

# Filtering
from pypod.preprocessing.filtration import (
    MotionMode,
    KalmanFilter1D,
    MotionDetector,
    noise_parameters,
    hybrid_kalman_smooth,
)

# Butterworth
from pypod.preprocessing.butterworth import ButterworthFilter, zero_phase_filter

# Outliers
from pypod.preprocessing.outliers import haversine_m, reject_outliers

# Segmentation
from pypod.preprocessing.segmentation import SessionBlock, cluster_sessions

__all__ = [
    # Sanity
    'is_valid_record',
    'valid_mask',
    'sanity_filter',
    # Gap repair
    'interpolate_record',
    'repair_gaps',
    # Sampling rate
    'estimate_step_size',
    # Filtering
    'MotionMode',
    'KalmanFilter1D',
    'MotionDetector',
    'noise_parameters',
    'hybrid_kalman_smooth',
    # Butterworth
    'ButterworthFilter',
    'zero_phase_filter',
    # Outliers
    'haversine_m',
    'reject_outliers',
    # Segmentation
    'SessionBlock',
    'cluster_sessions',
]
