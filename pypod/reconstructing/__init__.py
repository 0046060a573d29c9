"""
Reconstructing module for the pypod library.

This module chains the preprocessing stages into a configurable pipeline that
reconstructs a clean trajectory, optionally session by session.
"""

from pypod.reconstructing.pipeline import (
    FilterConfig,
    reconstruct_trajectory,
    reconstruct_sessions,
    reconstruct_by_session,
)

__all__ = [
    'FilterConfig',
    'reconstruct_trajectory',
    'reconstruct_sessions',
    'reconstruct_by_session',
]
