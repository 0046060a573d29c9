"""
Utilities module for the pypod library.

This module provides the record schema shared by every stage, readers and writers
for pod files, and session summary statistics.
"""

from pypod.utilities.records import (
    RECORD_COLS,
    SensorRecord,
    FilterResult,
    records_to_frame,
    frame_to_records,
    empty_record_frame,
)
from pypod.utilities.io import parse_pod_bytes, read_pod_file, write_csv, read_csv
from pypod.utilities.evaluation import track_length_m, session_summary

__all__ = [
    # Record schema
    'RECORD_COLS',
    'SensorRecord',
    'FilterResult',
    'records_to_frame',
    'frame_to_records',
    'empty_record_frame',
    # I/O
    'parse_pod_bytes',
    'read_pod_file',
    'write_csv',
    'read_csv',
    # Evaluation
    'track_length_m',
    'session_summary',
]
