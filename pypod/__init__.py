"""
pypod - A Python library for reconstructing athlete-pod GPS/IMU telemetry.

pypod turns the raw, lossy record stream downloaded from a wearable GPS/IMU pod
into a clean, fixed-interval, smoothed trajectory, and splits long recordings into
workout sessions.

Components
----------
- **preprocessing**: Pipeline stages (sanity check, gap repair, Kalman/RTS smoothing,
  zero-phase filtering, outlier rejection, session segmentation)
- **reconstructing**: The configurable pipeline that chains the stages
- **utilities**: Record schema, binary/CSV I/O and session summaries

Quick Start
-----------
```python
import pypod as pp

# Decode a downloaded log
raw = pp.utilities.read_pod_file('session.bin')

# Reconstruct the trajectory
result = pp.reconstructing.reconstruct_trajectory(raw)
print(result.health_score, result.repaired_count, result.outliers_corrected)

# Split into sessions
sessions = pp.preprocessing.cluster_sessions(result.records)

# Or tune the run
config = pp.reconstructing.FilterConfig(filter_cutoff_hz=2.0, max_gps_jump_m=1.5)
result = pp.reconstructing.reconstruct_trajectory(raw, config)

# Export
pp.utilities.write_csv(result.records, 'session.csv')
```
"""

from pypod._version import __version__, __version_info__
from pypod import preprocessing, reconstructing, utilities

__all__ = [
    '__version__',
    '__version_info__',
    'preprocessing',
    'reconstructing',
    'utilities',
]
