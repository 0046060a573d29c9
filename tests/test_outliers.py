import numpy as np
import pandas as pd
import polars as pl
import pytest
from numpy.testing import assert_allclose

from pypod.preprocessing.outliers import EARTH_RADIUS_M, haversine_m, reject_outliers
from pypod.utilities.records import records_to_frame

START_TIME = pd.Timestamp("2024-05-04 10:00:00")
# Latitude degrees per meter on the haversine sphere
DEG_PER_M = 180.0 / (np.pi * EARTH_RADIUS_M)


def _track(record_factory, lats, dt_ms=100.0, speed=10.0):
    return records_to_frame([
        record_factory(100 + 100 * i, START_TIME + pd.Timedelta(milliseconds=dt_ms * i), lat=lat, speed=speed)
        for i, lat in enumerate(lats)
    ])


class TestHaversine:
    def test_one_degree_of_latitude(self):
        assert haversine_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(np.pi * EARTH_RADIUS_M / 180.0)

    def test_vectorised(self):
        d = haversine_m(np.array([51.5, 51.5]), np.array([0.0, 0.0]), np.array([51.5, 51.6]), np.array([0.0, 0.0]))
        assert d.shape == (2,)
        assert d[0] == 0.0


class TestRejectOutliers:
    def test_jump_is_pulled_back_to_expected_distance(self, record_factory):
        df = _track(record_factory, [51.5, 51.5 + 10 * DEG_PER_M])
        out, count = reject_outliers(df)
        assert count == 1
        expected = 10.0 / 3.6 * 0.1
        d = haversine_m(out["lat"].iloc[0], out["lon"].iloc[0], out["lat"].iloc[1], out["lon"].iloc[1])
        assert d == pytest.approx(expected, rel=1e-6)
        # Direction is kept
        assert out["lat"].iloc[1] > out["lat"].iloc[0]

    def test_small_moves_are_untouched(self, record_factory):
        df = _track(record_factory, [51.5, 51.5 + 0.5 * DEG_PER_M, 51.5 + 0.9 * DEG_PER_M])
        out, count = reject_outliers(df)
        assert count == 0
        assert_allclose(out["lat"], df["lat"])

    def test_fast_athlete_is_not_corrected(self, record_factory):
        # 72 km/h covers 2 m per 100 ms
        df = _track(record_factory, [51.5, 51.5 + 1.5 * DEG_PER_M], speed=72.0)
        _, count = reject_outliers(df)
        assert count == 0

    @pytest.mark.parametrize("dt_ms", (0.0, 200.0))
    def test_pairs_outside_interval_are_not_checked(self, record_factory, dt_ms):
        df = _track(record_factory, [51.5, 51.6], dt_ms=dt_ms)
        out, count = reject_outliers(df)
        assert count == 0
        assert out["lat"].iloc[1] == 51.6

    def test_compares_against_corrected_previous(self, record_factory):
        jumped = 51.5 + 10 * DEG_PER_M
        df = _track(record_factory, [51.5, jumped, jumped])
        out, count = reject_outliers(df)
        assert count == 2
        assert out["lat"].iloc[2] < jumped

    def test_displacement_bounded_for_slow_tracks(self, record_factory):
        rng = np.random.RandomState(3)
        lats = 51.5 + np.cumsum(np.full(60, 0.2 * DEG_PER_M))
        spikes = rng.choice(np.arange(1, 60), 6, replace=False)
        lats[spikes] += rng.uniform(5, 50, 6) * DEG_PER_M
        df = _track(record_factory, lats)

        out, count = reject_outliers(df, max_jump_m=1.0)
        steps = haversine_m(out["lat"].to_numpy()[:-1], out["lon"].to_numpy()[:-1],
                            out["lat"].to_numpy()[1:], out["lon"].to_numpy()[1:])
        assert count >= 6
        assert np.all(steps <= 1.0 + 1e-6)

    def test_short_input(self, record_factory):
        df = _track(record_factory, [51.5])
        out, count = reject_outliers(df)
        assert count == 0
        assert len(out) == 1

    def test_polars_in_polars_out(self, record_factory):
        df = pl.from_pandas(_track(record_factory, [51.5, 51.6 + 10 * DEG_PER_M]))
        out, count = reject_outliers(df, max_interval_s=0.2)
        assert isinstance(out, pl.DataFrame)
        assert count == 1
