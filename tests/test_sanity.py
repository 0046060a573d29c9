import numpy as np
import pandas as pd
import polars as pl
import pytest
from numpy.testing import assert_array_equal

from pypod.preprocessing.sanity import is_valid_record, sanity_filter, valid_mask
from pypod.utilities.records import records_to_frame


class TestIsValidRecord:
    def test_plain_record_is_valid(self, record_factory):
        assert is_valid_record(record_factory())

    @pytest.mark.parametrize(
        "accel,expected",
        (((200.0, 0.0, 9.81), True), ((200.01, 0.0, 9.81), False), ((0.0, -200.01, 9.81), False)),
    )
    def test_accel_limit(self, record_factory, accel, expected):
        assert is_valid_record(record_factory(accel=accel)) is expected

    @pytest.mark.parametrize("gyro,expected", (((40.0, 0, 0), True), ((0, 0, -40.5), False)))
    def test_gyro_limit(self, record_factory, gyro, expected):
        assert is_valid_record(record_factory(gyro=gyro)) is expected

    @pytest.mark.parametrize("speed,expected", ((80.0, True), (80.1, False)))
    def test_speed_limit(self, record_factory, speed, expected):
        assert is_valid_record(record_factory(speed=speed)) is expected

    @pytest.mark.parametrize(
        "kwargs",
        (
            {"accel": (np.inf, 0.0, 1.0)},
            {"gyro": (0.0, np.nan, 1.0)},
            {"filtered_accel": (0.0, 0.0, np.nan)},
            {"filtered_accel": (-np.inf, 0.0, 0.0)},
            {"speed": np.nan},
            {"lat": np.nan},
            {"lon": np.inf},
        ),
    )
    def test_non_finite_rejected(self, record_factory, kwargs):
        assert not is_valid_record(record_factory(**kwargs))

    def test_null_island_rejected(self, record_factory):
        assert not is_valid_record(record_factory(lat=0.0005, lon=-0.0005))
        # Only one coordinate near zero is a real place
        assert is_valid_record(record_factory(lat=0.0, lon=10.0))

    def test_all_zero_imu_rejected(self, record_factory):
        assert not is_valid_record(record_factory(accel=(0.0, 0.0, 0.0), gyro=(0.0, 0.0, 0.0)))
        assert is_valid_record(record_factory(accel=(0.0, 0.0, 0.0), gyro=(0.0, 0.0, 0.001)))


class TestSanityFilter:
    def test_mask_matches_single_record_predicate(self, record_factory):
        records = [
            record_factory(sequence_id=100),
            record_factory(sequence_id=200, speed=95.0),
            record_factory(sequence_id=300, lat=0.0, lon=0.0),
            record_factory(sequence_id=400),
        ]
        df = records_to_frame(records)
        assert_array_equal(valid_mask(df), [is_valid_record(r) for r in records])

    def test_invalid_rows_dropped_and_order_kept(self, record_factory):
        df = records_to_frame([
            record_factory(sequence_id=300),
            record_factory(sequence_id=100, accel=(250.0, 0.0, 0.0)),
            record_factory(sequence_id=200),
        ])
        out = sanity_filter(df)
        assert out["sequence_id"].tolist() == [300, 200]
        assert out.index.tolist() == [0, 1]

    def test_all_invalid_yields_empty(self, record_factory):
        df = records_to_frame([record_factory(speed=np.nan), record_factory(lat=0.0, lon=0.0)])
        out = sanity_filter(df)
        assert len(out) == 0
        assert list(out.columns) == list(df.columns)

    def test_empty_input(self):
        out = sanity_filter(records_to_frame([]))
        assert len(out) == 0

    def test_polars_in_polars_out(self, record_factory):
        df = pl.from_pandas(records_to_frame([record_factory(), record_factory(sequence_id=200, speed=100.0)]))
        out = sanity_filter(df)
        assert isinstance(out, pl.DataFrame)
        assert out.height == 1

    def test_missing_column_raises(self, record_factory):
        df = records_to_frame([record_factory()]).drop(columns=["gyro_z"])
        with pytest.raises(ValueError, match="gyro_z"):
            sanity_filter(df)

    def test_invalid_type_raises(self):
        with pytest.raises(ValueError):
            sanity_filter([1, 2, 3])
