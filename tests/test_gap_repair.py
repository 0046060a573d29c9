import pandas as pd
import polars as pl
import pytest
from numpy.testing import assert_allclose

from pypod.preprocessing.gap_repair import interpolate_record, repair_gaps
from pypod.utilities.records import records_to_frame

START_TIME = pd.Timestamp("2024-05-04 10:00:00")


def _at(ms):
    return START_TIME + pd.Timedelta(milliseconds=ms)


class TestInterpolateRecord:
    def test_numeric_fields_interpolated_and_others_copied(self):
        start = {"sequence_id": 100, "time": _at(0), "lat": 10.0, "speed": 4.0, "tag": "a"}
        end = {"sequence_id": 400, "time": _at(300), "lat": 13.0, "speed": 10.0, "tag": "b"}
        out = interpolate_record(start, end, 1 / 3, time=_at(100), sequence_id=200)
        assert out["sequence_id"] == 200
        assert out["time"] == _at(100)
        assert out["lat"] == pytest.approx(11.0)
        assert out["speed"] == pytest.approx(6.0)
        assert out["tag"] == "a"


class TestRepairGaps:
    def test_small_gap_is_filled(self, record_factory):
        df = records_to_frame([
            record_factory(100, _at(0), lat=50.0, speed=3.0),
            record_factory(200, _at(100), lat=50.0, speed=3.0),
            record_factory(500, _at(400), lat=50.3, speed=6.0),
        ])
        result = repair_gaps(df)

        out = result.records
        assert out["sequence_id"].tolist() == [100, 200, 300, 400, 500]
        assert list(out["time"]) == [_at(0), _at(100), _at(200), _at(300), _at(400)]
        assert_allclose(out["lat"], [50.0, 50.0, 50.1, 50.2, 50.3])
        assert_allclose(out["speed"], [3.0, 3.0, 4.0, 5.0, 6.0])
        assert result.repaired_count == 2
        assert result.original_count == 3
        assert result.health_score == pytest.approx(60.0)

    def test_unordered_input_is_sorted(self, record_factory):
        df = records_to_frame([
            record_factory(300, _at(200)),
            record_factory(100, _at(0)),
            record_factory(200, _at(100)),
        ])
        result = repair_gaps(df)
        assert result.records["sequence_id"].tolist() == [100, 200, 300]
        assert result.repaired_count == 0
        assert result.health_score == 100.0

    @pytest.mark.parametrize("keep,expected_speed", (("last", 7.0), ("first", 5.0)))
    def test_duplicates_resolved_by_policy(self, record_factory, keep, expected_speed):
        df = records_to_frame([
            record_factory(100, _at(0), speed=1.0),
            record_factory(200, _at(100), speed=5.0),
            record_factory(200, _at(100), speed=7.0),
            record_factory(300, _at(200), speed=1.0),
        ])
        result = repair_gaps(df, keep=keep)
        out = result.records
        assert out["sequence_id"].tolist() == [100, 200, 300]
        assert out.loc[out["sequence_id"] == 200, "speed"].item() == expected_speed
        assert result.original_count == 4

    def test_unknown_duplicate_policy_raises(self, record_factory):
        with pytest.raises(ValueError):
            repair_gaps(records_to_frame([record_factory()]), keep="mean")

    def test_jitter_is_absorbed_by_virtual_clock(self, record_factory):
        df = records_to_frame([
            record_factory(100, _at(0)),
            record_factory(200, _at(130)),
            record_factory(300, _at(170)),
        ])
        out = repair_gaps(df).records
        assert list(out["time"]) == [_at(0), _at(100), _at(200)]

    def test_long_pause_reanchors_clock_without_filling(self, record_factory):
        resume = START_TIME + pd.Timedelta(minutes=15)
        ids = [100, 200, 300, 400]
        records = [record_factory(i, _at(k * 100)) for k, i in enumerate(ids)]
        records.append(record_factory(100400, resume))
        records.append(record_factory(100500, resume + pd.Timedelta(milliseconds=100)))
        result = repair_gaps(records_to_frame(records))

        out = result.records
        assert result.repaired_count == 0
        assert len(out) == 6
        assert out["time"].iloc[4] == resume
        assert out["time"].iloc[5] == resume + pd.Timedelta(milliseconds=100)

    @pytest.mark.parametrize("steps,expected_repaired", ((499, 498), (500, 0)))
    def test_repair_limit_boundary(self, record_factory, steps, expected_repaired):
        resume = START_TIME + pd.Timedelta(minutes=5)
        records = [record_factory(100 * (k + 1), _at(k * 100)) for k in range(4)]
        last_id = 400 + steps * 100
        records.append(record_factory(last_id, resume))
        records.append(record_factory(last_id + 100, resume + pd.Timedelta(milliseconds=100)))
        result = repair_gaps(records_to_frame(records))

        out = result.records
        assert result.repaired_count == expected_repaired
        assert len(out) == 6 + expected_repaired
        resumed = out.loc[out["sequence_id"] == last_id, "time"].item()
        if expected_repaired:
            # Filled gaps keep the virtual clock running
            assert resumed == _at(300) + steps * pd.Timedelta(milliseconds=100)
        else:
            assert resumed == resume

    def test_output_is_strictly_increasing(self, stream_factory):
        df = stream_factory(30)
        # Drop a handful of records to punch holes in the stream
        df = df.drop(index=[3, 4, 10, 20, 21, 22]).reset_index(drop=True)
        result = repair_gaps(df)
        out = result.records
        assert out["sequence_id"].is_monotonic_increasing
        assert out["sequence_id"].is_unique
        assert out["time"].diff().dropna().gt(pd.Timedelta(0)).all()
        assert result.repaired_count == 6
        assert len(out) == 30
        assert result.health_score == pytest.approx(100.0 * 24 / 30)

    def test_empty_input(self):
        result = repair_gaps(records_to_frame([]))
        assert len(result.records) == 0
        assert result.health_score == 0.0
        assert result.repaired_count == 0

    def test_single_record(self, record_factory):
        result = repair_gaps(records_to_frame([record_factory()]))
        assert len(result.records) == 1
        assert result.health_score == 100.0

    def test_polars_in_polars_out(self, stream_factory):
        result = repair_gaps(pl.from_pandas(stream_factory(5)))
        assert isinstance(result.records, pl.DataFrame)
        assert result.records.height == 5
