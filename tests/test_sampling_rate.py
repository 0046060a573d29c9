import numpy as np
import pytest

from pypod.preprocessing.sampling_rate import DEFAULT_STEP_SIZE, estimate_step_size


class TestEstimateStepSize:
    @pytest.mark.parametrize("step", (1, 10, 100))
    def test_regular_counter(self, step):
        ids = np.arange(0, 60 * step, step)
        assert estimate_step_size(ids) == step

    def test_gaps_do_not_bias_estimate(self):
        ids = [10, 20, 30, 900, 910, 920]
        assert estimate_step_size(ids) == 10

    def test_single_large_gap_among_regular_deltas(self):
        ids = [100, 200, 300, 400, 1400, 1500, 1600]
        assert estimate_step_size(ids) == 100

    def test_pauses_are_ignored(self):
        # Deltas >= 5000 are pauses, leaving three regular deltas
        ids = [0, 10, 20, 30, 100000, 200000]
        assert estimate_step_size(ids) == 10

    @pytest.mark.parametrize("ids", ([], [100], [100, 200], [100, 200, 500]))
    def test_too_few_deltas_falls_back(self, ids):
        assert estimate_step_size(ids) == DEFAULT_STEP_SIZE

    def test_only_leading_deltas_are_used(self):
        ids = np.concatenate([np.arange(0, 510, 10), 510 + np.arange(0, 1000, 50)])
        assert estimate_step_size(ids) == 10
