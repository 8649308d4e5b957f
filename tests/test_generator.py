"""
Observation Generator and Data Types Test Suite

Test ID | Description                                | Expected
--------|--------------------------------------------|-------------------------
1       | Generated sequence bookkeeping             | Counts match labels
2       | Seeded generation                          | Reproducible
3       | MultiState relabelling and track grouping  | New IDs, same vectors
"""

import os
import sys

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rbmcda.datatypes import CLUTTER, MotionModel, MultiState, Observation
from rbmcda.simulation.generator import GeneratorConfig, ObservationSeriesGenerator

# =============================================================================
# TEST 1: Bookkeeping
# =============================================================================


class TestGenerator:
    """Synthetic sequences with known labels."""

    def test_clean_sequence(self):
        series = ObservationSeriesGenerator(
            GeneratorConfig(num_frames=10, num_initial_targets=3, seed=1)
        ).generate()

        counts = series.observations.observation_counts()
        assert counts.tolist() == [3] * 10
        assert series.num_clutter == 0
        assert series.num_missed == 0
        assert series.max_target_id == 3

    def test_clutter_counted(self):
        series = ObservationSeriesGenerator(
            GeneratorConfig(num_frames=30, num_initial_targets=2, lambda_clutter=2.0, seed=2)
        ).generate()

        _, clutter = series.observations.to_tracks()
        assert len(clutter) == series.num_clutter
        assert all(obs.target_id != CLUTTER for obs in series.observations[0])

    def test_missed_detections_counted(self):
        config = GeneratorConfig(num_frames=40, num_initial_targets=2, p_detect=0.7, seed=3)
        series = ObservationSeriesGenerator(config).generate()

        total = int(series.observations.observation_counts().sum())
        assert total + series.num_missed == 2 * 40

    def test_sizes_within_range(self):
        config = GeneratorConfig(num_frames=20, lambda_clutter=1.0, seed=4)
        series = ObservationSeriesGenerator(config).generate()

        sizes = [o.sqrt_size for f in series.observations for o in f]
        assert min(sizes) >= config.sqrt_size_min
        assert max(sizes) <= config.sqrt_size_max

    def test_model_tags(self):
        series = ObservationSeriesGenerator(GeneratorConfig(num_frames=5, seed=5)).generate()
        models = {o.model for f in series.observations for o in f}
        assert models <= {int(m) for m in MotionModel}


# =============================================================================
# TEST 2: Reproducibility
# =============================================================================


class TestSeededGeneration:
    def test_same_seed(self):
        config = GeneratorConfig(num_frames=15, lambda_clutter=1.0, lambda_birth=0.3, seed=9)
        a = ObservationSeriesGenerator(config).generate()
        b = ObservationSeriesGenerator(config).generate()
        assert a.observations == b.observations


# =============================================================================
# TEST 3: MultiState
# =============================================================================


class TestMultiState:
    """Immutable sequence helpers."""

    @pytest.fixture
    def sequence(self):
        return MultiState.from_lists(
            [
                [Observation(1.0, 2.0, 3.0, target_id=1), Observation(5.0, 5.0, 1.0)],
                [Observation(1.5, 2.0, 3.5, target_id=1)],
            ]
        )

    def test_relabel(self, sequence):
        relabelled = sequence.relabel([[4, 0], [4]])

        assert relabelled.labels() == [[4, 0], [4]]
        np.testing.assert_array_equal(relabelled[0].as_array(), sequence[0].as_array())
        assert sequence.labels() == [[1, 0], [1]]

    def test_relabel_length_mismatch(self, sequence):
        with pytest.raises(ValueError):
            sequence.relabel([[1], [1]])
        with pytest.raises(ValueError):
            sequence.relabel([[1, 0]])

    def test_to_tracks(self, sequence):
        tracks, clutter = sequence.to_tracks()
        assert tracks == {1: [(0, 0), (1, 0)]}
        assert clutter == [(0, 1)]

    def test_size_range(self, sequence):
        assert sequence.sqrt_size_range() == (1.0, 3.5)
        assert MultiState().sqrt_size_range() == (0.0, 0.0)

    def test_empty_frame_array_shape(self):
        empty = MultiState.from_lists([[]])
        assert empty[0].as_array().shape == (0, 3)
