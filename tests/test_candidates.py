"""
Candidate Builder Test Suite

Test ID | Description                                  | Expected
--------|----------------------------------------------|---------------------------
1       | Option scores                                | log PD + log p(z), log lambda u
2       | Unlimited candidates                         | All live targets
3       | Distance limit                               | Targets within MaxDist
4       | Count limit                                  | Nearest MaxNum targets
5       | Exclusion of already associated targets      | Excluded before the cap
6       | Legacy switch                                | Limits ignored
"""

import math
import os
import sys

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rbmcda.datatypes import BIRTH, CLUTTER
from rbmcda.tracking.candidates import CandidateBuilder
from rbmcda.tracking.imm import IMMFilter


def predicted_targets(imm, positions):
    """Live targets 1..K predicted one step from the given (x, y)."""
    return {
        k + 1: imm.predict(imm.initialize([x, y, 3.0], frame=0), dt=1.0)
        for k, (x, y) in enumerate(positions)
    }


@pytest.fixture
def scene(make_config):
    """Three targets at (10,10), (20,10), (50,50) and one observation at (11,10)."""

    def _scene(**overrides):
        config = make_config(**overrides)
        imm = IMMFilter.from_config(config)
        builder = CandidateBuilder(config, imm)
        targets = predicted_targets(imm, [(10.0, 10.0), (20.0, 10.0), (50.0, 50.0)])
        Z = np.array([[11.0, 10.0, 3.0]])
        return config, imm, builder, targets, Z

    return _scene


# =============================================================================
# TEST 1: Option Scores
# =============================================================================


class TestOptionScores:
    """Unnormalized log scores of every option kind."""

    def test_target_score(self, scene):
        config, imm, builder, targets, Z = scene()
        scores = builder.score_frame(targets, Z)

        expected = math.log(config.p_detect) + imm.predictive_log_likelihoods(targets[2], Z)[0]
        assert scores.log_scores[0, 1] == pytest.approx(expected)

    def test_birth_and_clutter_scores(self, scene):
        config, _, builder, targets, Z = scene(LambdaBirth=0.2, LambdaClutter=3.0)
        candidates = builder.build(0, builder.score_frame(targets, Z))

        volume = 100.0 * 100.0 * 6.0
        assert candidates.options[-2] == BIRTH
        assert candidates.options[-1] == CLUTTER
        assert candidates.log_scores[-2] == pytest.approx(math.log(0.2 / volume))
        assert candidates.log_scores[-1] == pytest.approx(math.log(3.0 / volume))

    def test_zero_rates_are_impossible(self, scene):
        _, _, builder, targets, Z = scene(LambdaBirth=0.0, LambdaClutter=0.0)
        candidates = builder.build(0, builder.score_frame(targets, Z))

        assert candidates.log_scores[-2] == -np.inf
        assert candidates.log_scores[-1] == -np.inf
        assert np.isfinite(builder.log_clutter_floor)

    def test_target_ids_sorted(self, scene):
        _, _, builder, targets, Z = scene()
        shuffled = {tid: targets[tid] for tid in (3, 1, 2)}
        scores = builder.score_frame(shuffled, Z)
        assert scores.target_ids.tolist() == [1, 2, 3]

    def test_no_targets(self, scene):
        _, _, builder, _, Z = scene()
        candidates = builder.build(0, builder.score_frame({}, Z))
        assert candidates.options.tolist() == [BIRTH, CLUTTER]


# =============================================================================
# TEST 2-4: Spatial Limits
# =============================================================================


class TestNeighborLimits:
    """Which live targets become candidates."""

    def test_unlimited(self, scene):
        config, _, builder, targets, Z = scene()
        assert not config.neighbors_limited

        candidates = builder.build(0, builder.score_frame(targets, Z))
        assert candidates.target_ids == [1, 2, 3]
        assert len(candidates) == 5

    def test_distance_limit(self, scene):
        _, _, builder, targets, Z = scene(MaxDistNeighbors=5.0)
        candidates = builder.build(0, builder.score_frame(targets, Z))
        assert candidates.target_ids == [1]

    def test_distance_limit_can_leave_only_birth_and_clutter(self, scene):
        _, _, builder, targets, _ = scene(MaxDistNeighbors=2.0)
        Z = np.array([[80.0, 80.0, 3.0]])
        candidates = builder.build(0, builder.score_frame(targets, Z))
        assert candidates.options.tolist() == [BIRTH, CLUTTER]

    def test_count_limit(self, scene):
        _, _, builder, targets, Z = scene(MaxNumNeighbors=2)
        candidates = builder.build(0, builder.score_frame(targets, Z))
        assert candidates.target_ids == [1, 2]

    def test_both_limits(self, scene):
        _, _, builder, targets, Z = scene(MaxNumNeighbors=1, MaxDistNeighbors=50.0)
        candidates = builder.build(0, builder.score_frame(targets, Z))
        assert candidates.target_ids == [1]

    def test_scores_follow_selected_targets(self, scene):
        _, _, builder, targets, Z = scene(MaxNumNeighbors=1)
        scores = builder.score_frame(targets, Z)
        candidates = builder.build(0, scores)
        assert candidates.log_scores[0] == pytest.approx(scores.log_scores[0, 0])


# =============================================================================
# TEST 5: Exclusion
# =============================================================================


class TestExclusion:
    """Targets already used in the frame are never offered again."""

    def test_excluded_target_skipped(self, scene):
        _, _, builder, targets, Z = scene()
        candidates = builder.build(0, builder.score_frame(targets, Z), excluded={2})
        assert candidates.target_ids == [1, 3]

    def test_exclusion_before_count_cap(self, scene):
        """With the nearest target used, the cap picks the next nearest"""
        _, _, builder, targets, Z = scene(MaxNumNeighbors=1)
        candidates = builder.build(0, builder.score_frame(targets, Z), excluded={1})
        assert candidates.target_ids == [2]


# =============================================================================
# TEST 6: Legacy Switch
# =============================================================================


class TestLegacySwitch:
    """NoNeighborsOldAlgo considers every live target."""

    def test_old_algo_ignores_limits(self, scene):
        config, _, builder, targets, Z = scene(
            MaxNumNeighbors=1, MaxDistNeighbors=2.0, NoNeighborsOldAlgo=True
        )
        assert not config.neighbors_limited

        candidates = builder.build(0, builder.score_frame(targets, Z))
        assert candidates.target_ids == [1, 2, 3]

    def test_generous_limits_match_unlimited(self, scene):
        _, _, unlimited, targets, Z = scene()
        _, _, limited, _, _ = scene(MaxNumNeighbors=10, MaxDistNeighbors=1000.0)

        a = unlimited.build(0, unlimited.score_frame(targets, Z))
        b = limited.build(0, limited.score_frame(targets, Z))

        np.testing.assert_array_equal(a.options, b.options)
        np.testing.assert_allclose(a.log_scores, b.log_scores)
