"""
End-to-End Tracking Scenarios

Test ID | Scenario                                          | Expected
--------|---------------------------------------------------|-------------------------------
1       | Single target, no clutter, PDetect=1, one model   | 0 ID switches, rate 1.0
2       | Rising clutter intensity                          | Detection rate strictly falls
3       | NumSamples=1                                      | Consensus == the particle
4       | Paths crossing with a distance limit              | Two pure tracks
5       | Generated multi-target sequence                   | Sensible recall
"""

import os
import sys

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rbmcda.datatypes import MultiState, Observation
from rbmcda.evaluation.sequence_stats import association_statistics
from rbmcda.evaluation.track_evaluator import TrackEvaluator
from rbmcda.io.exporter import export_tracking_result
from rbmcda.io.observations import read_observations
from rbmcda.simulation.generator import GeneratorConfig, ObservationSeriesGenerator
from rbmcda.tracking.tracker import MultiTargetTracker


def noisy_track(points, rng, xy_std=0.5, size_std=0.05, sqrt_size=3.0, target_id=1):
    """One observation per frame around the given (x, y) points."""
    frames = []
    for x, y in points:
        frames.append(
            [
                Observation(
                    x=float(x + rng.normal(0.0, xy_std)),
                    y=float(y + rng.normal(0.0, xy_std)),
                    sqrt_size=float(sqrt_size + rng.normal(0.0, size_std)),
                    target_id=target_id,
                )
            ]
        )
    return MultiState.from_lists(frames)


# =============================================================================
# SCENARIO 1: Single Clean Target
# =============================================================================


class TestSingleTarget:
    """No clutter, no births, perfect detection, random walk only."""

    @pytest.fixture
    def config(self, make_config):
        return make_config(
            NumSamples=10,
            PDetect=1.0,
            LambdaBirth=0.0,
            LambdaClutter=0.0,
            LambdaDeath=0.0,
            PModelTransRwRw=1.0,
            PModelTransRwFle=0.0,
            PModelTransFleRw=1.0,
            PModelTransFleFle=0.0,
        )

    def test_track_recovered(self, config, rng):
        groundtruth = noisy_track([(10.0 + 0.5 * t, 30.0) for t in range(30)], rng)

        result = MultiTargetTracker(config).run(groundtruth)
        evaluation = TrackEvaluator(groundtruth).evaluate(
            result.consensus_observations(), align_ids=True
        )

        assert evaluation.id_switches == 0
        assert evaluation.detection_rate == pytest.approx(1.0)
        assert evaluation.segments.recall == pytest.approx(1.0)
        assert evaluation.clutter_fp == 0
        assert result.consensus.num_tracks == 1

    def test_every_sample_agrees(self, config, rng):
        groundtruth = noisy_track([(50.0, 50.0 - t) for t in range(20)], rng)

        result = MultiTargetTracker(config).run(groundtruth)

        for labels in result.sample_labels:
            assert all(frame.tolist() == [1] for frame in labels)
        np.testing.assert_allclose(result.joint_probabilities, np.full(10, 0.1))
        assert result.sampler.num_resamplings == 0


# =============================================================================
# SCENARIO 2: Clutter Intensity Sweep
# =============================================================================


class TestClutterSweep:
    """Higher clutter intensity explains more observations as clutter."""

    def test_detection_rate_strictly_decreases(self, make_config, rng):
        groundtruth = noisy_track([(50.0, 50.0)] * 60, rng, xy_std=1.0, size_std=0.3)

        rates = []
        for lambda_clutter in (0.0, 400.0, 1e12):
            config = make_config(
                NumSamples=1,
                PDetect=1.0,
                LambdaBirth=0.0,
                LambdaDeath=0.0,
                LambdaClutter=lambda_clutter,
            )
            result = MultiTargetTracker(config).run(groundtruth)
            rates.append(association_statistics(result.consensus_observations()).detection_frequency)

        assert rates[0] == pytest.approx(1.0)
        assert rates[0] > rates[1] > rates[2]
        assert rates[2] == pytest.approx(0.0)


# =============================================================================
# SCENARIO 3: Single Particle
# =============================================================================


class TestSingleParticle:
    """With one particle there is nothing to reconcile."""

    @staticmethod
    def _generated(seed):
        return ObservationSeriesGenerator(
            GeneratorConfig(
                num_frames=20,
                num_initial_targets=4,
                p_detect=0.85,
                lambda_clutter=1.5,
                lambda_birth=0.2,
                lambda_death=0.05,
                seed=seed,
            )
        ).generate()

    @pytest.mark.parametrize("seed", [1, 2, 3, 4, 5, 6, 7, 8])
    def test_consensus_equals_particle(self, make_config, seed):
        generated = self._generated(seed)

        config = make_config(NumSamples=1, RandomSeed=seed, LambdaClutter=1.5, LambdaBirth=0.2)
        result = MultiTargetTracker(config).run(generated.observations)

        consensus = [frame.tolist() for frame in result.consensus.labels]
        assert consensus == [frame.tolist() for frame in result.sample_labels[0]]
        assert result.joint_probabilities.tolist() == [1.0]

    def test_written_files_identical(self, make_config, tmp_path):
        generated = self._generated(11)
        config = make_config(NumSamples=1, RandomSeed=11, LambdaClutter=1.5, LambdaBirth=0.2)
        result = MultiTargetTracker(config).run(generated.observations)

        written = export_tracking_result(result, str(tmp_path / "run"), summary=False)

        assert read_observations(written["samples"][0]) == read_observations(written["gpp"])


# =============================================================================
# SCENARIO 4: Crossing Paths
# =============================================================================


class TestCrossingPaths:
    """Targets passing the same point at different times stay apart."""

    def test_two_pure_tracks(self, make_config):
        # A moves right along y=25, B moves up along x=25; both pass (25, 25)
        frames = []
        for t in range(40):
            frames.append(
                [
                    Observation(x=5.0 + t, y=25.0, sqrt_size=3.0, target_id=1),
                    Observation(x=25.0, y=t - 10.0, sqrt_size=3.0, target_id=2),
                ]
            )
        groundtruth = MultiState.from_lists(frames)
        separations = [
            np.hypot(f[0].x - f[1].x, f[0].y - f[1].y) for f in groundtruth
        ]
        assert min(separations) > 3.0

        config = make_config(
            NumSamples=5,
            YMin=-20.0,
            LambdaBirth=0.0,
            LambdaClutter=0.0,
            LambdaDeath=0.0,
            MaxDistNeighbors=3.0,
        )
        result = MultiTargetTracker(config).run(groundtruth)
        evaluation = TrackEvaluator(groundtruth).evaluate(
            result.consensus_observations(), align_ids=True
        )

        assert result.consensus.num_tracks == 2
        assert evaluation.id_switches == 0
        assert evaluation.identity_accuracy == pytest.approx(1.0)
        assert evaluation.segments.recall == pytest.approx(1.0)
        assert evaluation.segments.precision == pytest.approx(1.0)


# =============================================================================
# SCENARIO 5: Generated Sequence
# =============================================================================


class TestGeneratedSequence:
    """Tracker output on synthetic data with clutter and missed detections."""

    def test_recall_on_separated_targets(self, make_config):
        generated = ObservationSeriesGenerator(
            GeneratorConfig(
                num_frames=25,
                num_initial_targets=3,
                p_detect=0.95,
                lambda_clutter=0.5,
                r_xy=0.25,
                q_xy=0.25,
                seed=4,
            )
        ).generate()

        config = make_config(
            NumSamples=20,
            PDetect=0.95,
            LambdaClutter=0.5,
            LambdaBirth=0.01,
            LambdaDeath=0.01,
            Rxy=0.25,
            Qxy=0.25,
        )
        result = MultiTargetTracker(config).run(generated.observations)
        evaluation = TrackEvaluator(generated.observations).evaluate(
            result.consensus_observations(), align_ids=True
        )

        assert evaluation.segments.recall > 0.5
        assert evaluation.tracker_stats.num_targets >= 1
