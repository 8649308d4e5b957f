"""
Sequence Statistics and Track Evaluation Test Suite

Test ID | Description                                | Expected
--------|--------------------------------------------|--------------------------
1       | Observation count statistics               | Sample variance (n - 1)
2       | Association statistics                     | Clutter, births, gaps
3       | Clutter classification                     | TP/FP/TN/FN
4       | Track structure comparison                 | Label-invariant sets
5       | ID switches and alignment                  | Hungarian matching
6       | Incompatible sequences                     | ValueError
"""

import math
import os
import sys

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rbmcda.datatypes import MultiState, Observation
from rbmcda.evaluation.sequence_stats import (
    association_statistics,
    mean_and_variance,
    observation_statistics,
)
from rbmcda.evaluation.track_evaluator import (
    DetectionCounts,
    TrackEvaluator,
    align_track_ids,
    evaluate_samples,
)


def labelled(ids_per_frame):
    """Sequence with one observation per label, placed by frame and index."""
    frames = []
    for t, ids in enumerate(ids_per_frame):
        frames.append(
            [Observation(x=10.0 * m, y=float(t), sqrt_size=2.0, target_id=tid) for m, tid in enumerate(ids)]
        )
    return MultiState.from_lists(frames)


# =============================================================================
# TEST 1: Observation Statistics
# =============================================================================


class TestObservationStatistics:
    """Label-independent counts."""

    def test_mean_and_sample_variance(self):
        mean, var = mean_and_variance([1, 2, 3, 4])
        assert mean == pytest.approx(2.5)
        assert var == pytest.approx(np.var([1, 2, 3, 4], ddof=1))

    def test_single_value_has_zero_variance(self):
        assert mean_and_variance([5]) == (5.0, 0.0)

    def test_counts(self):
        stats = observation_statistics(labelled([[1, 2], [1], [1, 2, 0], []]))

        assert stats.num_frames == 4
        assert stats.total == 6
        assert stats.mean == pytest.approx(1.5)
        assert stats.variance == pytest.approx(np.var([2, 1, 3, 0], ddof=1))
        assert stats.minimum == 0
        assert stats.maximum == 3
        assert stats.median == 2

    def test_distances(self):
        stats = observation_statistics(labelled([[1, 2], [1, 2, 3]]))
        assert stats.min_distance == pytest.approx(10.0)
        assert stats.max_distance == pytest.approx(20.0)

    def test_empty_sequence(self):
        stats = observation_statistics(MultiState())
        assert stats.total == 0
        assert stats.to_dict()["num_frames"] == 0


# =============================================================================
# TEST 2: Association Statistics
# =============================================================================


class TestAssociationStatistics:
    """Statistics from target IDs."""

    def test_clutter_and_births(self):
        stats = association_statistics(labelled([[1, 0], [1, 2, 0, 0], [2, 3]]))

        assert stats.clutter_mean == pytest.approx(1.0)
        assert stats.clutter_variance == pytest.approx(1.0)
        # Births in frames 1 and 2, none counted in frame 0
        assert stats.birth_mean == pytest.approx(2.0 / 3.0)
        assert stats.num_targets == 3

    def test_detection_frequency_with_gaps(self):
        # Target 1 seen in frames 0, 2, 3: one missed detection
        stats = association_statistics(labelled([[1], [0], [1], [1]]))

        assert stats.detections == 3
        assert stats.missed_detections == 1
        assert stats.detection_frequency == pytest.approx(0.75)
        assert stats.gap_histogram == {2: 1, 1: 1}

    def test_no_detections(self):
        stats = association_statistics(labelled([[0], [0, 0]]))
        assert stats.detection_frequency == 0.0
        assert stats.num_targets == 0


# =============================================================================
# TEST 3: Clutter Classification
# =============================================================================


class TestClutterClassification:
    """Per-observation clutter decisions."""

    def test_confusion_counts(self):
        groundtruth = labelled([[1, 0, 0], [1, 2, 0]])
        tracker = labelled([[1, 0, 5], [0, 2, 0]])

        result = TrackEvaluator(groundtruth).evaluate(tracker)

        assert result.clutter_tp == 2  # (0,1), (1,2)
        assert result.clutter_fp == 1  # (1,0)
        assert result.clutter_fn == 1  # (0,2)
        assert result.clutter_tn == 2  # (0,0), (1,1)
        assert result.num_clutter_groundtruth == 3
        assert result.num_clutter_tracker == 3
        assert result.clutter_recall == pytest.approx(2.0 / 3.0)
        assert result.clutter_precision == pytest.approx(2.0 / 3.0)

    def test_undefined_ratio_is_nan(self):
        groundtruth = labelled([[1], [1]])
        result = TrackEvaluator(groundtruth).evaluate(groundtruth)
        assert math.isnan(result.clutter_recall)


# =============================================================================
# TEST 4: Track Structure
# =============================================================================


class TestTrackStructure:
    """Segments, starts and ends do not depend on the numbering."""

    def test_perfect_tracker(self):
        groundtruth = labelled([[1, 2], [1, 2], [1, 2]])
        result = TrackEvaluator(groundtruth).evaluate(groundtruth)

        assert result.segments == DetectionCounts(tp=4, fp=0, fn=0)
        assert result.starts.recall == pytest.approx(1.0)
        assert result.ends.precision == pytest.approx(1.0)
        assert result.id_switches == 0
        assert result.identity_accuracy == pytest.approx(1.0)

    def test_renumbered_tracks_are_equivalent(self):
        groundtruth = labelled([[1, 2], [1, 2], [1, 2]])
        tracker = labelled([[7, 4], [7, 4], [7, 4]])

        result = TrackEvaluator(groundtruth).evaluate(tracker)

        assert result.segments.recall == pytest.approx(1.0)
        assert result.segments.precision == pytest.approx(1.0)
        assert result.id_switches == 0

    def test_broken_track(self):
        groundtruth = labelled([[1], [1], [1], [1]])
        tracker = labelled([[1], [1], [2], [2]])

        result = TrackEvaluator(groundtruth).evaluate(tracker)

        assert result.segments == DetectionCounts(tp=2, fp=0, fn=1)
        assert result.starts == DetectionCounts(tp=1, fp=1, fn=0)
        assert result.ends == DetectionCounts(tp=1, fp=1, fn=0)
        assert result.id_switches == 1

    def test_detection_rate_of_tracker_output(self):
        groundtruth = labelled([[1], [1], [1], [1]])
        tracker = labelled([[1], [0], [1], [1]])

        result = TrackEvaluator(groundtruth).evaluate(tracker)

        assert result.groundtruth_stats.detection_frequency == pytest.approx(1.0)
        assert result.detection_rate == pytest.approx(0.75)


# =============================================================================
# TEST 5: ID Alignment
# =============================================================================


class TestIdAlignment:
    """Maximal-overlap matching of tracker IDs to groundtruth IDs."""

    def test_mapping(self):
        groundtruth = labelled([[1, 2], [1, 2], [1, 2]])
        tracker = labelled([[9, 3], [9, 3], [3, 9]])

        mapping = align_track_ids(groundtruth, tracker)

        assert mapping == {9: 1, 3: 2}

    def test_aligned_identity_accuracy(self):
        groundtruth = labelled([[1, 2], [1, 2], [1, 2]])
        tracker = labelled([[9, 3], [9, 3], [3, 9]])

        unaligned = TrackEvaluator(groundtruth).evaluate(tracker)
        aligned = TrackEvaluator(groundtruth).evaluate(tracker, align_ids=True)

        assert unaligned.identity_accuracy == pytest.approx(0.0)
        assert aligned.identity_accuracy == pytest.approx(4.0 / 6.0)
        assert aligned.id_switches == 2

    def test_no_tracks(self):
        assert align_track_ids(labelled([[0]]), labelled([[0]])) == {}

    def test_evaluate_samples(self):
        groundtruth = labelled([[1], [1]])
        results = evaluate_samples(groundtruth, [labelled([[1], [1]]), labelled([[0], [0]])])
        assert [r.segments.tp for r in results] == [1, 0]

    def test_result_dict(self):
        groundtruth = labelled([[1], [1]])
        data = TrackEvaluator(groundtruth).evaluate(groundtruth).to_dict()
        assert data["track_segments"]["TP"] == 1
        assert data["id_switches"] == 0


# =============================================================================
# TEST 6: Incompatible Sequences
# =============================================================================


class TestIncompatibleSequences:
    """Tracker output must hold the groundtruth observations."""

    def test_frame_count_mismatch(self):
        with pytest.raises(ValueError, match="Frame count"):
            TrackEvaluator(labelled([[1], [1]])).evaluate(labelled([[1]]))

    def test_observation_count_mismatch(self):
        with pytest.raises(ValueError, match="observations"):
            TrackEvaluator(labelled([[1], [1]])).evaluate(labelled([[1], [1, 0]]))
