"""
Evaluation Package

Statistics of observation sequences and comparison of tracker output with
groundtruth.
"""

from .sequence_stats import (
    AssociationStatistics,
    ObservationStatistics,
    association_statistics,
    mean_and_variance,
    observation_statistics,
)
from .track_evaluator import (
    DetectionCounts,
    TrackEvaluationResult,
    TrackEvaluator,
    align_track_ids,
    evaluate_samples,
)

__all__ = [
    "ObservationStatistics",
    "AssociationStatistics",
    "observation_statistics",
    "association_statistics",
    "mean_and_variance",
    "TrackEvaluator",
    "TrackEvaluationResult",
    "DetectionCounts",
    "align_track_ids",
    "evaluate_samples",
]
