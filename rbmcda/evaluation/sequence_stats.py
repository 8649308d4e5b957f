"""
Observation Sequence Statistics

Summaries of a (labelled) observation sequence:

    - Number of observations per frame (mean, variance, median, min, max)
    - Minimum and maximum distance between observations of the same frame
    - Clutter and newborn targets per frame (mean, variance)
    - Relative frequency of target detections:
          detections / (detections + missed detections)
      where the frames between two successive observations of one target
      count as missed detections
    - Histogram of the gaps between successive observations of a target

Variances use the sample estimator (n - 1 in the denominator).
"""

from collections import Counter
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Dict, Tuple

import numpy as np

from rbmcda.datatypes import CLUTTER, MultiState


def mean_and_variance(values) -> Tuple[float, float]:
    """Mean and sample variance; variance is 0 for fewer than two values."""
    values = np.asarray(values, dtype=np.float64)
    if values.size == 0:
        return 0.0, 0.0
    if values.size == 1:
        return float(values[0]), 0.0
    return float(values.mean()), float(values.var(ddof=1))


@dataclass
class ObservationStatistics:
    """Counts and spacing of observations, independent of labels."""

    num_frames: int = 0
    total: int = 0
    mean: float = 0.0
    variance: float = 0.0
    median: int = 0
    minimum: int = 0
    maximum: int = 0
    min_distance: float = float("inf")
    max_distance: float = float("-inf")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "num_frames": self.num_frames,
            "total_observations": self.total,
            "mean_observations": self.mean,
            "variance_observations": self.variance,
            "median_observations": self.median,
            "min_observations": self.minimum,
            "max_observations": self.maximum,
            "min_distance": self.min_distance,
            "max_distance": self.max_distance,
        }


@dataclass
class AssociationStatistics:
    """Statistics derived from the target IDs of a sequence."""

    clutter_mean: float = 0.0
    clutter_variance: float = 0.0
    birth_mean: float = 0.0
    birth_variance: float = 0.0
    detections: int = 0
    missed_detections: int = 0
    num_targets: int = 0
    gap_histogram: Dict[int, int] = field(default_factory=dict)

    @property
    def detection_frequency(self) -> float:
        """detections / (detections + missed detections), 0 without detections."""
        total = self.detections + self.missed_detections
        return self.detections / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "clutter_mean": self.clutter_mean,
            "clutter_variance": self.clutter_variance,
            "birth_mean": self.birth_mean,
            "birth_variance": self.birth_variance,
            "num_targets": self.num_targets,
            "detections": self.detections,
            "missed_detections": self.missed_detections,
            "detection_frequency": self.detection_frequency,
            "gap_histogram": dict(sorted(self.gap_histogram.items())),
        }


def observation_statistics(observations: MultiState) -> ObservationStatistics:
    counts = observations.observation_counts()
    stats = ObservationStatistics(num_frames=observations.num_frames)
    if counts.size == 0:
        return stats

    stats.total = int(counts.sum())
    stats.mean, stats.variance = mean_and_variance(counts)
    stats.median = int(np.sort(counts)[counts.size // 2])
    stats.minimum = int(counts.min())
    stats.maximum = int(counts.max())

    for frame in observations:
        Z = frame.as_array()
        for a, b in combinations(range(Z.shape[0]), 2):
            d = float(np.linalg.norm(Z[a] - Z[b]))
            stats.min_distance = min(stats.min_distance, d)
            stats.max_distance = max(stats.max_distance, d)

    return stats


def association_statistics(observations: MultiState) -> AssociationStatistics:
    """
    Clutter, birth and detection statistics from the target IDs.

    A target ID seen for the first time after frame 0 counts as a birth.
    """
    T = observations.num_frames
    clutter = np.zeros(T, dtype=np.int64)
    births = np.zeros(T, dtype=np.int64)
    frames_of_id: Dict[int, list] = {}

    for t, frame in enumerate(observations):
        for obs in frame:
            if obs.target_id == CLUTTER:
                clutter[t] += 1
                continue
            if obs.target_id not in frames_of_id:
                frames_of_id[obs.target_id] = []
                if t > 0:
                    births[t] += 1
            frames_of_id[obs.target_id].append(t)

    stats = AssociationStatistics(num_targets=len(frames_of_id))
    stats.clutter_mean, stats.clutter_variance = mean_and_variance(clutter)
    stats.birth_mean, stats.birth_variance = mean_and_variance(births)

    gaps: Counter = Counter()
    for frames in frames_of_id.values():
        stats.detections += len(frames)
        for t_a, t_b in zip(frames, frames[1:]):
            gap = t_b - t_a
            if gap > 0:
                stats.missed_detections += gap - 1
                gaps[gap] += 1
    stats.gap_histogram = dict(gaps)

    return stats
