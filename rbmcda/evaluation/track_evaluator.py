"""
Track Evaluator

Compares a tracker output sequence against groundtruth. Both sequences must
hold the same observations in the same order and differ only in target IDs.

Metrics:
    Clutter         TP: both clutter       FP: tracker clutter, groundtruth target
                    TN: both target        FN: tracker target, groundtruth clutter
    Track segments  pairs of successive observations of one track
    Track starts    first observation of each track
    Track ends      last observation of each track
    ID switches     changes of the tracker ID along a groundtruth track

Segments, starts and ends are sets of observation indices (t, m) and do not
depend on how tracks are numbered. ID-based metrics can optionally be computed
after aligning tracker IDs to groundtruth IDs by maximal overlap
(Hungarian algorithm).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

import numpy as np
from scipy.optimize import linear_sum_assignment

from rbmcda.datatypes import CLUTTER, MultiState
from rbmcda.evaluation.sequence_stats import AssociationStatistics, association_statistics

logger = logging.getLogger(__name__)

Node = Tuple[int, int]
Segment = Tuple[int, int, int, int]


def _ratio(numerator: int, denominator: int) -> float:
    return numerator / denominator if denominator > 0 else float("nan")


@dataclass
class TrackStructure:
    """Label-independent structure of a labelled sequence."""

    segments: Set[Segment] = field(default_factory=set)
    starts: Set[Node] = field(default_factory=set)
    ends: Set[Node] = field(default_factory=set)
    num_target: int = 0
    num_clutter: int = 0

    @classmethod
    def from_observations(cls, observations: MultiState) -> "TrackStructure":
        structure = cls()
        tracks, clutter = observations.to_tracks()
        structure.num_clutter = len(clutter)

        for nodes in tracks.values():
            structure.num_target += len(nodes)
            structure.starts.add(nodes[0])
            structure.ends.add(nodes[-1])
            for (t1, m1), (t2, m2) in zip(nodes, nodes[1:]):
                structure.segments.add((t1, m1, t2, m2))

        return structure


@dataclass
class DetectionCounts:
    """True/false positives and false negatives of one set comparison."""

    tp: int = 0
    fp: int = 0
    fn: int = 0

    @classmethod
    def compare(cls, groundtruth: Set, candidate: Set) -> "DetectionCounts":
        tp = len(groundtruth & candidate)
        return cls(tp=tp, fp=len(candidate) - tp, fn=len(groundtruth) - tp)

    @property
    def recall(self) -> float:
        return _ratio(self.tp, self.tp + self.fn)

    @property
    def precision(self) -> float:
        return _ratio(self.tp, self.tp + self.fp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "TP": self.tp,
            "FP": self.fp,
            "FN": self.fn,
            "recall": self.recall,
            "precision": self.precision,
        }


@dataclass
class TrackEvaluationResult:
    """
    Evaluation of one tracker output.

    Attributes:
        num_clutter_groundtruth / num_target_groundtruth: Groundtruth label counts
        num_clutter_tracker / num_target_tracker: Tracker label counts
        clutter_tp, clutter_fp, clutter_tn, clutter_fn: Clutter classification
        segments, starts, ends: Track structure comparison
        id_switches: Changes of tracker ID along groundtruth tracks
        id_mapping: Tracker ID -> groundtruth ID (after alignment)
        identity_accuracy: Share of groundtruth target observations with the
            matching (aligned) tracker ID
        groundtruth_stats / tracker_stats: Sequence statistics of both inputs
    """

    num_clutter_groundtruth: int = 0
    num_target_groundtruth: int = 0
    num_clutter_tracker: int = 0
    num_target_tracker: int = 0
    clutter_tp: int = 0
    clutter_fp: int = 0
    clutter_tn: int = 0
    clutter_fn: int = 0
    segments: DetectionCounts = field(default_factory=DetectionCounts)
    starts: DetectionCounts = field(default_factory=DetectionCounts)
    ends: DetectionCounts = field(default_factory=DetectionCounts)
    id_switches: int = 0
    id_mapping: Dict[int, int] = field(default_factory=dict)
    identity_accuracy: float = float("nan")
    groundtruth_stats: Optional[AssociationStatistics] = None
    tracker_stats: Optional[AssociationStatistics] = None

    @property
    def clutter_recall(self) -> float:
        return _ratio(self.clutter_tp, self.clutter_tp + self.clutter_fn)

    @property
    def clutter_precision(self) -> float:
        return _ratio(self.clutter_tp, self.clutter_tp + self.clutter_fp)

    @property
    def detection_rate(self) -> float:
        """Relative frequency of target detections in the tracker output."""
        return self.tracker_stats.detection_frequency if self.tracker_stats else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "clutter": {
                "groundtruth": self.num_clutter_groundtruth,
                "tracker": self.num_clutter_tracker,
                "TP": self.clutter_tp,
                "FP": self.clutter_fp,
                "TN": self.clutter_tn,
                "FN": self.clutter_fn,
                "recall": self.clutter_recall,
                "precision": self.clutter_precision,
            },
            "targets": {
                "groundtruth": self.num_target_groundtruth,
                "tracker": self.num_target_tracker,
            },
            "track_segments": self.segments.to_dict(),
            "track_starts": self.starts.to_dict(),
            "track_ends": self.ends.to_dict(),
            "id_switches": self.id_switches,
            "identity_accuracy": self.identity_accuracy,
            "detection_rate": self.detection_rate,
            "groundtruth": self.groundtruth_stats.to_dict() if self.groundtruth_stats else {},
            "tracker": self.tracker_stats.to_dict() if self.tracker_stats else {},
        }


def align_track_ids(groundtruth: MultiState, candidate: MultiState) -> Dict[int, int]:
    """
    Map tracker IDs to groundtruth IDs by maximal observation overlap.

    Returns:
        Tracker ID -> groundtruth ID for every matched pair with overlap > 0
    """
    gt_ids = sorted({o.target_id for f in groundtruth for o in f if o.target_id != CLUTTER})
    cand_ids = sorted({o.target_id for f in candidate for o in f if o.target_id != CLUTTER})
    if not gt_ids or not cand_ids:
        return {}

    gt_index = {tid: i for i, tid in enumerate(gt_ids)}
    cand_index = {tid: j for j, tid in enumerate(cand_ids)}
    overlap = np.zeros((len(gt_ids), len(cand_ids)), dtype=np.int64)

    for gt_frame, cand_frame in zip(groundtruth, candidate):
        for gt_obs, cand_obs in zip(gt_frame, cand_frame):
            if gt_obs.target_id != CLUTTER and cand_obs.target_id != CLUTTER:
                overlap[gt_index[gt_obs.target_id], cand_index[cand_obs.target_id]] += 1

    rows, cols = linear_sum_assignment(overlap, maximize=True)
    return {
        cand_ids[j]: gt_ids[i] for i, j in zip(rows, cols) if overlap[i, j] > 0
    }


class TrackEvaluator:
    """
    Evaluate tracker outputs against one groundtruth sequence.

    Example:
        >>> evaluator = TrackEvaluator(groundtruth)
        >>> result = evaluator.evaluate(tracker_output, align_ids=True)
        >>> result.segments.recall
    """

    def __init__(self, groundtruth: MultiState):
        self.groundtruth = groundtruth
        self.structure = TrackStructure.from_observations(groundtruth)
        self.groundtruth_stats = association_statistics(groundtruth)

    def _check_compatible(self, candidate: MultiState) -> None:
        if candidate.num_frames != self.groundtruth.num_frames:
            raise ValueError(
                f"Frame count mismatch: groundtruth {self.groundtruth.num_frames}, "
                f"tracker {candidate.num_frames}"
            )
        for gt_frame, cand_frame in zip(self.groundtruth, candidate):
            if len(gt_frame) != len(cand_frame):
                raise ValueError(
                    f"Frame {gt_frame.t}: groundtruth has {len(gt_frame)} observations, "
                    f"tracker {len(cand_frame)}"
                )

    def evaluate(self, candidate: MultiState, align_ids: bool = False) -> TrackEvaluationResult:
        """
        Compare one tracker output with the groundtruth.

        Args:
            candidate: Tracker-labelled sequence
            align_ids: Align tracker IDs to groundtruth IDs before computing
                identity accuracy; otherwise IDs are compared directly

        Raises:
            ValueError: If the sequences do not hold the same observations
        """
        self._check_compatible(candidate)

        result = TrackEvaluationResult(
            num_clutter_groundtruth=self.structure.num_clutter,
            num_target_groundtruth=self.structure.num_target,
            groundtruth_stats=self.groundtruth_stats,
            tracker_stats=association_statistics(candidate),
        )

        for gt_frame, cand_frame in zip(self.groundtruth, candidate):
            for gt_obs, cand_obs in zip(gt_frame, cand_frame):
                gt_clutter = gt_obs.target_id == CLUTTER
                if cand_obs.target_id == CLUTTER:
                    result.num_clutter_tracker += 1
                    if gt_clutter:
                        result.clutter_tp += 1
                    else:
                        result.clutter_fp += 1
                else:
                    result.num_target_tracker += 1
                    if gt_clutter:
                        result.clutter_fn += 1
                    else:
                        result.clutter_tn += 1

        tracker_structure = TrackStructure.from_observations(candidate)
        result.segments = DetectionCounts.compare(self.structure.segments, tracker_structure.segments)
        result.starts = DetectionCounts.compare(self.structure.starts, tracker_structure.starts)
        result.ends = DetectionCounts.compare(self.structure.ends, tracker_structure.ends)

        if align_ids:
            result.id_mapping = align_track_ids(self.groundtruth, candidate)
        result.id_switches = self._count_id_switches(candidate)
        result.identity_accuracy = self._identity_accuracy(candidate, result.id_mapping, align_ids)

        logger.debug("Evaluation: %s", result.to_dict())
        return result

    def _count_id_switches(self, candidate: MultiState) -> int:
        """Changes of the (non-clutter) tracker ID along each groundtruth track."""
        tracks, _ = self.groundtruth.to_tracks()
        switches = 0
        for nodes in tracks.values():
            previous = None
            for t, m in nodes:
                cand_id = candidate[t][m].target_id
                if cand_id == CLUTTER:
                    continue
                if previous is not None and cand_id != previous:
                    switches += 1
                previous = cand_id
        return switches

    def _identity_accuracy(
        self, candidate: MultiState, mapping: Dict[int, int], aligned: bool
    ) -> float:
        matched = 0
        for gt_frame, cand_frame in zip(self.groundtruth, candidate):
            for gt_obs, cand_obs in zip(gt_frame, cand_frame):
                if gt_obs.target_id == CLUTTER or cand_obs.target_id == CLUTTER:
                    continue
                cand_id = mapping.get(cand_obs.target_id) if aligned else cand_obs.target_id
                if cand_id == gt_obs.target_id:
                    matched += 1
        return _ratio(matched, self.structure.num_target)


def evaluate_samples(
    groundtruth: MultiState, candidates: List[MultiState], align_ids: bool = False
) -> List[TrackEvaluationResult]:
    """Evaluate several tracker outputs (e.g. all samples) against one groundtruth."""
    evaluator = TrackEvaluator(groundtruth)
    return [evaluator.evaluate(c, align_ids=align_ids) for c in candidates]
