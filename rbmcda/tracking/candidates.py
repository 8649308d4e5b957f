"""
Candidate Builder

Builds, for each observation of a frame, the set of association options a
particle may sample from:

    {live targets near the observation} + {BIRTH} + {CLUTTER}

Each option carries an unnormalized log score:
    target:  log PDetect + log p(z | predicted target)
    birth:   log LambdaBirth + log u
    clutter: log LambdaClutter + log u
where u is the uniform density over the (x, y, sqrt size) domain.

Spatial limits:
    MaxDistNeighbors > 0: only targets whose predicted position lies within
                          this distance of the observation
    MaxNumNeighbors > 0:  only the nearest MaxNumNeighbors of those
A zero limit disables itself. NoNeighborsOldAlgo ignores both limits.
"""

import math
from dataclasses import dataclass
from typing import Collection, Dict, List

import numpy as np

from rbmcda.config import TrackerConfig
from rbmcda.datatypes import BIRTH, CLUTTER
from rbmcda.tracking.imm import IMMFilter, IMMState


def _safe_log(value: float) -> float:
    return math.log(value) if value > 0 else -math.inf


@dataclass
class CandidateSet:
    """
    Association options for one observation.

    Attributes:
        options: Target IDs (>= 1), BIRTH (-1) or CLUTTER (0)
        log_scores: Unnormalized log proposal weights, same length
    """

    options: np.ndarray
    log_scores: np.ndarray

    def __len__(self) -> int:
        return len(self.options)

    @property
    def target_ids(self) -> List[int]:
        return [int(o) for o in self.options if o > 0]


@dataclass
class FrameScores:
    """Target scores of one particle for all observations of a frame."""

    target_ids: np.ndarray  # (T,)
    log_scores: np.ndarray  # (M, T)
    distances: np.ndarray  # (M, T)


class CandidateBuilder:
    """
    Candidate association sets for one particle and one frame.

    Example:
        >>> builder = CandidateBuilder(config, imm)
        >>> scores = builder.score_frame(targets, Z)
        >>> candidates = builder.build(0, scores, excluded=set())
    """

    def __init__(self, config: TrackerConfig, imm: IMMFilter) -> None:
        self.imm = imm
        self.max_num_neighbors = int(config.max_num_neighbors)
        self.max_dist_neighbors = float(config.max_dist_neighbors)
        self.limited = config.neighbors_limited

        log_u = -math.log(config.domain_volume)
        self.log_u = log_u
        self.log_p_detect = _safe_log(config.p_detect)
        self.log_p_miss = _safe_log(1.0 - config.p_detect)
        self.log_birth = _safe_log(config.lambda_birth) + log_u
        self.log_clutter = _safe_log(config.lambda_clutter) + log_u

        # Floor used when no option has positive probability
        self.log_clutter_floor = math.log(max(config.lambda_clutter, 1e-300)) + log_u

    def score_frame(self, targets: Dict[int, IMMState], Z: np.ndarray) -> FrameScores:
        """
        Score every (observation, target) pair of a frame.

        Args:
            targets: Predicted live targets of one particle
            Z: Observations, shape (M, 3)

        Returns:
            FrameScores with log scores and distances of shape (M, T)
        """
        M = Z.shape[0]
        ids = np.array(sorted(targets), dtype=np.int64)

        if ids.size == 0 or M == 0:
            empty = np.zeros((M, ids.size))
            return FrameScores(target_ids=ids, log_scores=empty, distances=empty.copy())

        log_scores = np.empty((M, ids.size))
        positions = np.empty((ids.size, 2))
        for k, target_id in enumerate(ids):
            state = targets[int(target_id)]
            log_scores[:, k] = self.log_p_detect + self.imm.predictive_log_likelihoods(state, Z)
            positions[k] = state.predicted_position

        distances = np.linalg.norm(Z[:, None, :2] - positions[None, :, :], axis=2)
        return FrameScores(target_ids=ids, log_scores=log_scores, distances=distances)

    def neighbors(self, m: int, scores: FrameScores, excluded: Collection[int] = ()) -> np.ndarray:
        """
        Column indices of the candidate targets for observation m.

        Targets in `excluded` (already associated in this frame) are skipped
        before the nearest-neighbor cap is applied.
        """
        available = np.array(
            [k for k, tid in enumerate(scores.target_ids) if int(tid) not in excluded],
            dtype=np.int64,
        )
        if available.size == 0 or not self.limited:
            return available

        dist = scores.distances[m, available]
        if self.max_dist_neighbors > 0:
            keep = dist <= self.max_dist_neighbors
            available, dist = available[keep], dist[keep]

        if self.max_num_neighbors > 0 and available.size > self.max_num_neighbors:
            nearest = np.argsort(dist, kind="stable")[: self.max_num_neighbors]
            available = available[np.sort(nearest)]

        return available

    def build(self, m: int, scores: FrameScores, excluded: Collection[int] = ()) -> CandidateSet:
        """Candidate set of observation m: neighbors, BIRTH and CLUTTER."""
        columns = self.neighbors(m, scores, excluded)

        options = np.concatenate(
            [scores.target_ids[columns], np.array([BIRTH, CLUTTER], dtype=np.int64)]
        )
        log_scores = np.concatenate(
            [scores.log_scores[m, columns], np.array([self.log_birth, self.log_clutter])]
        )
        return CandidateSet(options=options, log_scores=log_scores)
