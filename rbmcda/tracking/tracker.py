"""
Multi-Target Tracker

Runs the complete pipeline on an observation sequence:

    resolve parameters -> RBMCDA sampling -> per-sample labelings
                       -> joint probabilities -> consensus labeling

Usage:
    tracker = MultiTargetTracker(config)
    result = tracker.run(observations)
    consensus = result.consensus_observations()
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List

import numpy as np

from rbmcda.config import TrackerConfig
from rbmcda.datatypes import MultiState
from rbmcda.tracking.consensus import (
    ConsensusExtractor,
    ConsensusResult,
    renumber_by_first_appearance,
    singletons_to_clutter,
)
from rbmcda.tracking.sampler import RBMCDASampler, SamplerResult

logger = logging.getLogger(__name__)


@dataclass
class TrackingResult:
    """
    Results of one tracker run.

    Attributes:
        config: Resolved configuration actually used
        observations: Input sequence
        sampler: Raw sampler output
        sample_labels: Per particle, per frame labels with singletons as clutter,
            tracks numbered by first appearance like the consensus
        joint_probabilities: Joint association probability per particle
        consensus: Greedy partitioning result
        runtime_s: Wall-clock time
    """

    config: TrackerConfig
    observations: MultiState
    sampler: SamplerResult
    sample_labels: List[List[np.ndarray]]
    joint_probabilities: np.ndarray
    consensus: ConsensusResult
    runtime_s: float = 0.0

    @property
    def num_samples(self) -> int:
        return len(self.sample_labels)

    def sample_observations(self, index: int) -> MultiState:
        """Input observations labelled by one particle."""
        return self.observations.relabel(self.sample_labels[index])

    def consensus_observations(self) -> MultiState:
        """Input observations labelled by the consensus partitioning."""
        return self.observations.relabel(self.consensus.labels)

    def to_dict(self) -> Dict[str, Any]:
        """Summary for YAML export."""
        return {
            "num_frames": self.observations.num_frames,
            "num_observations": int(self.observations.observation_counts().sum()),
            "num_samples": self.num_samples,
            "num_resamplings": self.sampler.num_resamplings,
            "mean_ess": float(np.mean(self.sampler.ess_history)) if self.sampler.ess_history else 0.0,
            "min_ess": float(np.min(self.sampler.ess_history)) if self.sampler.ess_history else 0.0,
            "consensus_tracks": self.consensus.num_tracks,
            "consensus_threshold": self.consensus.threshold,
            "pruned_edges": self.consensus.pruned_edges,
            "runtime_s": self.runtime_s,
            "parameters": self.config.to_dict(),
        }


class MultiTargetTracker:
    """
    RBMCDA tracker with IMM motion models and consensus extraction.
    """

    def __init__(self, config: TrackerConfig):
        """
        Args:
            config: Tracker configuration (validated here, resolved per run)
        """
        self.config = config.validate()

    def run(self, observations: MultiState, progress: bool = False) -> TrackingResult:
        start = time.perf_counter()

        config = self.config.resolved(observations)
        logger.info(
            "Tracking %d frames, %d samples, sqrt size range [%.3f, %.3f]",
            observations.num_frames,
            config.num_samples,
            config.sqrt_size_min,
            config.sqrt_size_max,
        )

        sampler_result = RBMCDASampler(config).run(observations, progress=progress)

        sample_labels = [
            renumber_by_first_appearance(singletons_to_clutter(p.associations))
            for p in sampler_result.particles
        ]
        joint_probabilities = sampler_result.joint_probabilities()

        consensus = ConsensusExtractor(ess_pruning=config.ess_pruning).extract(
            [p.associations for p in sampler_result.particles],
            joint_probabilities,
            [len(frame) for frame in observations],
        )

        return TrackingResult(
            config=config,
            observations=observations,
            sampler=sampler_result,
            sample_labels=sample_labels,
            joint_probabilities=joint_probabilities,
            consensus=consensus,
            runtime_s=time.perf_counter() - start,
        )
