"""
Tracking Module

RBMCDA multi-target tracking with an IMM motion model bank.

Components:
    - MotionModelBank: RandomWalk / FirstOrderLinearExtrapolation Kalman algebra
    - IMMFilter: Interacting Multiple Model target filter
    - CandidateBuilder: Neighbor-limited association candidates
    - RBMCDASampler: Particle filter over data associations
    - ConsensusExtractor: Greedy partitioning of all particles' tracks
    - MultiTargetTracker: Complete pipeline

Example:
    >>> from rbmcda.tracking import MultiTargetTracker
    >>> tracker = MultiTargetTracker(config)
    >>> result = tracker.run(observations)
"""

from .candidates import CandidateBuilder, CandidateSet
from .consensus import ConsensusExtractor, GreedyPartitioner, ObservationGraph
from .imm import IMMFilter, IMMState
from .motion_models import KalmanState, ModelTransition, MotionModelBank
from .resampling import Lineage, effective_sample_size, systematic_resample
from .sampler import Particle, RBMCDASampler, SamplerResult
from .tracker import MultiTargetTracker, TrackingResult

__all__ = [
    "KalmanState",
    "MotionModelBank",
    "ModelTransition",
    "IMMFilter",
    "IMMState",
    "CandidateBuilder",
    "CandidateSet",
    "Particle",
    "RBMCDASampler",
    "SamplerResult",
    "Lineage",
    "effective_sample_size",
    "systematic_resample",
    "ConsensusExtractor",
    "GreedyPartitioner",
    "ObservationGraph",
    "MultiTargetTracker",
    "TrackingResult",
]
