"""
RBMCDA Tracker Package

Multi-target tracking of 2D observations with:
- Rao-Blackwellized Monte Carlo Data Association (particle filter over associations)
- Interacting Multiple Model filters (RandomWalk / linear extrapolation)
- Greedy consensus extraction over all particles
- Track evaluation against groundtruth
"""

from rbmcda.config import ConfigurationError, TrackerConfig, load_tracker_config
from rbmcda.datatypes import BIRTH, CLUTTER, Frame, MotionModel, MultiState, Observation
from rbmcda.io.observations import ObservationFormatError, read_observations, write_observations
from rbmcda.tracking.tracker import MultiTargetTracker, TrackingResult

__version__ = "1.0.0"
__author__ = "RBMCDA Contributors"

__all__ = [
    # Configuration
    "TrackerConfig",
    "ConfigurationError",
    "load_tracker_config",
    # Data
    "Observation",
    "Frame",
    "MultiState",
    "MotionModel",
    "CLUTTER",
    "BIRTH",
    # I/O
    "read_observations",
    "write_observations",
    "ObservationFormatError",
    # Tracking
    "MultiTargetTracker",
    "TrackingResult",
]
