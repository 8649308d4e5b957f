"""
Shared fixtures for the RBMCDA test suite.
"""

import os
import sys

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rbmcda.config import TrackerConfig
from rbmcda.datatypes import MultiState, Observation

BASE_PARAMETERS = {
    "RandomSeed": 1,
    "NumSamples": 10,
    "DeltaT": 1.0,
    "XMin": 0.0,
    "XMax": 100.0,
    "YMin": 0.0,
    "YMax": 100.0,
    "SqrtSizeMin": 0.0,
    "SqrtSizeMax": 6.0,
    "PDetect": 0.9,
    "LambdaBirth": 0.1,
    "LambdaClutter": 0.5,
    "LambdaDeath": 0.05,
    "PModelTransRwRw": 0.9,
    "PModelTransRwFle": 0.1,
    "PModelTransFleRw": 0.1,
    "PModelTransFleFle": 0.9,
    "Rxy": 1.0,
    "Rsize": 0.1,
    "Qxy": 1.0,
    "QxyPrev": 0.1,
    "Qsize": 0.01,
}


@pytest.fixture
def make_config():
    """Factory for a valid TrackerConfig with CLI-name overrides."""

    def _make(**overrides) -> TrackerConfig:
        values = dict(BASE_PARAMETERS)
        values.update(overrides)
        return TrackerConfig.from_mapping(values)

    return _make


def track_sequence(positions, sqrt_size=3.0):
    """
    MultiState from per-frame lists of (x, y, target_id) tuples.
    """
    frames = []
    for frame in positions:
        frames.append(
            [Observation(x=float(x), y=float(y), sqrt_size=sqrt_size, target_id=tid) for x, y, tid in frame]
        )
    return MultiState.from_lists(frames)


@pytest.fixture
def two_target_sequence():
    """Two well separated targets moving right, 8 frames."""
    positions = [[(10.0 + t, 20.0, 1), (10.0 + t, 80.0, 2)] for t in range(8)]
    return track_sequence(positions)


@pytest.fixture
def rng():
    return np.random.default_rng(12345)
