"""
Observation Data Types

Containers for the observation time series processed by the tracker.

    Observation  - one detection: [x, y, sqrt(size)] plus target ID and model tag
    Frame        - all observations at one discrete time step
    MultiState   - the complete, immutable sequence of frames

Target ID 0 marks clutter. Model tag -1 means the motion model is unknown.
"""

from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Dict, Iterator, List, Sequence, Tuple

import numpy as np

# Association codes used by the sampler's candidate space
CLUTTER = 0
BIRTH = -1

UNKNOWN_MODEL = -1


class MotionModel(IntEnum):
    """Closed set of motion models carried by the IMM bank."""

    RANDOM_WALK = 0
    FIRST_ORDER_LINEAR_EXTRAPOLATION = 1

    @property
    def short_name(self) -> str:
        return "RW" if self is MotionModel.RANDOM_WALK else "FLE"


@dataclass(frozen=True)
class Observation:
    """
    Single observation.

    Attributes:
        x, y: Position of the observed object
        sqrt_size: Square root of the observed object's area
        target_id: Associated target (0 = clutter)
        model: Motion model tag (-1 = unknown)
    """

    x: float
    y: float
    sqrt_size: float
    target_id: int = CLUTTER
    model: int = UNKNOWN_MODEL

    @property
    def vector(self) -> np.ndarray:
        return np.array([self.x, self.y, self.sqrt_size], dtype=np.float64)

    @property
    def is_clutter(self) -> bool:
        return self.target_id == CLUTTER


@dataclass(frozen=True)
class Frame:
    """Observations of one time step, in a fixed order."""

    t: int
    observations: Tuple[Observation, ...] = ()

    def __len__(self) -> int:
        return len(self.observations)

    def __iter__(self) -> Iterator[Observation]:
        return iter(self.observations)

    def __getitem__(self, m: int) -> Observation:
        return self.observations[m]

    def as_array(self) -> np.ndarray:
        """Observation vectors stacked to an (M, 3) array."""
        if not self.observations:
            return np.zeros((0, 3), dtype=np.float64)
        return np.array([[o.x, o.y, o.sqrt_size] for o in self.observations], dtype=np.float64)

    @property
    def target_ids(self) -> List[int]:
        return [o.target_id for o in self.observations]


@dataclass(frozen=True)
class MultiState:
    """
    Complete observation sequence.

    Immutable once created. Relabelling returns a new instance.
    """

    frames: Tuple[Frame, ...] = field(default_factory=tuple)
    delta_t: float = 1.0

    @classmethod
    def from_lists(
        cls, frames: Sequence[Sequence[Observation]], delta_t: float = 1.0
    ) -> "MultiState":
        return cls(
            frames=tuple(Frame(t=t, observations=tuple(obs)) for t, obs in enumerate(frames)),
            delta_t=delta_t,
        )

    def __len__(self) -> int:
        return len(self.frames)

    def __iter__(self) -> Iterator[Frame]:
        return iter(self.frames)

    def __getitem__(self, t: int) -> Frame:
        return self.frames[t]

    @property
    def num_frames(self) -> int:
        return len(self.frames)

    def observation_counts(self) -> np.ndarray:
        return np.array([len(f) for f in self.frames], dtype=np.int64)

    def sqrt_size_range(self) -> Tuple[float, float]:
        """Minimum and maximum sqrt(size) over all observations."""
        sizes = [o.sqrt_size for f in self.frames for o in f]
        if not sizes:
            return 0.0, 0.0
        return float(min(sizes)), float(max(sizes))

    def labels(self) -> List[List[int]]:
        return [f.target_ids for f in self.frames]

    def relabel(self, labels: Sequence[Sequence[int]]) -> "MultiState":
        """
        Return a copy with target IDs replaced.

        Args:
            labels: Per-frame sequences of target IDs, one per observation

        Returns:
            New MultiState with identical observation vectors
        """
        if len(labels) != len(self.frames):
            raise ValueError(
                f"Label frame count {len(labels)} does not match {len(self.frames)} frames"
            )

        frames = []
        for frame, frame_labels in zip(self.frames, labels):
            if len(frame_labels) != len(frame):
                raise ValueError(
                    f"Frame {frame.t}: {len(frame_labels)} labels for {len(frame)} observations"
                )
            frames.append(
                Frame(
                    t=frame.t,
                    observations=tuple(
                        replace(obs, target_id=int(label))
                        for obs, label in zip(frame.observations, frame_labels)
                    ),
                )
            )
        return MultiState(frames=tuple(frames), delta_t=self.delta_t)

    def to_tracks(self) -> Tuple[Dict[int, List[Tuple[int, int]]], List[Tuple[int, int]]]:
        """
        Group observation indices by target ID.

        Returns:
            (tracks, clutter) where tracks maps target ID to its (t, m) pairs in
            time order and clutter lists the (t, m) pairs labelled 0
        """
        tracks: Dict[int, List[Tuple[int, int]]] = {}
        clutter: List[Tuple[int, int]] = []

        for t, frame in enumerate(self.frames):
            for m, obs in enumerate(frame):
                if obs.target_id == CLUTTER:
                    clutter.append((t, m))
                else:
                    tracks.setdefault(obs.target_id, []).append((t, m))

        return tracks, clutter
