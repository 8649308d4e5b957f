"""
Particle Resampling

Effective Sample Size (ESS) monitoring and ancestor selection.

    ESS = 1 / sum(w_i^2)   for normalized weights w

Resampling is triggered iff ESS < ESSPercentage * N. Systematic resampling
draws one uniform offset and N evenly spaced pointers into the cumulative
weights; multinomial resampling is kept for comparison.

Lineage is stored per generation as an integer array of parent indices.

Reference:
    - Kitagawa, G. "Monte Carlo Filter and Smoother for Non-Gaussian
      Nonlinear State Space Models", 1996
    - Douc, R. and Cappe, O. "Comparison of Resampling Schemes for
      Particle Filtering", 2005
"""

from dataclasses import dataclass, field
from typing import List

import numpy as np
from scipy.special import logsumexp


def normalize_log_weights(log_weights: np.ndarray) -> np.ndarray:
    """
    Normalized linear weights from log weights.

    If every log weight is -inf the result is uniform.
    """
    log_weights = np.asarray(log_weights, dtype=np.float64)
    total = logsumexp(log_weights)
    if not np.isfinite(total):
        return np.full(log_weights.shape, 1.0 / log_weights.size)
    weights = np.exp(log_weights - total)
    return weights / weights.sum()


def effective_sample_size(weights: np.ndarray) -> float:
    """ESS of normalized weights, in [1, N]; exactly N for equal weights."""
    weights = np.asarray(weights, dtype=np.float64)
    n = weights.size
    if n == 0:
        return 0.0
    if np.ptp(weights) == 0:
        return float(n)
    return float(np.clip(1.0 / np.sum(weights**2), 1.0, n))


def should_resample(weights: np.ndarray, ess_percentage: float) -> bool:
    """True iff ESS < ess_percentage * N."""
    return effective_sample_size(weights) < ess_percentage * len(weights)


def systematic_resample(weights: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """
    Systematic resampling.

    Args:
        weights: Normalized weights
        rng: Random generator

    Returns:
        Ancestor index for each of the N new particles (non-decreasing)
    """
    weights = np.asarray(weights, dtype=np.float64)
    n = weights.size
    positions = (rng.random() + np.arange(n)) / n

    cumulative = np.cumsum(weights)
    cumulative[-1] = 1.0  # guard against round-off
    return np.searchsorted(cumulative, positions, side="right").clip(max=n - 1)


def multinomial_resample(weights: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """Multinomial resampling: N independent draws proportional to weight."""
    weights = np.asarray(weights, dtype=np.float64)
    return np.sort(rng.choice(weights.size, size=weights.size, p=weights))


@dataclass
class Lineage:
    """
    Resampling ancestry of the particle set.

    generations[g][i] is the index (in generation g) of the parent of
    particle i in generation g + 1.
    """

    num_particles: int
    generations: List[np.ndarray] = field(default_factory=list)
    frames: List[int] = field(default_factory=list)

    def record(self, frame: int, parents: np.ndarray) -> None:
        self.generations.append(np.asarray(parents, dtype=np.int64).copy())
        self.frames.append(frame)

    @property
    def num_generations(self) -> int:
        return len(self.generations) + 1

    def ancestors_of(self, index: int) -> List[int]:
        """Ancestor indices of a current particle, oldest generation first."""
        path = [index]
        for parents in reversed(self.generations):
            path.append(int(parents[path[-1]]))
        return list(reversed(path))

    def as_array(self) -> np.ndarray:
        """Parent indices stacked to (generations, N)."""
        if not self.generations:
            return np.zeros((0, self.num_particles), dtype=np.int64)
        return np.stack(self.generations)
