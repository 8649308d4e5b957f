"""
RBMCDA Sampler

Rao-Blackwellized Monte Carlo Data Association: a particle filter over
observation-to-target associations. Each particle carries one complete
association history and one bank of IMM target filters that track the
continuous states analytically.

Per frame and particle:
    1. Death:     each live target dies with 1 - exp(-dt * LambdaDeath * tau)
    2. Predict:   IMM mixing and prediction of every live target
    3. Propose:   per observation, sample target / BIRTH / CLUTTER
                  proportional to the candidate scores
    4. Weight:    add log sum of the candidate scores (optimal proposal)
                  plus log(1 - PDetect) per undetected live target
Then, across particles (synchronization barrier):
    5. Normalize weights
    6. Resample systematically if ESS < ESSPercentage * N

Every observation of the first frame starts a new target.

Reference:
    - Sarkka, S., Vehtari, A. and Lampinen, J. "Rao-Blackwellized Particle
      Filter for Multiple Target Tracking", Information Fusion, 2007
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
from scipy.special import logsumexp
from tqdm import tqdm

from rbmcda.config import TrackerConfig
from rbmcda.datatypes import BIRTH, CLUTTER, MultiState
from rbmcda.tracking.candidates import CandidateBuilder
from rbmcda.tracking.imm import IMMFilter, IMMState
from rbmcda.tracking.resampling import (
    Lineage,
    effective_sample_size,
    normalize_log_weights,
    should_resample,
    systematic_resample,
)

logger = logging.getLogger(__name__)


@dataclass
class Particle:
    """
    One association hypothesis.

    Attributes:
        associations: Per frame, the target ID (>= 1) or CLUTTER (0) of every observation
        targets: Live IMM target filters by target ID
        log_weight: Log importance weight
        next_id: ID given to the next newborn target
        log_proposals: Per frame, log probability of the sampled associations
        rng: Random generator owned by this particle
    """

    associations: List[np.ndarray] = field(default_factory=list)
    targets: Dict[int, IMMState] = field(default_factory=dict)
    log_weight: float = 0.0
    next_id: int = 1
    log_proposals: List[float] = field(default_factory=list)
    rng: Optional[np.random.Generator] = field(default=None, repr=False)

    def copy(self, rng: np.random.Generator) -> "Particle":
        """Deep copy with a new random generator."""
        return Particle(
            associations=[a.copy() for a in self.associations],
            targets={tid: state.copy() for tid, state in self.targets.items()},
            log_weight=self.log_weight,
            next_id=self.next_id,
            log_proposals=list(self.log_proposals),
            rng=rng,
        )

    @property
    def log_joint_proposal(self) -> float:
        return float(sum(self.log_proposals))


@dataclass
class SamplerResult:
    """
    Outcome of a sampler run.

    Attributes:
        particles: Final particle set
        weights: Final normalized importance weights
        ess_history: ESS after normalization, per frame
        resampled: Whether resampling ran, per frame
        lineage: Resampling ancestry
        num_frames: Length of the processed sequence
    """

    particles: List[Particle]
    weights: np.ndarray
    ess_history: List[float] = field(default_factory=list)
    resampled: List[bool] = field(default_factory=list)
    lineage: Optional[Lineage] = None
    num_frames: int = 0

    @property
    def num_samples(self) -> int:
        return len(self.particles)

    @property
    def num_resamplings(self) -> int:
        return int(sum(self.resampled))

    def joint_log_probabilities(self) -> np.ndarray:
        """Log joint association probability per particle, normalized over particles."""
        log_q = np.array([p.log_joint_proposal for p in self.particles])
        return log_q - logsumexp(log_q)

    def joint_probabilities(self) -> np.ndarray:
        return normalize_log_weights(
            np.array([p.log_joint_proposal for p in self.particles])
        )

    def labels(self, index: int) -> List[np.ndarray]:
        """Association record of one particle."""
        return self.particles[index].associations


class RBMCDASampler:
    """
    Particle filter over data associations with per-target IMM filters.

    Example:
        >>> config = load_tracker_config("tracker.yaml").resolved(observations)
        >>> sampler = RBMCDASampler(config)
        >>> result = sampler.run(observations)
        >>> result.weights.sum()
        1.0
    """

    def __init__(self, config: TrackerConfig) -> None:
        """
        Args:
            config: Resolved, validated tracker configuration
        """
        self.config = config
        self.num_samples = int(config.num_samples)
        self.dt = float(config.delta_t)
        self.imm = IMMFilter.from_config(config)
        self.builder = CandidateBuilder(config, self.imm)

        self._seed_sequence = np.random.SeedSequence(config.seed)
        self._rng = np.random.default_rng(self._seed_sequence.spawn(1)[0])

    def _spawn_generators(self, n: int) -> List[np.random.Generator]:
        return [np.random.default_rng(s) for s in self._seed_sequence.spawn(n)]

    def initialize(self, observations: MultiState) -> List[Particle]:
        """
        Create the particle set and start one target per observation of frame 0.
        """
        particles = [
            Particle(log_weight=-math.log(self.num_samples), rng=rng)
            for rng in self._spawn_generators(self.num_samples)
        ]

        if observations.num_frames == 0:
            return particles

        Z = observations[0].as_array()
        for particle in particles:
            labels = np.arange(1, Z.shape[0] + 1, dtype=np.int64)
            for m, target_id in enumerate(labels):
                particle.targets[int(target_id)] = self.imm.initialize(Z[m], frame=0)
            particle.next_id = Z.shape[0] + 1
            particle.associations.append(labels)
            particle.log_proposals.append(0.0)

        return particles

    def _apply_death(self, particle: Particle) -> None:
        """Sample target death from the exponential survival model."""
        rate = self.dt * self.config.lambda_death
        if rate <= 0 or not particle.targets:
            return

        for target_id in sorted(particle.targets):
            tau = particle.targets[target_id].time_since_observed
            p_death = 1.0 - math.exp(-rate * tau)
            if p_death > 0 and particle.rng.random() < p_death:
                del particle.targets[target_id]

    def step_particle(self, particle: Particle, t: int, Z: np.ndarray) -> float:
        """
        Propagate one particle through frame t.

        Args:
            particle: Particle to update in place
            t: Frame index
            Z: Observations of frame t, shape (M, 3)

        Returns:
            Log weight increment of this frame
        """
        # 1. Death
        self._apply_death(particle)

        # 2. Predict
        particle.targets = {
            tid: self.imm.predict(state, self.dt) for tid, state in particle.targets.items()
        }

        # 3. Propose associations in observation order
        alive = set(particle.targets)
        scores = self.builder.score_frame(particle.targets, Z)
        M = Z.shape[0]
        labels = np.zeros(M, dtype=np.int64)
        used = set()
        log_increment = 0.0
        log_proposal = 0.0

        for m in range(M):
            candidates = self.builder.build(m, scores, used)
            log_total = logsumexp(candidates.log_scores)

            if not np.isfinite(log_total):
                # Nothing is possible: keep the observation as clutter
                choice = CLUTTER
                log_increment += self.builder.log_clutter_floor
            else:
                probs = np.exp(candidates.log_scores - log_total)
                k = particle.rng.choice(len(candidates), p=probs / probs.sum())
                choice = int(candidates.options[k])
                log_increment += log_total
                log_proposal += candidates.log_scores[k] - log_total

            # 4. Update the chosen target or start a new one
            if choice == BIRTH:
                choice = particle.next_id
                particle.next_id += 1
                particle.targets[choice] = self.imm.initialize(Z[m], frame=t)
            elif choice != CLUTTER:
                particle.targets[choice], _ = self.imm.update(
                    particle.targets[choice], Z[m], frame=t
                )
                used.add(choice)

            labels[m] = choice

        # Live targets left without an observation this frame
        num_missed = len(alive - used)
        if num_missed:
            log_increment += num_missed * self.builder.log_p_miss

        particle.associations.append(labels)
        particle.log_proposals.append(float(log_proposal))
        particle.log_weight += log_increment
        return log_increment

    def _normalize(self, particles: List[Particle], t: int) -> np.ndarray:
        log_weights = np.array([p.log_weight for p in particles])
        if not np.isfinite(logsumexp(log_weights)):
            logger.warning("Frame %d: all particle weights vanished, resetting to uniform", t)

        weights = normalize_log_weights(log_weights)
        with np.errstate(divide="ignore"):
            log_normalized = np.log(weights)
        for particle, lw in zip(particles, log_normalized):
            particle.log_weight = float(lw)
        return weights

    def _resample(
        self, particles: List[Particle], weights: np.ndarray
    ) -> Tuple[List[Particle], np.ndarray]:
        ancestors = systematic_resample(weights, self._rng)
        generators = self._spawn_generators(len(particles))
        log_uniform = -math.log(len(particles))

        resampled = []
        for ancestor, rng in zip(ancestors, generators):
            child = particles[int(ancestor)].copy(rng)
            child.log_weight = log_uniform
            resampled.append(child)
        return resampled, ancestors

    def run(self, observations: MultiState, progress: bool = False) -> SamplerResult:
        """
        Process the complete observation sequence.

        Args:
            observations: Observation sequence
            progress: Show a progress bar over frames

        Returns:
            SamplerResult with the final particle set and diagnostics
        """
        particles = self.initialize(observations)
        lineage = Lineage(num_particles=self.num_samples)
        weights = np.full(self.num_samples, 1.0 / self.num_samples)
        ess_history = [effective_sample_size(weights)] if observations.num_frames else []
        resampled_flags = [False] if observations.num_frames else []

        workers = int(self.config.workers)
        executor = ThreadPoolExecutor(max_workers=workers) if workers > 1 else None

        try:
            frames = range(1, observations.num_frames)
            for t in tqdm(frames, desc="Frames", disable=not progress, leave=False):
                Z = observations[t].as_array()

                if executor is None:
                    for particle in particles:
                        self.step_particle(particle, t, Z)
                else:
                    list(executor.map(lambda p: self.step_particle(p, t, Z), particles))

                # Barrier: all weights final before any resampling decision
                weights = self._normalize(particles, t)
                ess = effective_sample_size(weights)
                ess_history.append(ess)

                do_resample = should_resample(weights, self.config.ess_percentage)
                if do_resample:
                    particles, ancestors = self._resample(particles, weights)
                    lineage.record(t, ancestors)
                    weights = np.full(self.num_samples, 1.0 / self.num_samples)
                resampled_flags.append(do_resample)

                logger.debug(
                    "Frame %d: %d observations, ESS %.2f%s",
                    t,
                    Z.shape[0],
                    ess,
                    " (resampled)" if do_resample else "",
                )
        finally:
            if executor is not None:
                executor.shutdown()

        result = SamplerResult(
            particles=particles,
            weights=weights,
            ess_history=ess_history,
            resampled=resampled_flags,
            lineage=lineage,
            num_frames=observations.num_frames,
        )
        logger.info(
            "Processed %d frames with %d particles, %d resamplings",
            observations.num_frames,
            self.num_samples,
            result.num_resamplings,
        )
        return result
