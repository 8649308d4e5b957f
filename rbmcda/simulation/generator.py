"""
Observation Series Generator

Generates synthetic, labelled observation sequences for testing the tracker.

Model:
    - Initial targets placed uniformly in the domain, sizes uniform in
      [SqrtSizeMin, SqrtSizeMax]
    - Motion: RandomWalk / FirstOrderLinearExtrapolation with Markov
      switching by the model transition matrix
    - Detection: Bernoulli(PDetect) per target and frame
    - Clutter: Poisson(LambdaClutter) uniform observations per frame
      (none in the first frame)
    - Birth: Poisson(LambdaBirth) new targets per frame
    - Death: probability 1 - exp(-dt * LambdaDeath * tau), tau = time since
      the target was last detected

Usage:
    config = GeneratorConfig(num_frames=50, num_initial_targets=3, seed=1)
    series = ObservationSeriesGenerator(config).generate()
    series.observations  # MultiState with groundtruth IDs
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from rbmcda.datatypes import CLUTTER, UNKNOWN_MODEL, MotionModel, MultiState, Observation
from rbmcda.tracking.motion_models import ModelTransition, MotionModelBank

logger = logging.getLogger(__name__)


@dataclass
class GeneratorConfig:
    """
    Parameters of the synthetic observation generator.

    Attributes mirror the tracker parameters of the same meaning.
    """

    # Sequence and domain
    num_frames: int = 50
    delta_t: float = 1.0
    x_min: float = 0.0
    x_max: float = 100.0
    y_min: float = 0.0
    y_max: float = 100.0
    sqrt_size_min: float = 2.0
    sqrt_size_max: float = 6.0

    # Targets, detection, clutter
    num_initial_targets: int = 3
    p_detect: float = 1.0
    lambda_clutter: float = 0.0
    lambda_birth: float = 0.0
    lambda_death: float = 0.0

    # Motion model transition
    p_trans_rw_rw: float = 0.9
    p_trans_rw_fle: float = 0.1
    p_trans_fle_rw: float = 0.1
    p_trans_fle_fle: float = 0.9

    # Noise variances
    r_xy: float = 1.0
    r_size: float = 0.1
    q_xy: float = 1.0
    q_xy_prev: float = 0.1
    q_size: float = 0.01

    seed: Optional[int] = None


@dataclass
class GeneratedSeries:
    """Generated observations plus bookkeeping."""

    observations: MultiState
    num_clutter: int = 0
    num_births: int = 0
    num_deaths: int = 0
    num_missed: int = 0
    max_target_id: int = 0
    frames_of_death: List[int] = field(default_factory=list)


@dataclass
class _Target:
    target_id: int
    model: MotionModel
    x: np.ndarray
    tau: float = 0.0


class ObservationSeriesGenerator:
    """Synthetic multi-target observation sequences with known associations."""

    def __init__(self, config: GeneratorConfig):
        self.config = config
        self.transition = ModelTransition(
            config.p_trans_rw_rw, config.p_trans_rw_fle, config.p_trans_fle_rw, config.p_trans_fle_fle
        )
        self.bank = MotionModelBank(
            q_xy=config.q_xy,
            q_xy_prev=config.q_xy_prev,
            q_size=config.q_size,
            r_xy=config.r_xy,
            r_size=config.r_size,
        )
        self.rng = np.random.default_rng(config.seed)

    def _uniform_observation_vector(self) -> np.ndarray:
        c = self.config
        return np.array(
            [
                self.rng.uniform(c.x_min, c.x_max),
                self.rng.uniform(c.y_min, c.y_max),
                self.rng.uniform(c.sqrt_size_min, c.sqrt_size_max),
            ]
        )

    def _new_target(self, target_id: int) -> _Target:
        # Stationary distribution of the model Markov chain
        P = self.transition.matrix
        p_rw = P[1, 0] / (P[0, 1] + P[1, 0]) if (P[0, 1] + P[1, 0]) > 0 else 0.5
        model = (
            MotionModel.RANDOM_WALK
            if self.rng.random() < p_rw
            else MotionModel.FIRST_ORDER_LINEAR_EXTRAPOLATION
        )

        x, y, s = self._uniform_observation_vector()
        x_prev, y_prev = x, y
        if model is MotionModel.FIRST_ORDER_LINEAR_EXTRAPOLATION:
            x_prev += self.rng.uniform(-1.0, 1.0) * self.config.delta_t
            y_prev += self.rng.uniform(-1.0, 1.0) * self.config.delta_t

        return _Target(target_id=target_id, model=model, x=np.array([x, y, x_prev, y_prev, s]))

    def _move(self, target: _Target) -> None:
        c = self.config
        row = self.transition.matrix[int(target.model)]
        target.model = MotionModel(int(self.rng.choice(len(row), p=row)))

        F = self.bank.transition_matrix(target.model)
        Q = self.bank.process_noise(c.delta_t)
        target.x = F @ target.x + self.rng.multivariate_normal(np.zeros(len(target.x)), Q)
        target.x[4] = min(max(target.x[4], c.sqrt_size_min), c.sqrt_size_max)

    def _observe(self, target: _Target) -> Observation:
        c = self.config
        z = self.bank.H @ target.x + self.rng.multivariate_normal(np.zeros(3), self.bank.R)
        sqrt_size = min(max(z[2], c.sqrt_size_min), c.sqrt_size_max)
        return Observation(
            x=float(z[0]),
            y=float(z[1]),
            sqrt_size=float(sqrt_size),
            target_id=target.target_id,
            model=int(target.model),
        )

    def generate(self) -> GeneratedSeries:
        c = self.config
        targets = [self._new_target(i + 1) for i in range(c.num_initial_targets)]
        next_id = c.num_initial_targets + 1

        series = GeneratedSeries(observations=MultiState())
        frames = []

        for t in range(c.num_frames):
            if t > 0:
                # Death
                survivors = []
                for target in targets:
                    p_death = 1.0 - math.exp(-c.delta_t * c.lambda_death * target.tau)
                    if self.rng.random() < p_death:
                        series.num_deaths += 1
                        series.frames_of_death.append(t)
                    else:
                        survivors.append(target)
                targets = survivors

                # Motion
                for target in targets:
                    self._move(target)

                # Birth
                for _ in range(self.rng.poisson(c.lambda_birth) if c.lambda_birth > 0 else 0):
                    targets.append(self._new_target(next_id))
                    next_id += 1
                    series.num_births += 1

            frame: List[Observation] = []
            for target in targets:
                if self.rng.random() < c.p_detect:
                    frame.append(self._observe(target))
                    target.tau = 0.0
                else:
                    target.tau += c.delta_t
                    series.num_missed += 1

            if t > 0 and c.lambda_clutter > 0:
                n_clutter = int(self.rng.poisson(c.lambda_clutter))
                series.num_clutter += n_clutter
                for _ in range(n_clutter):
                    x, y, s = self._uniform_observation_vector()
                    frame.append(Observation(x, y, s, target_id=CLUTTER, model=UNKNOWN_MODEL))

            order = self.rng.permutation(len(frame))
            frames.append([frame[i] for i in order])

        series.observations = MultiState.from_lists(frames, delta_t=c.delta_t)
        series.max_target_id = next_id - 1
        logger.info(
            "Generated %d frames: %d births, %d deaths, %d clutter, %d missed",
            c.num_frames,
            series.num_births,
            series.num_deaths,
            series.num_clutter,
            series.num_missed,
        )
        return series
