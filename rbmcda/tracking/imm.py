"""
Interacting Multiple Model (IMM) Target Filter

One IMM estimator per live target: a bank of model-conditioned Kalman
estimates weighted by model probabilities.

Per frame:
    1. Interaction (mixing) with the model transition matrix
    2. Model-conditioned prediction by dt
    3. Update with the associated observation, Bayes refresh of the
       model probabilities (skipped on a missed detection)
    4. Combination into one reported mean and covariance

Reference:
    - Blom, H. and Bar-Shalom, Y. "The Interacting Multiple Model Algorithm
      for Systems with Markovian Switching Coefficients", 1988
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
from scipy.special import logsumexp

from rbmcda.config import TrackerConfig
from rbmcda.datatypes import MotionModel
from rbmcda.tracking.motion_models import (
    LOG_2PI,
    NUM_MODELS,
    OBS_DIM,
    KalmanState,
    ModelTransition,
    MotionModelBank,
)

_TINY = 1e-300


@dataclass
class IMMState:
    """
    IMM estimate of a single target.

    Attributes:
        estimates: Model-conditioned Kalman states, indexed by MotionModel
        mode_probabilities: Model probabilities (sum to 1)
        time_since_observed: Time since the last associated observation
        birth_frame: Frame in which the target was born
        last_frame: Frame of the last associated observation
    """

    estimates: List[KalmanState]
    mode_probabilities: np.ndarray
    time_since_observed: float = 0.0
    birth_frame: int = 0
    last_frame: int = 0

    # Predictive observation densities per model, filled by predict()
    z_pred: Optional[np.ndarray] = field(default=None, repr=False)
    S_inv: Optional[np.ndarray] = field(default=None, repr=False)
    log_norm: Optional[np.ndarray] = field(default=None, repr=False)

    def copy(self) -> "IMMState":
        return IMMState(
            estimates=[e.copy() for e in self.estimates],
            mode_probabilities=self.mode_probabilities.copy(),
            time_since_observed=self.time_since_observed,
            birth_frame=self.birth_frame,
            last_frame=self.last_frame,
            z_pred=None if self.z_pred is None else self.z_pred.copy(),
            S_inv=None if self.S_inv is None else self.S_inv.copy(),
            log_norm=None if self.log_norm is None else self.log_norm.copy(),
        )

    @property
    def position(self) -> Tuple[float, float]:
        """Mode-probability weighted position estimate."""
        mean = sum(mu * e.x for mu, e in zip(self.mode_probabilities, self.estimates))
        return float(mean[0]), float(mean[1])

    @property
    def predicted_position(self) -> np.ndarray:
        """Weighted predicted observation position (x, y)."""
        if self.z_pred is None:
            return np.array(self.position)
        return self.mode_probabilities @ self.z_pred[:, :2]


class IMMFilter:
    """
    IMM filter over the RandomWalk / FirstOrderLinearExtrapolation bank.

    The filter object is stateless; all per-target data lives in IMMState.

    Example:
        >>> imm = IMMFilter.from_config(config)
        >>> state = imm.initialize([10.0, 20.0, 3.0], frame=0)
        >>> state = imm.predict(state, dt=1.0)
        >>> state, log_lik = imm.update(state, [10.4, 20.1, 3.0], frame=1)
    """

    def __init__(
        self,
        bank: MotionModelBank,
        transition: ModelTransition,
        initial_probabilities: Optional[np.ndarray] = None,
    ) -> None:
        self.bank = bank
        self.transition = transition.matrix
        if initial_probabilities is None:
            initial_probabilities = np.full(NUM_MODELS, 1.0 / NUM_MODELS)
        self.initial_probabilities = np.asarray(initial_probabilities, dtype=np.float64)

    @classmethod
    def from_config(cls, config: TrackerConfig) -> "IMMFilter":
        return cls(MotionModelBank.from_config(config), ModelTransition.from_config(config))

    def initialize(self, z, frame: int = 0) -> IMMState:
        """New target from its first observation, equal mode probabilities."""
        base = self.bank.initialize(z)
        return IMMState(
            estimates=[base.copy() for _ in MotionModel],
            mode_probabilities=self.initial_probabilities.copy(),
            time_since_observed=0.0,
            birth_frame=frame,
            last_frame=frame,
        )

    def mix(self, state: IMMState) -> Tuple[List[KalmanState], np.ndarray]:
        """
        IMM interaction step.

        Returns:
            (mixed model-conditioned states, predicted mode probabilities
            c_j = sum_i mu_i * p_ij)
        """
        mu = state.mode_probabilities
        c = mu @ self.transition

        mixed = []
        for j in range(NUM_MODELS):
            if c[j] < _TINY:
                # Unreachable model keeps its own estimate
                mixed.append(state.estimates[j].copy())
                continue

            weights = self.transition[:, j] * mu / c[j]
            x_mix = sum(w * e.x for w, e in zip(weights, state.estimates))

            P_mix = np.zeros_like(state.estimates[j].P)
            for w, e in zip(weights, state.estimates):
                d = e.x - x_mix
                P_mix += w * (e.P + np.outer(d, d))

            mixed.append(KalmanState(x=x_mix, P=P_mix))

        return mixed, c

    def predict(self, state: IMMState, dt: float) -> IMMState:
        """
        Mix and predict every model by dt.

        Also caches the per-model predictive observation densities used to
        score candidate associations.
        """
        mixed, c = self.mix(state)
        predicted = [
            self.bank.predict(est, model, dt) for est, model in zip(mixed, MotionModel)
        ]

        new_state = IMMState(
            estimates=predicted,
            mode_probabilities=c / c.sum(),
            time_since_observed=state.time_since_observed + dt,
            birth_frame=state.birth_frame,
            last_frame=state.last_frame,
        )
        self._cache_innovations(new_state)
        return new_state

    def _cache_innovations(self, state: IMMState) -> None:
        z_pred = np.empty((NUM_MODELS, OBS_DIM))
        S_inv = np.empty((NUM_MODELS, OBS_DIM, OBS_DIM))
        log_norm = np.empty(NUM_MODELS)

        for j, est in enumerate(state.estimates):
            z_j, S_j = self.bank.innovation(est)
            _, logdet = np.linalg.slogdet(S_j)
            z_pred[j] = z_j
            S_inv[j] = np.linalg.inv(S_j)
            log_norm[j] = -0.5 * (logdet + OBS_DIM * LOG_2PI)

        state.z_pred = z_pred
        state.S_inv = S_inv
        state.log_norm = log_norm

    def predictive_log_likelihoods(self, state: IMMState, Z: np.ndarray) -> np.ndarray:
        """
        Log predictive density of observations under a predicted target.

        log p(z) = log sum_j mu_j N(z; H x_j, S_j)

        Args:
            state: Predicted IMM state (after predict())
            Z: Observations, shape (M, 3)

        Returns:
            Array of M log-likelihoods
        """
        if state.z_pred is None:
            self._cache_innovations(state)

        Z = np.atleast_2d(np.asarray(Z, dtype=np.float64))
        residuals = Z[:, None, :] - state.z_pred[None, :, :]
        mahalanobis = np.einsum("mki,kij,mkj->mk", residuals, state.S_inv, residuals)
        per_model = state.log_norm[None, :] - 0.5 * mahalanobis

        with np.errstate(divide="ignore"):
            log_mu = np.log(state.mode_probabilities)
        return logsumexp(per_model + log_mu[None, :], axis=1)

    def update(self, state: IMMState, z, frame: int = 0) -> Tuple[IMMState, float]:
        """
        Update every model with observation z and refresh mode probabilities.

        Returns:
            (updated state, log predictive likelihood of z)
        """
        updated = []
        log_liks = np.empty(NUM_MODELS)
        for j, est in enumerate(state.estimates):
            new_est, log_liks[j] = self.bank.update(est, z)
            updated.append(new_est)

        with np.errstate(divide="ignore"):
            log_post = np.log(state.mode_probabilities) + log_liks
        log_total = logsumexp(log_post)

        if np.isfinite(log_total):
            mu = np.exp(log_post - log_total)
        else:
            mu = state.mode_probabilities.copy()

        new_state = IMMState(
            estimates=updated,
            mode_probabilities=mu / mu.sum(),
            time_since_observed=0.0,
            birth_frame=state.birth_frame,
            last_frame=frame,
        )
        return new_state, float(log_total)

    def combine(self, state: IMMState) -> KalmanState:
        """Moment-matched single Gaussian of the model mixture."""
        mu = state.mode_probabilities
        x = sum(w * e.x for w, e in zip(mu, state.estimates))
        P = np.zeros_like(state.estimates[0].P)
        for w, e in zip(mu, state.estimates):
            d = e.x - x
            P += w * (e.P + np.outer(d, d))
        return KalmanState(x=x, P=P)
