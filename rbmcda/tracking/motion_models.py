"""
Motion Model Bank

Linear-Gaussian motion models for the IMM target filter.

State Vector: [x, y, x_prev, y_prev, sqrt_size]^T
    - x, y: Current position
    - x_prev, y_prev: Position at the previous time step
    - sqrt_size: Square root of the object's area

Observation: z = [x, y, sqrt_size]^T

Models:
    RandomWalk (RW):
        x_{k+1} = x_k,  x_prev_{k+1} = x_k
    FirstOrderLinearExtrapolation (FLE):
        x_{k+1} = 2 x_k - x_prev_k,  x_prev_{k+1} = x_k

Both share the process noise Q = dt * diag(Qxy, Qxy, QxyPrev, QxyPrev, Qsize)
and the measurement noise R = diag(Rxy, Rxy, Rsize).

Reference:
    - Bar-Shalom, Y. "Estimation with Applications to Tracking and Navigation", 2001
"""

from dataclasses import dataclass
from typing import Callable, Dict, Tuple

import numpy as np

from rbmcda.config import TrackerConfig, validate_transition_rows
from rbmcda.datatypes import MotionModel

STATE_DIM = 5
OBS_DIM = 3
NUM_MODELS = len(MotionModel)

LOG_2PI = float(np.log(2.0 * np.pi))


@dataclass
class KalmanState:
    """
    State container for one model-conditioned Kalman estimate.

    Attributes:
        x: State vector [x, y, x_prev, y_prev, sqrt_size]
        P: State covariance matrix (5x5)
    """

    x: np.ndarray  # State vector
    P: np.ndarray  # Covariance matrix

    def copy(self) -> "KalmanState":
        return KalmanState(x=self.x.copy(), P=self.P.copy())


def _random_walk_matrix() -> np.ndarray:
    """
    Random walk transition.

    | 1 0 0 0 0 |
    | 0 1 0 0 0 |
    | 1 0 0 0 0 |
    | 0 1 0 0 0 |
    | 0 0 0 0 1 |
    """
    F = np.zeros((STATE_DIM, STATE_DIM), dtype=np.float64)
    F[0, 0] = F[1, 1] = 1.0
    F[2, 0] = F[3, 1] = 1.0
    F[4, 4] = 1.0
    return F


def _linear_extrapolation_matrix() -> np.ndarray:
    """
    First order linear extrapolation transition.

    | 2 0 -1  0 0 |
    | 0 2  0 -1 0 |
    | 1 0  0  0 0 |
    | 0 1  0  0 0 |
    | 0 0  0  0 1 |
    """
    F = _random_walk_matrix()
    F[0, 0] = F[1, 1] = 2.0
    F[0, 2] = F[1, 3] = -1.0
    return F


TRANSITION_BUILDERS: Dict[MotionModel, Callable[[], np.ndarray]] = {
    MotionModel.RANDOM_WALK: _random_walk_matrix,
    MotionModel.FIRST_ORDER_LINEAR_EXTRAPOLATION: _linear_extrapolation_matrix,
}


class ModelTransition:
    """
    Row-stochastic 2x2 Markov matrix P(model_j at t | model_i at t-1).

    Row 0 is RandomWalk, row 1 is FirstOrderLinearExtrapolation.
    """

    def __init__(self, rw_rw: float, rw_fle: float, fle_rw: float, fle_fle: float):
        matrix = np.array([[rw_rw, rw_fle], [fle_rw, fle_fle]], dtype=np.float64)
        validate_transition_rows(matrix)
        self.matrix = matrix

    @classmethod
    def from_config(cls, config: TrackerConfig) -> "ModelTransition":
        return cls(
            config.p_trans_rw_rw,
            config.p_trans_rw_fle,
            config.p_trans_fle_rw,
            config.p_trans_fle_fle,
        )

    def __getitem__(self, index) -> float:
        return self.matrix[index]


class MotionModelBank:
    """
    Linear-Gaussian dynamics and observation model shared by all targets.

    Example:
        >>> bank = MotionModelBank(q_xy=1.0, q_xy_prev=1.0, q_size=0.1, r_xy=2.0, r_size=0.5)
        >>> state = bank.initialize([10.0, 20.0, 3.0])
        >>> predicted = bank.predict(state, MotionModel.RANDOM_WALK, dt=1.0)
        >>> updated, log_lik = bank.update(predicted, [10.5, 20.2, 3.1])
    """

    def __init__(
        self,
        q_xy: float,
        q_xy_prev: float,
        q_size: float,
        r_xy: float,
        r_size: float,
    ) -> None:
        """
        Args:
            q_xy: Process noise variance of the current position
            q_xy_prev: Process noise variance of the previous position
            q_size: Process noise variance of sqrt(size)
            r_xy: Measurement noise variance of the position
            r_size: Measurement noise variance of sqrt(size)
        """
        self.q_xy = q_xy
        self.q_xy_prev = q_xy_prev
        self.q_size = q_size
        self.r_xy = r_xy
        self.r_size = r_size

        # Measurement matrix H: observe [x, y, sqrt_size]
        self.H = np.zeros((OBS_DIM, STATE_DIM), dtype=np.float64)
        self.H[0, 0] = self.H[1, 1] = self.H[2, 4] = 1.0

        self.R = np.diag([r_xy, r_xy, r_size]).astype(np.float64)

        # Stacked transition matrices, indexed by MotionModel value
        self.F = np.stack([TRANSITION_BUILDERS[m]() for m in MotionModel])

    @classmethod
    def from_config(cls, config: TrackerConfig) -> "MotionModelBank":
        return cls(
            q_xy=config.q_xy,
            q_xy_prev=config.q_xy_prev,
            q_size=config.q_size,
            r_xy=config.r_xy,
            r_size=config.r_size,
        )

    def transition_matrix(self, model: MotionModel) -> np.ndarray:
        return self.F[int(model)]

    def process_noise(self, dt: float) -> np.ndarray:
        """Process noise covariance Q for time step dt."""
        return dt * np.diag(
            [self.q_xy, self.q_xy, self.q_xy_prev, self.q_xy_prev, self.q_size]
        ).astype(np.float64)

    def initial_covariance(self) -> np.ndarray:
        return np.diag([self.r_xy, self.r_xy, self.r_xy, self.r_xy, self.r_size]).astype(
            np.float64
        )

    def initialize(self, z) -> KalmanState:
        """
        Initialize a new target state from its first observation.

        The previous position equals the current one, so both models
        predict a stationary target until a second observation arrives.
        """
        z = np.asarray(z, dtype=np.float64)
        x = np.array([z[0], z[1], z[0], z[1], z[2]], dtype=np.float64)
        return KalmanState(x=x, P=self.initial_covariance())

    def predict(self, state: KalmanState, model: MotionModel, dt: float) -> KalmanState:
        """
        Predict state to next time step.

        Prediction equations:
            x_pred = F * x
            P_pred = F * P * F^T + Q

        Args:
            state: Current state
            model: Motion model to propagate with
            dt: Time step

        Returns:
            Predicted state
        """
        F = self.transition_matrix(model)
        Q = self.process_noise(dt)

        x_pred = F @ state.x
        P_pred = F @ state.P @ F.T + Q

        return KalmanState(x=x_pred, P=P_pred)

    def innovation(self, state: KalmanState) -> Tuple[np.ndarray, np.ndarray]:
        """Predicted observation and innovation covariance S = H P H^T + R."""
        z_pred = self.H @ state.x
        S = self.H @ state.P @ self.H.T + self.R
        return z_pred, S

    def update(self, state: KalmanState, z) -> Tuple[KalmanState, float]:
        """
        Update state with an observation.

        Update equations:
            y = z - H * x          (innovation)
            S = H * P * H^T + R    (innovation covariance)
            K = P * H^T * S^-1     (Kalman gain)
            x_new = x + K * y
            P_new = (I - K H) P (I - K H)^T + K R K^T   (Joseph form)

        Returns:
            (updated state, log-likelihood of z under the predictive density)
        """
        z = np.asarray(z, dtype=np.float64)
        z_pred, S = self.innovation(state)
        y = z - z_pred

        S_inv = np.linalg.inv(S)
        K = state.P @ self.H.T @ S_inv

        x_new = state.x + K @ y

        I_KH = np.eye(STATE_DIM) - K @ self.H
        P_new = I_KH @ state.P @ I_KH.T + K @ self.R @ K.T

        return KalmanState(x=x_new, P=P_new), gaussian_log_pdf(y, S, S_inv)


def gaussian_log_pdf(residual: np.ndarray, S: np.ndarray, S_inv: np.ndarray = None) -> float:
    """Log density of a zero-mean Gaussian with covariance S at residual."""
    if S_inv is None:
        S_inv = np.linalg.inv(S)
    _, logdet = np.linalg.slogdet(S)
    mahalanobis = float(residual @ S_inv @ residual)
    return -0.5 * (mahalanobis + logdet + residual.shape[0] * LOG_2PI)
