"""
Tracker Configuration

Parameter set of the RBMCDA tracker, YAML loading and fail-fast validation.

Parameter names follow the command line surface (NumSamples, Rxy, ...);
attributes use snake_case. The mapping is kept in PARAMETER_NAMES.

Usage:
    config = load_tracker_config("tracker.yaml")
    config.validate()
"""

import logging
import math
import os
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional

import numpy as np
import yaml

logger = logging.getLogger(__name__)

TRANSITION_TOLERANCE = 1e-6


class ConfigurationError(ValueError):
    """Invalid or missing tracker parameter."""

    def __init__(self, field_name: str, message: str):
        self.field = field_name
        super().__init__(f"{field_name}: {message}")


# Command line name -> attribute
PARAMETER_NAMES: Dict[str, str] = {
    "RandomSeed": "seed",
    "NumSamples": "num_samples",
    "DeltaT": "delta_t",
    "XMin": "x_min",
    "XMax": "x_max",
    "YMin": "y_min",
    "YMax": "y_max",
    "SqrtSizeMin": "sqrt_size_min",
    "SqrtSizeMax": "sqrt_size_max",
    "PDetect": "p_detect",
    "LambdaBirth": "lambda_birth",
    "LambdaClutter": "lambda_clutter",
    "LambdaDeath": "lambda_death",
    "PModelTransRwRw": "p_trans_rw_rw",
    "PModelTransRwFle": "p_trans_rw_fle",
    "PModelTransFleRw": "p_trans_fle_rw",
    "PModelTransFleFle": "p_trans_fle_fle",
    "Rxy": "r_xy",
    "Rsize": "r_size",
    "Qxy": "q_xy",
    "QxyPrev": "q_xy_prev",
    "Qsize": "q_size",
    "ESSPercentage": "ess_percentage",
    "MaxNumNeighbors": "max_num_neighbors",
    "MaxDistNeighbors": "max_dist_neighbors",
    "NoNeighborsOldAlgo": "no_neighbors_old_algo",
    "DotGraphFile": "dot_graph_file",
    "ESSPruning": "ess_pruning",
    "Workers": "workers",
}

ATTRIBUTE_NAMES: Dict[str, str] = {v: k for k, v in PARAMETER_NAMES.items()}

REQUIRED_PARAMETERS = (
    "RandomSeed",
    "NumSamples",
    "DeltaT",
    "XMin",
    "XMax",
    "YMin",
    "YMax",
    "PDetect",
    "LambdaBirth",
    "LambdaClutter",
    "LambdaDeath",
    "PModelTransRwRw",
    "PModelTransRwFle",
    "PModelTransFleRw",
    "PModelTransFleFle",
    "Rxy",
    "Rsize",
    "Qxy",
    "QxyPrev",
    "Qsize",
)


def validate_transition_rows(matrix: np.ndarray) -> None:
    """
    Check that a 2x2 model transition matrix is row-stochastic.

    Raises:
        ConfigurationError: naming the parameters of the first offending row
    """
    row_fields = (
        ("PModelTransRwRw", "PModelTransRwFle"),
        ("PModelTransFleRw", "PModelTransFleFle"),
    )
    matrix = np.asarray(matrix, dtype=np.float64)

    if matrix.shape != (2, 2):
        raise ConfigurationError("ModelTransition", f"expected 2x2 matrix, got {matrix.shape}")

    for row, names in zip(matrix, row_fields):
        for value, name in zip(row, names):
            if not np.isfinite(value) or value < 0.0 or value > 1.0:
                raise ConfigurationError(name, f"probability must lie in [0, 1], got {value}")
        if abs(row.sum() - 1.0) > TRANSITION_TOLERANCE:
            raise ConfigurationError(
                "/".join(names), f"transition row must sum to 1, got {row.sum():.8f}"
            )


@dataclass
class TrackerConfig:
    """
    Complete tracker parameter set.

    Required parameters default to None and are reported by validate().
    A negative lambda_clutter or p_detect requests estimation from the data.
    sqrt_size_min/max default to the observed range.
    """

    # Sampling
    seed: Optional[int] = None
    num_samples: Optional[int] = None
    ess_percentage: float = 0.5
    ess_pruning: bool = True
    workers: int = 1

    # Time and observation domain
    delta_t: Optional[float] = None
    x_min: Optional[float] = None
    x_max: Optional[float] = None
    y_min: Optional[float] = None
    y_max: Optional[float] = None
    sqrt_size_min: Optional[float] = None
    sqrt_size_max: Optional[float] = None

    # Detection, clutter, birth and death
    p_detect: Optional[float] = None
    lambda_birth: Optional[float] = None
    lambda_clutter: Optional[float] = None
    lambda_death: Optional[float] = None

    # Motion model transition (row-stochastic, rows RW and FLE)
    p_trans_rw_rw: Optional[float] = None
    p_trans_rw_fle: Optional[float] = None
    p_trans_fle_rw: Optional[float] = None
    p_trans_fle_fle: Optional[float] = None

    # Noise variances
    r_xy: Optional[float] = None
    r_size: Optional[float] = None
    q_xy: Optional[float] = None
    q_xy_prev: Optional[float] = None
    q_size: Optional[float] = None

    # Neighbor-limited proposals
    max_num_neighbors: int = 0
    max_dist_neighbors: float = 0.0
    no_neighbors_old_algo: bool = False

    # Outputs
    dot_graph_file: Optional[str] = None

    @property
    def transition_matrix(self) -> np.ndarray:
        return np.array(
            [
                [self.p_trans_rw_rw, self.p_trans_rw_fle],
                [self.p_trans_fle_rw, self.p_trans_fle_fle],
            ],
            dtype=np.float64,
        )

    @property
    def neighbors_limited(self) -> bool:
        """True if the candidate set is spatially restricted."""
        if self.no_neighbors_old_algo:
            return False
        return self.max_num_neighbors > 0 or self.max_dist_neighbors > 0.0

    @property
    def estimate_lambda_clutter(self) -> bool:
        return self.lambda_clutter is not None and self.lambda_clutter < 0

    @property
    def estimate_p_detect(self) -> bool:
        return self.p_detect is not None and self.p_detect < 0

    def validate(self) -> "TrackerConfig":
        """
        Fail fast on missing or inconsistent parameters.

        Returns:
            self, to allow chaining

        Raises:
            ConfigurationError: with the offending parameter name
        """
        for name in REQUIRED_PARAMETERS:
            if getattr(self, PARAMETER_NAMES[name]) is None:
                raise ConfigurationError(name, "required parameter is missing")

        if int(self.num_samples) < 1:
            raise ConfigurationError("NumSamples", f"must be >= 1, got {self.num_samples}")
        if self.delta_t <= 0:
            raise ConfigurationError("DeltaT", f"must be positive, got {self.delta_t}")
        if self.x_min >= self.x_max:
            raise ConfigurationError("XMin/XMax", f"empty range [{self.x_min}, {self.x_max}]")
        if self.y_min >= self.y_max:
            raise ConfigurationError("YMin/YMax", f"empty range [{self.y_min}, {self.y_max}]")
        if (
            self.sqrt_size_min is not None
            and self.sqrt_size_max is not None
            and self.sqrt_size_min > self.sqrt_size_max
        ):
            raise ConfigurationError(
                "SqrtSizeMin/SqrtSizeMax",
                f"empty range [{self.sqrt_size_min}, {self.sqrt_size_max}]",
            )

        if not self.estimate_p_detect and not 0.0 < self.p_detect <= 1.0:
            raise ConfigurationError("PDetect", f"must lie in (0, 1], got {self.p_detect}")

        for name in ("LambdaBirth", "LambdaDeath"):
            value = getattr(self, PARAMETER_NAMES[name])
            if value < 0 or not math.isfinite(value):
                raise ConfigurationError(name, f"must be a non-negative number, got {value}")
        if not math.isfinite(self.lambda_clutter):
            raise ConfigurationError("LambdaClutter", f"must be finite, got {self.lambda_clutter}")

        for name in ("Rxy", "Rsize", "Qxy", "QxyPrev", "Qsize"):
            value = getattr(self, PARAMETER_NAMES[name])
            if value < 0:
                raise ConfigurationError(name, f"variance must be non-negative, got {value}")
        for name in ("Rxy", "Rsize"):
            if getattr(self, PARAMETER_NAMES[name]) == 0:
                raise ConfigurationError(name, "measurement variance must be positive")

        if not 0.0 <= self.ess_percentage <= 1.0:
            raise ConfigurationError(
                "ESSPercentage", f"must lie in [0, 1], got {self.ess_percentage}"
            )
        if self.max_num_neighbors < 0:
            raise ConfigurationError(
                "MaxNumNeighbors", f"must be >= 0, got {self.max_num_neighbors}"
            )
        if self.max_dist_neighbors < 0:
            raise ConfigurationError(
                "MaxDistNeighbors", f"must be >= 0, got {self.max_dist_neighbors}"
            )
        if self.workers < 1:
            raise ConfigurationError("Workers", f"must be >= 1, got {self.workers}")

        validate_transition_rows(self.transition_matrix)
        return self

    def resolved(self, observations) -> "TrackerConfig":
        """
        Fill in data-dependent parameters.

        Sets the sqrt(size) range from the observations (widened to at least
        +-sqrt(3*Rsize) around its center) and estimates LambdaClutter and
        PDetect when they were given as negative values.

        Args:
            observations: MultiState the tracker will run on

        Returns:
            New, validated TrackerConfig
        """
        self.validate()
        updates: Dict[str, Any] = {}

        size_min, size_max = self.sqrt_size_min, self.sqrt_size_max
        if size_min is None or size_max is None:
            data_min, data_max = observations.sqrt_size_range()
            size_min = data_min if size_min is None else size_min
            size_max = data_max if size_max is None else size_max

        min_half_range = math.sqrt(3.0 * self.r_size)
        if (size_max - size_min) / 2.0 < min_half_range:
            center = (size_max + size_min) / 2.0
            size_min = center - min_half_range
            size_max = center + min_half_range
        updates["sqrt_size_min"] = size_min
        updates["sqrt_size_max"] = size_max

        counts = observations.observation_counts()
        if counts.size:
            n_targets = int(np.sort(counts)[counts.size // 2])

            if self.estimate_lambda_clutter:
                excess = np.clip(counts - n_targets, 0, None)
                updates["lambda_clutter"] = float(excess.sum() / counts.size)
                logger.info(
                    "Estimated LambdaClutter=%.4f (median #targets %d)",
                    updates["lambda_clutter"],
                    n_targets,
                )

            if self.estimate_p_detect:
                if n_targets > 0:
                    shortfall = np.clip(n_targets - counts, 0, None)
                    p_detect = 1.0 - float(shortfall.sum()) / (counts.size * n_targets)
                else:
                    p_detect = 1.0
                updates["p_detect"] = p_detect
                logger.info("Estimated PDetect=%.4f", p_detect)

        if self.estimate_lambda_clutter and "lambda_clutter" not in updates:
            updates["lambda_clutter"] = 0.0
        if self.estimate_p_detect and "p_detect" not in updates:
            updates["p_detect"] = 1.0

        return replace(self, **updates).validate()

    @property
    def domain_volume(self) -> float:
        """Volume of the uniform clutter/birth domain in (x, y, sqrt size)."""
        size_range = self.sqrt_size_max - self.sqrt_size_min
        return (self.x_max - self.x_min) * (self.y_max - self.y_min) * size_range

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TrackerConfig":
        """
        Build a configuration from CLI-style or attribute keys.

        Raises:
            ConfigurationError: for unknown keys
        """
        attribute_names = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}

        for key, value in data.items():
            if key in PARAMETER_NAMES:
                kwargs[PARAMETER_NAMES[key]] = value
            elif key in attribute_names:
                kwargs[key] = value
            else:
                raise ConfigurationError(str(key), "unknown parameter")

        return cls(**_coerce(kwargs))

    def to_dict(self) -> Dict[str, Any]:
        """CLI-style parameter dictionary (for YAML/HDF5 export)."""
        return {ATTRIBUTE_NAMES[k]: v for k, v in asdict(self).items()}


_INT_FIELDS = {"seed", "num_samples", "max_num_neighbors", "workers"}
_BOOL_FIELDS = {"no_neighbors_old_algo", "ess_pruning"}
_STR_FIELDS = {"dot_graph_file"}


_TRUE_STRINGS = {"true", "yes", "on", "1"}
_FALSE_STRINGS = {"false", "no", "off", "0"}


def _to_bool(value: Any) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise ValueError(f"not a boolean: {value!r}")


def _coerce(kwargs: Dict[str, Any]) -> Dict[str, Any]:
    """Convert YAML scalars to the field types."""
    result = {}
    for key, value in kwargs.items():
        if value is None:
            result[key] = None
            continue
        try:
            if key in _INT_FIELDS:
                result[key] = int(value)
            elif key in _BOOL_FIELDS:
                result[key] = _to_bool(value)
            elif key in _STR_FIELDS:
                result[key] = str(value)
            else:
                result[key] = float(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(ATTRIBUTE_NAMES.get(key, key), f"invalid value {value!r}") from e
    return result


def load_tracker_config(filepath: str) -> TrackerConfig:
    """
    Load tracker parameters from a YAML file.

    Keys may sit at the top level or below a 'tracker' section.

    Raises:
        FileNotFoundError: If file doesn't exist
        yaml.YAMLError: If YAML parsing fails
        ConfigurationError: For unknown keys or invalid values
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Config file not found: {filepath}")

    with open(filepath, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigurationError("config", f"expected a mapping in {filepath}")

    section = data.get("tracker", data)
    return TrackerConfig.from_mapping(section)
