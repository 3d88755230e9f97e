"""
Construction-time configuration for the pose filter and its sensor models.

All calibration constants and noise covariances are supplied here rather than
embedded in model code, so a single validated object is the source of truth
for a robot's calibration.

Validation happens in ``__post_init__``; any inconsistency raises
CalibrationMisconfiguration before a filter or model can be built.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

import numpy as np

from .errors import CalibrationMisconfiguration

STATE_DIMENSION = 3


class CovarianceForm(Enum):
    """Covariance representation used by the filter core."""
    STANDARD = "standard"
    SQUARE_ROOT = "square_root"


def validate_covariance(name: str, matrix: Any, dimension: int,
                        tolerance: float = 1e-9) -> np.ndarray:
    """
    Validate a covariance-like matrix and return it as a float array.

    The matrix must be finite, square with the declared dimension, symmetric
    and positive semi-definite (eigenvalues >= -tolerance * scale).

    Raises:
        CalibrationMisconfiguration: If any of the above does not hold
    """
    try:
        matrix = np.array(matrix, dtype=float)
    except (TypeError, ValueError) as exc:
        raise CalibrationMisconfiguration(f"{name} is not numeric: {exc}") from exc

    if matrix.shape != (dimension, dimension):
        raise CalibrationMisconfiguration(
            f"{name} must have shape ({dimension}, {dimension}), got {matrix.shape}")
    if not np.all(np.isfinite(matrix)):
        raise CalibrationMisconfiguration(f"{name} contains NaN or infinite values")

    scale = max(1.0, float(np.max(np.abs(matrix))))
    if not np.allclose(matrix, matrix.T, atol=tolerance * scale):
        raise CalibrationMisconfiguration(f"{name} must be symmetric")

    min_eigenvalue = float(np.min(np.linalg.eigvalsh(matrix)))
    if min_eigenvalue < -tolerance * scale:
        raise CalibrationMisconfiguration(
            f"{name} must be positive semi-definite, smallest eigenvalue {min_eigenvalue:.3e}")

    return matrix


def validate_vector(name: str, vector: Any, dimension: int) -> np.ndarray:
    """Validate a finite vector of the declared dimension."""
    try:
        vector = np.array(vector, dtype=float).reshape(-1)
    except (TypeError, ValueError) as exc:
        raise CalibrationMisconfiguration(f"{name} is not numeric: {exc}") from exc

    if vector.shape != (dimension,):
        raise CalibrationMisconfiguration(
            f"{name} must have {dimension} elements, got {vector.size}")
    if not np.all(np.isfinite(vector)):
        raise CalibrationMisconfiguration(f"{name} contains NaN or infinite values")
    return vector


@dataclass(frozen=True)
class AntennaCalibration:
    """
    Lever arm of a position sensor antenna in the robot frame.

    Right-handed frame: x forward, y to the left, z up.
    """

    offset_x: float = -0.01   # Distance to the front of the robot [m]
    offset_y: float = 0.03    # Distance to the left of the robot [m]

    def __post_init__(self):
        """Validate calibration offsets."""
        for label, value in (("offset_x", self.offset_x), ("offset_y", self.offset_y)):
            try:
                finite = np.isfinite(float(value))
            except (TypeError, ValueError) as exc:
                raise CalibrationMisconfiguration(
                    f"Antenna {label} must be a scalar, got {value!r}") from exc
            if not finite:
                raise CalibrationMisconfiguration(f"Antenna {label} must be finite, got {value}")

    def as_array(self) -> np.ndarray:
        return np.array([self.offset_x, self.offset_y], dtype=float)


def _default_initial_covariance() -> np.ndarray:
    return np.diag([1.0, 1.0, np.pi ** 2])


def _default_process_noise() -> np.ndarray:
    # Body frame: forward slip, lateral slip, heading drift
    return np.diag([1e-4, 1e-4, 1e-5])


@dataclass
class FilterConfig:
    """
    Filter construction parameters.

    Attributes:
        initial_state: Prior mean (x, y, theta)
        initial_covariance: Prior covariance P0 (3x3, symmetric PSD)
        process_noise: Process noise covariance Q in the robot body frame
        covariance_form: Covariance representation (standard or square-root)
        wrap_heading: Wrap theta into (-pi, pi] after every step
        gate_probability: Chi-square gate probability for innovation
            rejection, or None to accept every finite measurement
        max_condition_number: Covariance condition number regarded as
            ill-conditioned in diagnostics
    """

    initial_state: np.ndarray = field(default_factory=lambda: np.zeros(STATE_DIMENSION))
    initial_covariance: np.ndarray = field(default_factory=_default_initial_covariance)
    process_noise: np.ndarray = field(default_factory=_default_process_noise)
    covariance_form: CovarianceForm = CovarianceForm.STANDARD
    wrap_heading: bool = True
    gate_probability: Optional[float] = None
    max_condition_number: float = 1e12

    def __post_init__(self):
        """Validate dimensions and noise parameters."""
        self.initial_state = validate_vector("initial_state", self.initial_state, STATE_DIMENSION)
        self.initial_covariance = validate_covariance(
            "initial_covariance", self.initial_covariance, STATE_DIMENSION)
        self.process_noise = validate_covariance("process_noise", self.process_noise, STATE_DIMENSION)

        if not isinstance(self.covariance_form, CovarianceForm):
            try:
                self.covariance_form = CovarianceForm(self.covariance_form)
            except ValueError as exc:
                raise CalibrationMisconfiguration(
                    f"Unknown covariance form {self.covariance_form!r}") from exc

        if self.gate_probability is not None and not 0.0 < self.gate_probability < 1.0:
            raise CalibrationMisconfiguration(
                f"Gate probability must be in (0, 1), got {self.gate_probability}")
        if self.max_condition_number <= 1.0:
            raise CalibrationMisconfiguration(
                f"Maximum condition number must exceed 1, got {self.max_condition_number}")

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> 'FilterConfig':
        """
        Build a configuration from plain data (lists, strings, numbers).

        Unknown keys are rejected so that typos in calibration files fail fast.
        """
        known = set(cls.__dataclass_fields__)
        unknown = set(values) - known
        if unknown:
            raise CalibrationMisconfiguration(f"Unknown configuration keys: {sorted(unknown)}")
        return cls(**dict(values))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'initial_state': self.initial_state.tolist(),
            'initial_covariance': self.initial_covariance.tolist(),
            'process_noise': self.process_noise.tolist(),
            'covariance_form': self.covariance_form.value,
            'wrap_heading': self.wrap_heading,
            'gate_probability': self.gate_probability,
            'max_condition_number': self.max_condition_number,
        }
