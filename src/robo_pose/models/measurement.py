"""
Measurement models mapping a hypothesized pose to expected sensor readings.

Measurement Model:
    z(k) = h(x(k)) + V·v(k),    v(k) ~ N(0, R)

Each model is a pure function of (state, calibration). The noise covariance R
and the noise Jacobian V are fixed at construction; the measurement Jacobian
H = ∂h/∂x is recomputed from the state passed in on every call.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from ..config import AntennaCalibration, validate_covariance
from ..errors import CalibrationMisconfiguration
from ..state import HeadingMeasurement, PoseState, PositionMeasurement


class JacobianMode(Enum):
    """Linearization used by the antenna position model."""
    EXACT = "exact"          # Full trigonometric partials w.r.t. heading
    IDENTITY = "identity"    # H = [I | 0], valid only for small lever arms


class MeasurementModel(ABC):
    """
    Base class for sensor measurement models.

    Subclasses set ``dimension`` and, for components that are angles,
    ``angular_components`` so the filter wraps those innovation entries.
    """

    dimension = 0
    state_dimension = 3
    angular_components: Tuple[int, ...] = ()

    def __init__(self, measurement_noise: np.ndarray, name: Optional[str] = None):
        """
        Args:
            measurement_noise: Measurement noise covariance R
            name: Sensor name used in diagnostics (defaults to class name)

        Raises:
            CalibrationMisconfiguration: If R is inconsistent with the
                measurement dimension
        """
        self._name = name or type(self).__name__
        self._R = validate_covariance(f"{self._name} measurement noise",
                                      measurement_noise, self.dimension)
        # Noise enters additively, so V does not depend on state
        self._V = np.eye(self.dimension)

    @property
    def name(self) -> str:
        return self._name

    @property
    def measurement_noise(self) -> np.ndarray:
        """Measurement noise covariance R."""
        return self._R.copy()

    def noise_jacobian(self) -> np.ndarray:
        """V = ∂h/∂v (constant)."""
        return self._V.copy()

    @abstractmethod
    def h(self, state: PoseState):
        """Expected measurement for the given state."""

    @abstractmethod
    def measurement_jacobian(self, state: PoseState) -> np.ndarray:
        """H = ∂h/∂x evaluated at state."""


class AntennaPositionMeasurementModel(MeasurementModel):
    """
    Position of a sensor antenna mounted at a fixed lever arm.

    The antenna sits at (dx, dy) in the robot body frame (x forward, y left),
    so its world position is the reference point plus the rotated offset:

        z_x = x + cos(θ)·dx - sin(θ)·dy
        z_y = y + sin(θ)·dx + cos(θ)·dy

    Jacobian (EXACT):
        H = [[1, 0, -sin(θ)·dx - cos(θ)·dy],
             [0, 1,  cos(θ)·dx - sin(θ)·dy]]

    With JacobianMode.IDENTITY the heading column is dropped (H = [I | 0]),
    reproducing the small-offset approximation; heading is then not
    observable from this sensor.
    """

    dimension = 2

    def __init__(self, calibration: Optional[AntennaCalibration] = None,
                 measurement_noise: Optional[np.ndarray] = None,
                 jacobian_mode: JacobianMode = JacobianMode.EXACT,
                 name: Optional[str] = None):
        if calibration is None:
            calibration = AntennaCalibration()
        if not isinstance(calibration, AntennaCalibration):
            raise CalibrationMisconfiguration(
                f"Expected AntennaCalibration, got {type(calibration).__name__}")
        if measurement_noise is None:
            measurement_noise = np.eye(2) * 0.02 ** 2
        super().__init__(measurement_noise, name or "antenna_position")

        self.calibration = calibration
        self.jacobian_mode = JacobianMode(jacobian_mode)

    def h(self, state: PoseState) -> PositionMeasurement:
        dx = self.calibration.offset_x
        dy = self.calibration.offset_y
        cos_theta = np.cos(state.theta)
        sin_theta = np.sin(state.theta)
        return PositionMeasurement(
            state.x + cos_theta * dx - sin_theta * dy,
            state.y + sin_theta * dx + cos_theta * dy,
        )

    def measurement_jacobian(self, state: PoseState) -> np.ndarray:
        H = np.zeros((2, 3))
        H[0, 0] = 1.0
        H[1, 1] = 1.0
        if self.jacobian_mode is JacobianMode.IDENTITY:
            return H

        dx = self.calibration.offset_x
        dy = self.calibration.offset_y
        cos_theta = np.cos(state.theta)
        sin_theta = np.sin(state.theta)
        H[0, 2] = -sin_theta * dx - cos_theta * dy
        H[1, 2] = cos_theta * dx - sin_theta * dy
        return H


class HeadingMeasurementModel(MeasurementModel):
    """Direct heading observation, e.g. a compass or IMU yaw estimate."""

    dimension = 1
    angular_components = (0,)

    def __init__(self, measurement_noise: Optional[np.ndarray] = None,
                 name: Optional[str] = None):
        if measurement_noise is None:
            measurement_noise = np.array([[np.radians(2.0) ** 2]])
        super().__init__(measurement_noise, name or "heading")

    def h(self, state: PoseState) -> HeadingMeasurement:
        return HeadingMeasurement(state.theta)

    def measurement_jacobian(self, state: PoseState) -> np.ndarray:
        return np.array([[0.0, 0.0, 1.0]])
