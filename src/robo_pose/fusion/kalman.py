"""
Extended Kalman Filter for planar robot pose estimation.

Mathematical Foundation:
The EKF addresses the nonlinear estimation problem through linearization:

State Evolution:
    x(k+1) = f(x(k), u(k)) + W·w(k)
    z(k) = h(x(k)) + V·v(k)

Where:
    - x(k) = [px, py, θ]ᵀ is the robot pose at time k
    - f(·) is the nonlinear system model
    - h(·) is the nonlinear measurement model of one sensor
    - w(k) ~ N(0, Q) is process noise
    - v(k) ~ N(0, R) is measurement noise

EKF Recursion:
    Prediction:
        x̂(k|k-1) = f(x̂(k-1|k-1), u(k-1))
        P(k|k-1) = F P(k-1|k-1) Fᵀ + W Q Wᵀ

    Update:
        y(k) = z(k) ⊖ h(x̂(k|k-1))          (angles wrapped)
        S(k) = H P(k|k-1) Hᵀ + V R Vᵀ
        K(k) = P(k|k-1) Hᵀ S(k)⁻¹
        x̂(k|k) = x̂(k|k-1) + K(k) y(k)
        P(k|k) = covariance strategy update (Joseph form or square-root)

Failure Semantics:
    A step that cannot be carried out (non-finite input, singular innovation
    covariance, gated outlier) is rejected: the prior state and covariance
    are kept and a StepResult with the reason is returned. Nothing is raised
    for these numerical faults.

The filter is not thread-safe; callers must serialize predict/update calls on
one instance.
"""

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import numpy as np
import scipy.linalg
import scipy.stats

from ..config import FilterConfig, STATE_DIMENSION, validate_covariance, validate_vector
from ..errors import CalibrationMisconfiguration, SingularCovarianceError
from ..models.measurement import MeasurementModel
from ..models.system import SystemModel, UnicycleSystemModel
from ..state import ControlInput, PoseState, angle_difference, as_vector, wrap_angle
from .covariance import CovarianceStrategy, create_covariance
from .health import MeasurementHealth

logger = logging.getLogger(__name__)


class FilterState(Enum):
    """Enumeration of possible filter states for diagnostics."""
    INITIALIZING = "initializing"
    CONVERGED = "converged"
    DIVERGING = "diverging"
    ILL_CONDITIONED = "ill_conditioned"
    RECOVERING = "recovering"


class UpdateStatus(Enum):
    """Outcome of a single predict or update call."""
    ACCEPTED = "accepted"
    INVALID_INPUT = "invalid_input"
    SINGULAR_COVARIANCE = "singular_covariance"
    REJECTED_OUTLIER = "rejected_outlier"


@dataclass
class StepResult:
    """
    Result of a predict or update call.

    Evaluates truthy only when the step was applied.
    """
    status: UpdateStatus
    innovation: Optional[np.ndarray] = None
    mahalanobis_distance: Optional[float] = None
    message: str = ""

    @property
    def accepted(self) -> bool:
        return self.status is UpdateStatus.ACCEPTED

    def __bool__(self) -> bool:
        return self.accepted


@dataclass
class FilterDiagnostics:
    """Container for filter diagnostic information."""
    condition_number: float
    innovation_magnitude: float
    mahalanobis_distance: float
    covariance_valid: bool
    filter_state: FilterState
    prediction_count: int
    update_count: int
    rejected_count: int


def _mahalanobis_squared(S_sqrt: np.ndarray, innovation: np.ndarray) -> float:
    """d² = yᵀ S⁻¹ y = |S^-½ y|² from an already validated lower-triangular S^½."""
    whitened = scipy.linalg.solve_triangular(S_sqrt, innovation, lower=True, check_finite=False)
    return float(whitened @ whitened)


class ExtendedKalmanFilter:
    """
    Extended Kalman Filter over the planar pose (x, y, θ).

    The filter owns exactly one state estimate and one covariance
    representation. The system model is fixed at construction; any number
    of measurement models can be passed to update().

    Attributes:
        system_model: Process model used by predict()
        config: Validated construction parameters
        sensor_health: MeasurementHealth per measurement model name
    """

    def __init__(self, system_model: Optional[SystemModel] = None,
                 config: Optional[FilterConfig] = None):
        """
        Initialize Extended Kalman Filter.

        Args:
            system_model: Process model (defaults to UnicycleSystemModel)
            config: Prior and noise configuration (defaults to FilterConfig())

        Raises:
            CalibrationMisconfiguration: If the model does not match the
                state dimension
        """
        self.system_model = system_model if system_model is not None else UnicycleSystemModel()
        self.config = config if config is not None else FilterConfig()

        if not isinstance(self.system_model, SystemModel):
            raise CalibrationMisconfiguration(
                f"Expected a SystemModel, got {type(self.system_model).__name__}")
        if self.system_model.state_dimension != STATE_DIMENSION:
            raise CalibrationMisconfiguration(
                f"System model state dimension {self.system_model.state_dimension} "
                f"does not match {STATE_DIMENSION}")

        self._process_noise = self.config.process_noise.copy()
        self._gate_thresholds: Dict[int, float] = {}
        self.sensor_health: Dict[str, MeasurementHealth] = {}

        self._initialize(self.config.initial_state, self.config.initial_covariance)
        logger.info(f"Extended Kalman Filter initialized "
                    f"({self.config.covariance_form.value} covariance)")

    def _initialize(self, initial_state: np.ndarray, initial_covariance: np.ndarray) -> None:
        self._state = PoseState.from_array(initial_state)
        if self.config.wrap_heading:
            self._state = self._state.wrapped()
        self._covariance = create_covariance(self.config.covariance_form, initial_covariance)

        self._prediction_count = 0
        self._update_count = 0
        self._rejected_count = 0
        self._innovation_history = deque(maxlen=100)
        self._last_mahalanobis = 0.0
        self._filter_state = FilterState.INITIALIZING
        self.sensor_health.clear()

    @property
    def covariance(self) -> CovarianceStrategy:
        """Covariance representation (read access for diagnostics)."""
        return self._covariance

    @property
    def filter_state(self) -> FilterState:
        return self._filter_state

    def current_state(self) -> PoseState:
        """Copy of the current state estimate."""
        return self._state.copy()

    def current_covariance(self) -> np.ndarray:
        return self._covariance.matrix

    def predict(self, control: ControlInput) -> StepResult:
        """
        Prediction step of the Extended Kalman Filter.

        Implements:
            x̂⁻ = f(x̂, u)
            P⁻ = F P Fᵀ + W Q Wᵀ

        F and W are evaluated at the prior estimate.

        Args:
            control: Commanded motion for this step

        Returns:
            StepResult; INVALID_INPUT for non-finite controls or negative dt
        """
        if not isinstance(control, ControlInput):
            values = as_vector(control)
            if values.size != 3:
                raise ValueError(f"Control input must have 3 elements (v, ω, dt), got {values.size}")
            control = ControlInput(*values)

        if not control.is_finite():
            return self._reject_prediction("control input contains NaN or infinite values")
        if control.dt < 0:
            return self._reject_prediction(f"negative time step {control.dt}")

        F = self.system_model.state_jacobian(self._state, control)
        W = self.system_model.noise_jacobian(self._state, control)
        predicted = self.system_model.f(self._state, control).to_array()

        if not (np.all(np.isfinite(predicted)) and np.all(np.isfinite(F)) and np.all(np.isfinite(W))):
            return self._reject_prediction("system model produced non-finite values")

        self._covariance.predict(F, W, self._process_noise)
        self._state = self._finalize_state(predicted)

        self._prediction_count += 1
        self._check_divergence()

        logger.debug(f"Prediction step completed, dt={control.dt:.3f}s")
        return StepResult(UpdateStatus.ACCEPTED)

    def update(self, model: MeasurementModel, measurement) -> StepResult:
        """
        Update the estimate with one measurement.

        Args:
            model: Measurement model describing the sensor
            measurement: Named measurement vector or array-like of
                length model.dimension

        Returns:
            StepResult describing whether the correction was applied

        Raises:
            TypeError: If model is not a MeasurementModel
            ValueError: If the measurement has the wrong dimension
        """
        if not isinstance(model, MeasurementModel):
            raise TypeError(f"Expected a MeasurementModel, got {type(model).__name__}")

        z = as_vector(measurement)
        if z.shape != (model.dimension,):
            raise ValueError(
                f"{model.name} measurement must have {model.dimension} elements, got {z.size}")

        if not np.all(np.isfinite(z)):
            return self._reject_update(model, UpdateStatus.INVALID_INPUT,
                                       "measurement contains NaN or infinite values")

        z_predicted = as_vector(model.h(self._state))
        H = model.measurement_jacobian(self._state)
        V = model.noise_jacobian()
        R = model.measurement_noise

        innovation = z - z_predicted
        for index in model.angular_components:
            innovation[index] = angle_difference(z[index], z_predicted[index])

        if not np.all(np.isfinite(innovation)) or not np.all(np.isfinite(H)):
            return self._reject_update(model, UpdateStatus.INVALID_INPUT,
                                       "measurement model produced non-finite values")

        mahalanobis = None
        if self.config.gate_probability is not None:
            try:
                S_sqrt = self._covariance.innovation_factor(H, V, R)
            except SingularCovarianceError as exc:
                return self._reject_update(model, UpdateStatus.SINGULAR_COVARIANCE, str(exc),
                                           innovation)

            mahalanobis = _mahalanobis_squared(S_sqrt, innovation)
            threshold = self._gate_threshold(model.dimension)
            if mahalanobis > threshold:
                return self._reject_update(
                    model, UpdateStatus.REJECTED_OUTLIER,
                    f"Mahalanobis distance {mahalanobis:.2f} exceeds gate {threshold:.2f}",
                    innovation, mahalanobis)

        # Strategy update commits or raises with the covariance untouched and
        # returns a pivot-checked S^½
        try:
            K, S_sqrt = self._covariance.update(H, V, R)
        except SingularCovarianceError as exc:
            return self._reject_update(model, UpdateStatus.SINGULAR_COVARIANCE, str(exc),
                                       innovation, mahalanobis)

        if mahalanobis is None:
            mahalanobis = _mahalanobis_squared(S_sqrt, innovation)

        self._state = self._finalize_state(self._state.to_array() + K @ innovation)

        self._update_count += 1
        self._innovation_history.append(float(np.linalg.norm(innovation)))
        self._last_mahalanobis = mahalanobis
        self._health_for(model).record_acceptance()
        self._check_divergence()

        logger.debug(f"{model.name} update applied: innovation={np.linalg.norm(innovation):.4f}")
        return StepResult(UpdateStatus.ACCEPTED, innovation, mahalanobis)

    def reset(self, initial_state: Optional[np.ndarray] = None,
              initial_covariance: Optional[np.ndarray] = None) -> None:
        """
        Re-initialize the filter with a new prior.

        Args:
            initial_state: New prior mean (defaults to the configured one)
            initial_covariance: New prior covariance (defaults to the configured one)

        Raises:
            CalibrationMisconfiguration: If the prior is malformed
        """
        if initial_state is None:
            initial_state = self.config.initial_state
        if initial_covariance is None:
            initial_covariance = self.config.initial_covariance

        initial_state = validate_vector("initial_state", as_vector(initial_state), STATE_DIMENSION)
        initial_covariance = validate_covariance("initial_covariance", initial_covariance,
                                                 STATE_DIMENSION)
        self._initialize(initial_state, initial_covariance)
        logger.info("Extended Kalman Filter reset")

    def covariance_is_valid(self) -> bool:
        return self._covariance.is_valid()

    def get_pose_uncertainty(self) -> np.ndarray:
        """Standard deviations of (x, y, θ)."""
        return self._covariance.uncertainty()

    def get_diagnostics(self) -> FilterDiagnostics:
        return FilterDiagnostics(
            condition_number=self._covariance.condition_number(),
            innovation_magnitude=self._innovation_history[-1] if self._innovation_history else 0.0,
            mahalanobis_distance=self._last_mahalanobis,
            covariance_valid=self._covariance.is_valid(),
            filter_state=self._filter_state,
            prediction_count=self._prediction_count,
            update_count=self._update_count,
            rejected_count=self._rejected_count,
        )

    def get_state_dict(self) -> Dict[str, Any]:
        """
        Get state and diagnostic information as a plain dictionary.

        Returns:
            Dictionary suitable for logging or serialization
        """
        return {
            'pose': self._state.to_array().tolist(),
            'pose_uncertainty': self.get_pose_uncertainty().tolist(),
            'covariance': self._covariance.matrix.tolist(),
            'covariance_form': self._covariance.form.value,
            'prediction_count': self._prediction_count,
            'update_count': self._update_count,
            'rejected_count': self._rejected_count,
            'filter_state': self._filter_state.value,
            'condition_number': self._covariance.condition_number(),
            'sensor_health': {name: health.get_health_summary()
                              for name, health in self.sensor_health.items()},
        }

    def _finalize_state(self, values: np.ndarray) -> PoseState:
        state = PoseState.from_array(values)
        if self.config.wrap_heading:
            state.theta = float(wrap_angle(state.theta))
        return state

    def _gate_threshold(self, dimension: int) -> float:
        if dimension not in self._gate_thresholds:
            self._gate_thresholds[dimension] = float(
                scipy.stats.chi2.ppf(self.config.gate_probability, df=dimension))
        return self._gate_thresholds[dimension]

    def _health_for(self, model: MeasurementModel) -> MeasurementHealth:
        if model.name not in self.sensor_health:
            self.sensor_health[model.name] = MeasurementHealth()
        return self.sensor_health[model.name]

    def _reject_prediction(self, message: str) -> StepResult:
        self._rejected_count += 1
        logger.warning(f"Prediction rejected: {message}")
        return StepResult(UpdateStatus.INVALID_INPUT, message=message)

    def _reject_update(self, model: MeasurementModel, status: UpdateStatus, message: str,
                       innovation: Optional[np.ndarray] = None,
                       mahalanobis: Optional[float] = None) -> StepResult:
        self._rejected_count += 1
        self._health_for(model).record_rejection(status.value)
        logger.warning(f"{model.name} measurement rejected ({status.value}): {message}")
        return StepResult(status, innovation, mahalanobis, message)

    def _check_divergence(self) -> None:
        """
        Monitor the covariance for divergence.

        Divergence indicators:
        - Covariance no longer finite / PSD (or factor no longer valid)
        - Condition number above the configured limit
        """
        if not self._covariance.is_valid():
            if self._filter_state is not FilterState.DIVERGING:
                logger.warning("Filter divergence detected: covariance invariant violated")
            self._filter_state = FilterState.DIVERGING
            return

        if self._covariance.condition_number() > self.config.max_condition_number:
            if self._filter_state is not FilterState.ILL_CONDITIONED:
                logger.warning(f"Ill-conditioned covariance: "
                               f"κ={self._covariance.condition_number():.2e}")
            self._filter_state = FilterState.ILL_CONDITIONED
            return

        if self._filter_state in (FilterState.DIVERGING, FilterState.ILL_CONDITIONED):
            self._filter_state = FilterState.RECOVERING
        elif self._update_count >= 10:
            self._filter_state = FilterState.CONVERGED
