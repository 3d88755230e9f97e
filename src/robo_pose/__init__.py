"""
Robo Pose: Planar Robot Pose Estimation with an Extended Kalman Filter

A scientific Python package that fuses a nonlinear motion model with
nonlinear sensor observations to estimate a mobile robot's 2D pose
(x, y, heading).

This package implements:
- Pose, control and measurement vector types with angle wrapping
- A unicycle system model with analytic Jacobians
- Antenna (lever-arm) position and heading measurement models
- Interchangeable standard and square-root covariance representations
- An EKF core with measurement rejection instead of NaN propagation
"""

from .config import AntennaCalibration, CovarianceForm, FilterConfig
from .errors import CalibrationMisconfiguration, SingularCovarianceError
from .fusion.kalman import ExtendedKalmanFilter, StepResult, UpdateStatus
from .models.measurement import (AntennaPositionMeasurementModel, HeadingMeasurementModel,
                                 JacobianMode)
from .models.system import UnicycleSystemModel
from .state import ControlInput, HeadingMeasurement, PoseState, PositionMeasurement

__version__ = "1.0.0"
__author__ = "Robo Localization Team"

__all__ = [
    "AntennaCalibration",
    "CovarianceForm",
    "FilterConfig",
    "CalibrationMisconfiguration",
    "SingularCovarianceError",
    "ExtendedKalmanFilter",
    "StepResult",
    "UpdateStatus",
    "AntennaPositionMeasurementModel",
    "HeadingMeasurementModel",
    "JacobianMode",
    "UnicycleSystemModel",
    "ControlInput",
    "HeadingMeasurement",
    "PoseState",
    "PositionMeasurement",
]
