"""
Sensor fusion algorithms for robo pose.

This module implements the Extended Kalman Filter core, its interchangeable
covariance representations and per-sensor health tracking.
"""

from .covariance import (CovarianceStrategy, SquareRootCovariance, StandardCovariance,
                         create_covariance)
from .health import MeasurementHealth
from .kalman import (ExtendedKalmanFilter, FilterDiagnostics, FilterState, StepResult,
                     UpdateStatus)

__all__ = [
    "ExtendedKalmanFilter",
    "FilterDiagnostics",
    "FilterState",
    "StepResult",
    "UpdateStatus",
    "CovarianceStrategy",
    "StandardCovariance",
    "SquareRootCovariance",
    "create_covariance",
    "MeasurementHealth",
]
