"""
Process and measurement models for robo pose.

Models are pure: they map a state (and control) to predictions and return
their Jacobians evaluated at that state, holding no per-step data.
"""

from .measurement import (AntennaPositionMeasurementModel, HeadingMeasurementModel,
                          JacobianMode, MeasurementModel)
from .system import SystemModel, UnicycleSystemModel

__all__ = [
    "SystemModel",
    "UnicycleSystemModel",
    "MeasurementModel",
    "AntennaPositionMeasurementModel",
    "HeadingMeasurementModel",
    "JacobianMode",
]
