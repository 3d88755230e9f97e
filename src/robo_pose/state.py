"""
Named vector types for planar pose estimation.

State Vector Definition:
    x = [px, py, θ]ᵀ ∈ ℝ³

Where:
    - [px, py]: Position of the robot reference point in world frame (m)
    - θ: Heading (rad), counter-clockwise from the world x axis

Heading is stored unwrapped; anything that forms an angle difference must go
through angle_difference() so that innovations near ±π stay small.
"""

from dataclasses import dataclass
from typing import Iterable, Union

import numpy as np

ArrayLike = Union[np.ndarray, Iterable[float]]


def wrap_angle(angle):
    """
    Wrap an angle (or array of angles) into (-π, π].

    Both -π and π map to π.
    """
    return np.pi - np.mod(np.pi - np.asarray(angle, dtype=float), 2.0 * np.pi)


def angle_difference(a, b):
    """Smallest signed difference a - b, wrapped into (-π, π]."""
    return wrap_angle(np.asarray(a, dtype=float) - np.asarray(b, dtype=float))


class NamedVector:
    """
    Fixed-dimension numeric vector with named components.

    Subclasses declare ``FIELDS``; the storage is a float numpy array that is
    copied on construction and on export so instances never alias caller data.
    No validation of values is performed.
    """

    FIELDS = ()

    def __init__(self, *values: float):
        if len(values) != len(self.FIELDS):
            raise ValueError(
                f"{type(self).__name__} takes {len(self.FIELDS)} values, got {len(values)}")
        self._data = np.array(values, dtype=float)

    @classmethod
    def from_array(cls, array: ArrayLike):
        array = np.asarray(array, dtype=float).reshape(-1)
        if array.size != len(cls.FIELDS):
            raise ValueError(
                f"{cls.__name__} array must have {len(cls.FIELDS)} elements, got {array.size}")
        return cls(*array)

    def to_array(self) -> np.ndarray:
        return self._data.copy()

    def copy(self):
        return type(self).from_array(self._data)

    def __len__(self) -> int:
        return len(self.FIELDS)

    def __eq__(self, other) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return bool(np.array_equal(self._data, other._data))

    def __repr__(self) -> str:
        parts = ", ".join(f"{name}={value:.4f}" for name, value in zip(self.FIELDS, self._data))
        return f"{type(self).__name__}({parts})"


class PoseState(NamedVector):
    """Planar robot pose (x, y, theta)."""

    FIELDS = ("x", "y", "theta")

    X = 0
    Y = 1
    THETA = 2

    def __init__(self, x: float = 0.0, y: float = 0.0, theta: float = 0.0):
        super().__init__(x, y, theta)

    @property
    def x(self) -> float:
        """X position in meters."""
        return float(self._data[self.X])

    @x.setter
    def x(self, value: float) -> None:
        self._data[self.X] = value

    @property
    def y(self) -> float:
        """Y position in meters."""
        return float(self._data[self.Y])

    @y.setter
    def y(self, value: float) -> None:
        self._data[self.Y] = value

    @property
    def theta(self) -> float:
        """Heading in radians (not necessarily wrapped)."""
        return float(self._data[self.THETA])

    @theta.setter
    def theta(self, value: float) -> None:
        self._data[self.THETA] = value

    def wrapped(self) -> 'PoseState':
        """Copy of this pose with heading wrapped into (-π, π]."""
        return PoseState(self.x, self.y, float(wrap_angle(self.theta)))

    def __str__(self) -> str:
        return (f"PoseState(pos=[{self.x:.3f}, {self.y:.3f}], "
                f"heading={np.degrees(self.theta):.1f}°)")


@dataclass(frozen=True)
class ControlInput:
    """
    Commanded motion for one time step.

    Attributes:
        velocity: Forward speed of the reference point [m/s]
        turn_rate: Yaw rate [rad/s]
        dt: Duration of the step [s]
    """

    velocity: float = 0.0
    turn_rate: float = 0.0
    dt: float = 0.0

    @classmethod
    def from_wheel_velocities(cls, left_wheel_velocity: float, right_wheel_velocity: float,
                              wheel_base: float, dt: float) -> 'ControlInput':
        """
        Differential drive forward kinematics.

        Mathematical Model:
            v = (v_L + v_R) / 2
            ω = (v_R - v_L) / L
        """
        if wheel_base <= 0:
            raise ValueError(f"Wheel base must be positive, got {wheel_base}")
        velocity = (left_wheel_velocity + right_wheel_velocity) / 2.0
        turn_rate = (right_wheel_velocity - left_wheel_velocity) / wheel_base
        return cls(velocity, turn_rate, dt)

    def to_array(self) -> np.ndarray:
        return np.array([self.velocity, self.turn_rate, self.dt], dtype=float)

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.to_array())))


class PositionMeasurement(NamedVector):
    """Measured position of a sensor antenna in world frame."""

    FIELDS = ("x_pos", "y_pos")

    X = 0
    Y = 1

    def __init__(self, x_pos: float = 0.0, y_pos: float = 0.0):
        super().__init__(x_pos, y_pos)

    @property
    def x_pos(self) -> float:
        return float(self._data[self.X])

    @x_pos.setter
    def x_pos(self, value: float) -> None:
        self._data[self.X] = value

    @property
    def y_pos(self) -> float:
        return float(self._data[self.Y])

    @y_pos.setter
    def y_pos(self, value: float) -> None:
        self._data[self.Y] = value


class HeadingMeasurement(NamedVector):
    """Measured absolute heading (compass, IMU yaw)."""

    FIELDS = ("theta",)

    def __init__(self, theta: float = 0.0):
        super().__init__(theta)

    @property
    def theta(self) -> float:
        return float(self._data[0])

    @theta.setter
    def theta(self, value: float) -> None:
        self._data[0] = value


def as_vector(value) -> np.ndarray:
    """Convert a named vector or array-like into a flat float array."""
    if hasattr(value, "to_array"):
        return np.asarray(value.to_array(), dtype=float).reshape(-1)
    return np.asarray(value, dtype=float).reshape(-1)
