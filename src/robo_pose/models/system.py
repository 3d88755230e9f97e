"""
System (process) models for planar robot motion.

Process Model:
    x(k+1) = f(x(k), u(k)) + W(k)·w(k),    w(k) ~ N(0, Q)

Linearization:
    F = ∂f/∂x and W = ∂f/∂w are re-evaluated at the current estimate before
    every prediction since f is nonlinear in heading. Both are returned from
    pure functions; models hold no per-step state.

Coordinate Frames:
    - Body frame: x-forward, y-left (robot-centric)
    - World frame: fixed planar reference
"""

from abc import ABC, abstractmethod

import numpy as np

from ..state import ControlInput, PoseState


class SystemModel(ABC):
    """Nonlinear state transition with analytic Jacobians."""

    state_dimension = 3

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def f(self, state: PoseState, control: ControlInput) -> PoseState:
        """Predicted next state for the given control input."""

    @abstractmethod
    def state_jacobian(self, state: PoseState, control: ControlInput) -> np.ndarray:
        """F = ∂f/∂x evaluated at (state, control)."""

    @abstractmethod
    def noise_jacobian(self, state: PoseState, control: ControlInput) -> np.ndarray:
        """W = ∂f/∂w evaluated at (state, control)."""


class UnicycleSystemModel(SystemModel):
    """
    Constant velocity and turn rate motion over one step (exact arc).

    Mathematical Model:
        Δθ = ω·dt
        s  = sin(Δθ/2) / (Δθ/2)
        x' = x + v·dt·s·cos(θ + Δθ/2)
        y' = y + v·dt·s·sin(θ + Δθ/2)
        θ' = θ + Δθ

    This is algebraically identical to the curvature form
    x' = x + (v/ω)(sin(θ + Δθ) - sin θ) but uses numpy.sinc, which is exact
    and smooth through ω = 0, so straight-line motion needs no special case.

    Process noise is additive in the body frame (forward, lateral, heading),
    rotated into the world frame by the prior heading:
        W = [[cos θ, -sin θ, 0],
             [sin θ,  cos θ, 0],
             [0,      0,     1]]
    """

    @staticmethod
    def _arc_terms(state: PoseState, control: ControlInput):
        delta_theta = control.turn_rate * control.dt
        half = 0.5 * delta_theta
        # numpy.sinc(t) = sin(πt)/(πt)
        chord = control.velocity * control.dt * np.sinc(half / np.pi)
        mid_heading = state.theta + half
        return delta_theta, chord, mid_heading

    def f(self, state: PoseState, control: ControlInput) -> PoseState:
        delta_theta, chord, mid_heading = self._arc_terms(state, control)
        return PoseState(
            state.x + chord * np.cos(mid_heading),
            state.y + chord * np.sin(mid_heading),
            state.theta + delta_theta,
        )

    def state_jacobian(self, state: PoseState, control: ControlInput) -> np.ndarray:
        """
        Jacobian of the transition w.r.t. state.

        Only heading enters nonlinearly:
            ∂x'/∂θ = -v·dt·s·sin(θ + Δθ/2)
            ∂y'/∂θ =  v·dt·s·cos(θ + Δθ/2)
        """
        _, chord, mid_heading = self._arc_terms(state, control)
        F = np.eye(3)
        F[0, 2] = -chord * np.sin(mid_heading)
        F[1, 2] = chord * np.cos(mid_heading)
        return F

    def noise_jacobian(self, state: PoseState, control: ControlInput) -> np.ndarray:
        cos_theta = np.cos(state.theta)
        sin_theta = np.sin(state.theta)
        return np.array([
            [cos_theta, -sin_theta, 0.0],
            [sin_theta, cos_theta, 0.0],
            [0.0, 0.0, 1.0],
        ])
