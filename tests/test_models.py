import pytest
import numpy as np
import sys
import os

# Add the src directory to Python path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from robo_pose.config import AntennaCalibration
from robo_pose.errors import CalibrationMisconfiguration
from robo_pose.models import (AntennaPositionMeasurementModel, HeadingMeasurementModel,
                              JacobianMode, UnicycleSystemModel)
from robo_pose.state import ControlInput, PoseState, as_vector


def numerical_jacobian(function, point, epsilon=1e-6):
    """Central finite-difference Jacobian of a vector function."""
    point = np.asarray(point, dtype=float)
    columns = []
    for i in range(point.size):
        step = np.zeros_like(point)
        step[i] = epsilon
        columns.append((function(point + step) - function(point - step)) / (2 * epsilon))
    return np.column_stack(columns)


def random_states(rng, count=25):
    states = [PoseState(*rng.uniform(-10, 10, 2), rng.uniform(-np.pi, np.pi)) for _ in range(count)]
    # Headings at and around the wrap-around point
    states += [PoseState(1.0, -2.0, theta) for theta in (np.pi, -np.pi + 1e-9, np.pi / 2, 0.0)]
    return states


class TestAntennaPositionMeasurementModel:
    """Test lever-arm antenna position measurement model"""

    def test_reference_scenario(self):
        """Heading π/2 rotates the (-0.01, 0.03) lever arm onto (-0.03, -0.01)"""
        model = AntennaPositionMeasurementModel(AntennaCalibration(offset_x=-0.01, offset_y=0.03))
        state = PoseState(0.0, 0.0, np.pi / 2)

        measurement = model.h(state)

        np.testing.assert_allclose(as_vector(measurement), [-0.03, -0.01], atol=1e-12)
        assert measurement.x_pos == pytest.approx(-0.03)
        assert measurement.y_pos == pytest.approx(-0.01)

    def test_closed_form_rotated_offset(self):
        """h reproduces the rotated-offset formula for random states"""
        rng = np.random.default_rng(1)
        dx, dy = 0.3, -0.12
        model = AntennaPositionMeasurementModel(AntennaCalibration(dx, dy))

        for state in random_states(rng):
            expected = [
                state.x + np.cos(state.theta) * dx - np.sin(state.theta) * dy,
                state.y + np.sin(state.theta) * dx + np.cos(state.theta) * dy,
            ]
            np.testing.assert_allclose(as_vector(model.h(state)), expected, atol=1e-12)

    def test_zero_offset_is_identity(self):
        """Without lever arm the antenna reports the reference point"""
        model = AntennaPositionMeasurementModel(AntennaCalibration(0.0, 0.0))
        state = PoseState(3.0, -1.0, 2.0)
        np.testing.assert_allclose(as_vector(model.h(state)), [3.0, -1.0])

    def test_exact_jacobian_matches_finite_differences(self):
        """Analytic H matches the numerical Jacobian for all tested headings"""
        rng = np.random.default_rng(2)
        model = AntennaPositionMeasurementModel(AntennaCalibration(0.3, -0.12))

        def h_of(values):
            return as_vector(model.h(PoseState.from_array(values)))

        for state in random_states(rng):
            H = model.measurement_jacobian(state)
            H_numerical = numerical_jacobian(h_of, state.to_array())
            np.testing.assert_allclose(H, H_numerical, atol=1e-6)

    def test_exact_jacobian_heading_partials(self):
        """Heading column carries the trigonometric partials"""
        dx, dy = -0.01, 0.03
        model = AntennaPositionMeasurementModel(AntennaCalibration(dx, dy))
        theta = 0.7
        H = model.measurement_jacobian(PoseState(0.0, 0.0, theta))

        np.testing.assert_allclose(H[:, :2], np.eye(2))
        assert H[0, 2] == pytest.approx(-np.sin(theta) * dx - np.cos(theta) * dy)
        assert H[1, 2] == pytest.approx(np.cos(theta) * dx - np.sin(theta) * dy)

    def test_identity_jacobian_mode(self):
        """Identity mode drops the heading column regardless of state"""
        model = AntennaPositionMeasurementModel(jacobian_mode=JacobianMode.IDENTITY)
        for theta in (0.0, 1.0, -2.5):
            H = model.measurement_jacobian(PoseState(5.0, 5.0, theta))
            np.testing.assert_allclose(H, [[1, 0, 0], [0, 1, 0]])

        assert AntennaPositionMeasurementModel(jacobian_mode="identity").jacobian_mode \
            is JacobianMode.IDENTITY

    def test_noise_jacobian_is_constant_identity(self):
        """V is identity and independent of state"""
        model = AntennaPositionMeasurementModel()
        np.testing.assert_allclose(model.noise_jacobian(), np.eye(2))
        assert model.measurement_noise.shape == (2, 2)

    def test_model_is_pure(self):
        """Repeated evaluation does not depend on call order"""
        model = AntennaPositionMeasurementModel(AntennaCalibration(0.2, 0.1))
        a = PoseState(0.0, 0.0, 0.3)
        b = PoseState(1.0, 1.0, -1.3)

        H_a = model.measurement_jacobian(a)
        model.measurement_jacobian(b)
        model.h(b)
        np.testing.assert_allclose(model.measurement_jacobian(a), H_a)

    @pytest.mark.parametrize("noise", [
        np.eye(3),
        np.array([[1.0, 0.2], [0.0, 1.0]]),
        -np.eye(2),
        np.array([[np.nan, 0.0], [0.0, 1.0]]),
    ])
    def test_inconsistent_measurement_noise(self, noise):
        """Malformed R fails at construction"""
        with pytest.raises(CalibrationMisconfiguration):
            AntennaPositionMeasurementModel(measurement_noise=noise)

    def test_wrong_calibration_type(self):
        """Calibration must be an AntennaCalibration"""
        with pytest.raises(CalibrationMisconfiguration):
            AntennaPositionMeasurementModel(calibration=(0.1, 0.2))

    def test_zero_measurement_noise_is_allowed(self):
        """A zero R is PSD and accepted"""
        model = AntennaPositionMeasurementModel(measurement_noise=np.zeros((2, 2)))
        np.testing.assert_allclose(model.measurement_noise, 0.0)


class TestHeadingMeasurementModel:
    """Test direct heading measurement model"""

    def test_heading_prediction_and_jacobian(self):
        """h returns heading and H selects it"""
        model = HeadingMeasurementModel()
        state = PoseState(1.0, 2.0, -0.4)

        assert model.h(state).theta == pytest.approx(-0.4)
        np.testing.assert_allclose(model.measurement_jacobian(state), [[0.0, 0.0, 1.0]])
        assert model.angular_components == (0,)
        assert model.name == "heading"

    def test_heading_noise_dimension(self):
        """R must be 1x1"""
        with pytest.raises(CalibrationMisconfiguration):
            HeadingMeasurementModel(measurement_noise=np.eye(2))


class TestUnicycleSystemModel:
    """Test nonlinear motion model and its Jacobians"""

    def test_straight_line_motion(self):
        """Zero turn rate integrates along the heading"""
        model = UnicycleSystemModel()
        state = PoseState(1.0, 2.0, 0.5)
        control = ControlInput(velocity=2.0, turn_rate=0.0, dt=0.5)

        predicted = model.f(state, control)

        np.testing.assert_allclose(
            predicted.to_array(),
            [1.0 + np.cos(0.5), 2.0 + np.sin(0.5), 0.5],
            atol=1e-12)

    def test_arc_motion_matches_curvature_form(self):
        """Non-zero turn rate matches x + (v/ω)(sin(θ+ωdt) - sin θ)"""
        model = UnicycleSystemModel()
        state = PoseState(-1.0, 0.5, 1.2)
        v, omega, dt = 1.5, 0.8, 0.3

        predicted = model.f(state, ControlInput(v, omega, dt))

        theta_new = state.theta + omega * dt
        expected = [
            state.x + v / omega * (np.sin(theta_new) - np.sin(state.theta)),
            state.y - v / omega * (np.cos(theta_new) - np.cos(state.theta)),
            theta_new,
        ]
        np.testing.assert_allclose(predicted.to_array(), expected, atol=1e-12)

    def test_near_zero_turn_rate_is_continuous(self):
        """Tiny turn rates approach the straight-line limit smoothly"""
        model = UnicycleSystemModel()
        state = PoseState(0.0, 0.0, 0.3)
        straight = model.f(state, ControlInput(1.0, 0.0, 0.1)).to_array()

        for omega in (1e-15, -1e-12, 1e-9, 1e-6):
            predicted = model.f(state, ControlInput(1.0, omega, 0.1)).to_array()
            assert np.all(np.isfinite(predicted))
            np.testing.assert_allclose(predicted, straight, atol=1e-6)

    def test_zero_control_is_stationary(self):
        """Zero velocity and turn rate leave the state unchanged"""
        model = UnicycleSystemModel()
        state = PoseState(3.0, -4.0, 2.0)
        control = ControlInput(0.0, 0.0, 0.1)

        np.testing.assert_allclose(model.f(state, control).to_array(), state.to_array())
        np.testing.assert_allclose(model.state_jacobian(state, control), np.eye(3))

    def test_state_jacobian_matches_finite_differences(self):
        """Analytic F matches the numerical Jacobian, including ω = 0"""
        rng = np.random.default_rng(3)
        model = UnicycleSystemModel()
        controls = [
            ControlInput(1.0, 0.0, 0.1),
            ControlInput(0.7, 1e-10, 0.2),
            ControlInput(-0.5, 0.9, 0.1),
            ControlInput(2.0, -3.0, 0.5),
        ]

        for state in random_states(rng, count=10):
            for control in controls:
                def f_of(values):
                    return model.f(PoseState.from_array(values), control).to_array()

                F = model.state_jacobian(state, control)
                F_numerical = numerical_jacobian(f_of, state.to_array())
                np.testing.assert_allclose(F, F_numerical, atol=1e-6)

    def test_noise_jacobian_rotates_body_frame(self):
        """W maps body-frame noise (forward, lateral, heading) into world frame"""
        model = UnicycleSystemModel()
        theta = 0.6
        W = model.noise_jacobian(PoseState(0.0, 0.0, theta), ControlInput(1.0, 0.0, 0.1))

        np.testing.assert_allclose(W @ [1.0, 0.0, 0.0], [np.cos(theta), np.sin(theta), 0.0])
        np.testing.assert_allclose(W @ [0.0, 1.0, 0.0], [-np.sin(theta), np.cos(theta), 0.0])
        np.testing.assert_allclose(W @ [0.0, 0.0, 1.0], [0.0, 0.0, 1.0])
        np.testing.assert_allclose(W @ W.T, np.eye(3), atol=1e-12)

    def test_noise_jacobian_matches_finite_differences(self):
        """W is the derivative of the noisy transition w.r.t. body-frame noise"""
        model = UnicycleSystemModel()
        state = PoseState(1.0, 1.0, -2.2)
        control = ControlInput(1.0, 0.4, 0.1)
        W = model.noise_jacobian(state, control)

        def f_noisy(noise):
            forward, lateral, heading = noise
            c, s = np.cos(state.theta), np.sin(state.theta)
            nominal = model.f(state, control).to_array()
            return nominal + np.array([c * forward - s * lateral, s * forward + c * lateral, heading])

        np.testing.assert_allclose(W, numerical_jacobian(f_noisy, np.zeros(3)), atol=1e-8)


if __name__ == "__main__":
    pytest.main([__file__])
