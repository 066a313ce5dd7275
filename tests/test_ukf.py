import unittest

import numpy as np

from estimation.exceptions import (
    DecompositionError,
    DimensionMismatchError,
    InvalidParameterError,
    JacobianError,
    MissingJacobianError,
    MissingMeasurementError,
    SingularMatrixError,
    UninitializedFilterError,
)
from estimation.jacobians import AnalyticalJacobians, NumericalJacobians
from estimation.kalman import KalmanFilter
from estimation.model import StateModel
from estimation.ukf import FilterState, UnscentedKalmanFilter, kalman_gain, predict
from systems.linear import LinearGaussianModel
from systems.pendulum import DampedPendulum


class FunctionModel(StateModel):
    """Small StateModel built from plain callables."""

    def __init__(self, f, h, Q, R, x0, P0, F=None, H=None):
        self.f = f
        self.h = h
        self.Q = np.atleast_2d(np.asarray(Q, dtype=float))
        self.R = np.atleast_2d(np.asarray(R, dtype=float))
        self.x0 = np.atleast_1d(np.asarray(x0, dtype=float))
        self.P0 = np.atleast_2d(np.asarray(P0, dtype=float))

        self.state_dim = self.x0.shape[0]
        self.noise_dim = self.Q.shape[0]
        self.meas_dim = self.R.shape[0]

        self.F = np.eye(self.state_dim) if F is None else np.asarray(F, dtype=float)
        self.H = (
            np.zeros((self.meas_dim, self.state_dim))
            if H is None
            else np.asarray(H, dtype=float)
        )
        self.control_updates = 0

    def initial_state(self):
        return self.x0, self.P0

    def process(self, x, dt):
        return self.f(x, dt)

    def measure(self, x):
        return self.h(x)

    def process_jacobian(self, x, dt):
        return self.F

    def measurement_jacobian(self, x):
        return self.H

    def process_noise_covariance(self):
        return self.Q

    def measurement_noise_covariance(self):
        return self.R

    def update_controls(self):
        self.control_updates += 1

    def filter_state(self, x):
        return x


class MinimalModel(StateModel):
    """Implements only the abstract methods: no Jacobian providers at all."""

    state_dim = 1
    noise_dim = 1
    meas_dim = 1

    def initial_state(self):
        return np.zeros(1), np.eye(1)

    def process(self, x, dt):
        return 0.9 * x

    def measure(self, x):
        return x

    def process_noise_covariance(self):
        return np.eye(1) * 0.01

    def measurement_noise_covariance(self):
        return np.eye(1) * 0.1

    def filter_state(self, x):
        return x


def random_walk(q=0.01, r=0.1, x0=0.0, P0=1.0):
    return FunctionModel(
        lambda x, dt: x,
        lambda x: x,
        [[q]],
        [[r]],
        [x0],
        [[P0]],
        H=[[1.0]],
    )


class TestUKFEngine(unittest.TestCase):
    """
    Unit Tests for the UnscentedKalmanFilter cycle.
    """

    def test_scalar_cycle_matches_closed_form(self):
        model = random_walk()
        ukf = UnscentedKalmanFilter(model, dt=0.1)
        ukf.initialize()

        model.push_measurement([1.0])
        x = ukf.update()

        # P_pre = 1 + 0.01, S = 1.11, K = 1.01 / 1.11
        self.assertAlmostEqual(ukf.state_pre.P[0, 0], 1.01, places=6)
        self.assertAlmostEqual(x[0], 1.01 / 1.11, places=6)
        self.assertAlmostEqual(ukf.state_post.P[0, 0], 0.101 / 1.11, places=6)
        self.assertLess(ukf.state_post.P[0, 0], 0.1)

        correction = ukf.last_correction
        self.assertAlmostEqual(correction.innovation[0], 1.0, places=6)
        self.assertAlmostEqual(correction.innovation_covariance[0, 0], 1.11, places=6)

    def test_linear_model_matches_kalman_filter(self):
        """On a linear Gaussian model the UKF reproduces the Kalman filter."""
        dt = 0.1
        x0 = [0.5, -0.2]

        for alpha in (1e-3, 1.0):
            with self.subTest(alpha=alpha):
                model = LinearGaussianModel.constant_velocity(dt, 0.01, 0.25, x0, 1.0)
                kf = KalmanFilter(
                    model.A, model.C, model.Q, model.R, x0, np.eye(2), G=model.G
                )
                ukf = UnscentedKalmanFilter(model, dt=dt, alpha=alpha)
                ukf.initialize()

                rng = np.random.default_rng(3)
                for k in range(10):
                    z = np.array([0.3 * k * dt + rng.normal(0.0, 0.5)])

                    model.push_measurement(z)
                    x_ukf = ukf.update()

                    kf.predict()
                    x_kf = kf.update(z)

                    np.testing.assert_allclose(x_ukf, x_kf, atol=1e-6)
                    np.testing.assert_allclose(ukf.state_post.P, kf.P, atol=1e-6)

    def test_identity_model_without_noise_is_stationary(self):
        model = LinearGaussianModel(
            np.eye(2), [[1.0, 0.0]], np.zeros((2, 2)), [[1.0]], [1.0, -1.0],
            [[0.5, 0.1], [0.1, 0.3]],
        )
        ukf = UnscentedKalmanFilter(model, correction_enabled=False)
        ukf.initialize()
        x0, P0 = ukf.state_post

        for _ in range(5):
            ukf.update()

        np.testing.assert_allclose(ukf.state_post.x, x0, atol=1e-9)
        np.testing.assert_allclose(ukf.state_post.P, P0, atol=1e-9)

    def test_prediction_only_mode(self):
        """Without correction no measurement is needed and uncertainty grows."""
        model = random_walk()
        ukf = UnscentedKalmanFilter(model, correction_enabled=False)
        ukf.initialize()

        for _ in range(3):
            ukf.update()

        self.assertIsNone(ukf.last_correction)
        self.assertAlmostEqual(ukf.state_post.P[0, 0], 1.03, places=6)
        np.testing.assert_array_equal(ukf.state_post.x, ukf.state_pre.x)

    def test_nonlinear_mean_propagation(self):
        """E[x^2] = m^2 + var for x ~ N(2, 0.5)."""
        model = FunctionModel(
            lambda x, dt: x**2, lambda x: x, [[0.0]], [[1.0]], [2.0], [[0.5]]
        )
        prediction = predict(FilterState(np.array([2.0]), np.array([[0.5]])), model, 0.1)

        self.assertAlmostEqual(prediction.state.x[0], 4.5, places=5)

    def test_update_controls_called_once_per_cycle(self):
        model = random_walk()
        ukf = UnscentedKalmanFilter(model)
        ukf.initialize()

        for i in range(4):
            model.push_measurement([0.1 * i])
            ukf.update()

        self.assertEqual(model.control_updates, 4)

    def test_filter_state_projection(self):
        model = DampedPendulum(cfg={"x0_guess": [2 * np.pi + 0.5, 0.2]})
        ukf = UnscentedKalmanFilter(model, discrete_process=False)
        ukf.initialize()

        np.testing.assert_allclose(ukf.get_filter_state(), [0.5, 0.2], atol=1e-12)
        # the raw state is not wrapped
        self.assertGreater(ukf.state_post.x[0], 2 * np.pi)

    def test_jacobian_diagnostics(self):
        model = DampedPendulum()

        ukf = UnscentedKalmanFilter(model, discrete_process=False)
        ukf.initialize()
        model.push_measurement([1.0])
        ukf.update()
        self.assertEqual(ukf.last_prediction.process_jacobian.shape, (2, 2))
        np.testing.assert_array_equal(
            ukf.last_correction.measurement_jacobian, [[1.0, 0.0]]
        )

        ukf = UnscentedKalmanFilter(model, numerical_jacobians=True, discrete_process=False)
        ukf.initialize()
        ukf.update()
        self.assertEqual(ukf.last_prediction.process_jacobian.shape, (2, 2))
        self.assertIsNone(ukf.last_correction.measurement_jacobian)

        ukf = UnscentedKalmanFilter(model, numerical_jacobians=True, discrete_process=True)
        ukf.initialize()
        ukf.update()
        self.assertIsNone(ukf.last_prediction.process_jacobian)

        # discrete noise discretization never needs Phi
        linear = LinearGaussianModel.constant_velocity(0.1, 0.01, 0.25, [0.0, 0.0], 1.0)
        ukf = UnscentedKalmanFilter(linear, dt=0.1)
        ukf.initialize()
        linear.push_measurement([0.2])
        ukf.update()
        self.assertIsNone(ukf.last_prediction.process_jacobian)
        self.assertEqual(ukf.last_correction.measurement_jacobian.shape, (1, 2))

    def test_model_without_jacobian_providers(self):
        """Analytical discrete filtering only needs the abstract methods."""
        model = MinimalModel()
        ukf = UnscentedKalmanFilter(model)
        ukf.initialize()

        model.push_measurement([1.0])
        x = ukf.update()

        self.assertEqual(x.shape, (1,))
        self.assertIsNone(ukf.last_prediction.process_jacobian)
        self.assertIsNone(ukf.last_correction.measurement_jacobian)

    def test_continuous_model_without_process_jacobian(self):
        ukf = UnscentedKalmanFilter(MinimalModel(), discrete_process=False)

        with self.assertRaises(MissingJacobianError):
            ukf.initialize()
        self.assertFalse(ukf.initialized)

        ukf = UnscentedKalmanFilter(
            MinimalModel(), discrete_process=False, numerical_jacobians=True
        )
        ukf.initialize()
        self.assertTrue(ukf.initialized)

    def test_missing_noise_jacobian(self):
        model = MinimalModel()
        model.noise_dim = 2
        model.process_noise_covariance = lambda: np.eye(2)
        ukf = UnscentedKalmanFilter(model)

        with self.assertRaises(MissingJacobianError):
            ukf.initialize()

    def test_numerical_and_analytical_predictions_agree(self):
        model = DampedPendulum()
        state = FilterState(np.array([0.8, -0.3]), np.diag([0.05, 0.2]))

        analytical = predict(
            state, model, 0.01, discrete=False, jacobians=AnalyticalJacobians()
        )
        numerical = predict(
            state, model, 0.01, discrete=False, jacobians=NumericalJacobians()
        )

        np.testing.assert_allclose(numerical.state.x, analytical.state.x)
        np.testing.assert_allclose(numerical.state.P, analytical.state.P, atol=1e-9)
        np.testing.assert_allclose(
            numerical.process_jacobian, analytical.process_jacobian, atol=1e-7
        )

    def test_continuous_measurement_noise_scaled_by_dt(self):
        model = random_walk(r=0.1)
        ukf = UnscentedKalmanFilter(model, discrete_process=False, dt=0.5)
        ukf.initialize()

        model.push_measurement([0.0])
        ukf.update()

        np.testing.assert_allclose(ukf.last_correction.measurement_noise, [[0.2]])

    def test_print_debug_logs_matrices(self):
        model = random_walk()
        ukf = UnscentedKalmanFilter(model)
        ukf.initialize()
        model.push_measurement([0.5])
        ukf.update()

        with self.assertLogs("estimation.ukf", level="DEBUG") as cm:
            ukf.print_debug()

        output = "\n".join(cm.output)
        self.assertIn("state_post.P", output)
        self.assertIn("innovation", output)
        self.assertIn("gain", output)


class TestUKFFailures(unittest.TestCase):
    """
    A failing cycle raises and leaves the previous estimate untouched.
    """

    def assertStateUnchanged(self, ukf, before):
        np.testing.assert_array_equal(ukf.state_post.x, before.x)
        np.testing.assert_array_equal(ukf.state_post.P, before.P)

    def test_update_before_initialize(self):
        ukf = UnscentedKalmanFilter(random_walk())

        self.assertFalse(ukf.initialized)
        with self.assertRaises(UninitializedFilterError):
            ukf.update()
        with self.assertRaises(UninitializedFilterError):
            ukf.get_filter_state()

    def test_non_positive_definite_initial_covariance(self):
        model = random_walk(P0=-1.0)
        ukf = UnscentedKalmanFilter(model)
        ukf.initialize()
        before = ukf.state_post

        model.push_measurement([0.0])
        with self.assertRaises(DecompositionError):
            ukf.update()

        self.assertStateUnchanged(ukf, before)
        self.assertIsNone(ukf.state_pre)

    def test_negative_measurement_noise(self):
        model = random_walk(r=-5.0)
        ukf = UnscentedKalmanFilter(model)
        ukf.initialize()
        before = ukf.state_post

        model.push_measurement([1.0])
        with self.assertRaises(DecompositionError) as cm:
            ukf.update()

        self.assertNotIsInstance(cm.exception, SingularMatrixError)
        self.assertStateUnchanged(ukf, before)
        self.assertIsNone(ukf.last_prediction)

    def test_singular_innovation_covariance(self):
        """Two identical noiseless sensors give a rank-one innovation covariance."""
        model = FunctionModel(
            lambda x, dt: x,
            lambda x: np.array([x[0], x[0]]),
            [[0.01]],
            np.zeros((2, 2)),
            [0.0],
            [[1.0]],
            H=[[1.0], [1.0]],
        )
        ukf = UnscentedKalmanFilter(model)
        ukf.initialize()
        before = ukf.state_post

        model.push_measurement([1.0, 1.0])
        with self.assertRaises(SingularMatrixError):
            ukf.update()

        self.assertStateUnchanged(ukf, before)

    def test_kalman_gain_rejects_ill_conditioned_covariance(self):
        S = np.diag([1.0, 1e-14])
        with self.assertRaises(SingularMatrixError):
            kalman_gain(np.eye(2), S)

        K = kalman_gain(np.eye(2), S, max_condition=1e15)
        np.testing.assert_allclose(K, np.diag([1.0, 1e14]))

        with self.assertRaises(DecompositionError):
            kalman_gain(np.eye(2), np.array([[1.0, np.nan], [np.nan, 1.0]]))

    def test_missing_measurement(self):
        model = random_walk()
        ukf = UnscentedKalmanFilter(model)
        ukf.initialize()
        before = ukf.state_post

        with self.assertRaises(MissingMeasurementError):
            ukf.update()

        self.assertStateUnchanged(ukf, before)

    def test_wrong_measurement_length(self):
        model = random_walk()
        with self.assertRaises(DimensionMismatchError):
            model.push_measurement([1.0, 2.0])

    def test_dimension_mismatch_detected_at_initialize(self):
        model = FunctionModel(
            lambda x, dt: x,
            lambda x: np.array([x[0], x[1], 0.0]),
            np.eye(2),
            np.eye(2),
            [0.0, 0.0],
            np.eye(2),
        )
        ukf = UnscentedKalmanFilter(model)

        with self.assertRaises(DimensionMismatchError):
            ukf.initialize()
        self.assertFalse(ukf.initialized)

    def test_dimension_mismatch_during_update(self):
        model = FunctionModel(
            lambda x, dt: x, lambda x: x, [[0.01]], [[0.1]], [0.0], [[1.0]]
        )
        ukf = UnscentedKalmanFilter(model)
        ukf.initialize()
        before = ukf.state_post

        model.f = lambda x, dt: np.array([x[0], x[0]])
        model.push_measurement([0.0])
        with self.assertRaises(DimensionMismatchError):
            ukf.update()

        self.assertStateUnchanged(ukf, before)

    def test_diagnostics_survive_failed_cycle(self):
        calls = {"n": 0}

        def f(x, dt):
            calls["n"] += 1
            if calls["n"] == 7:
                return np.array([100.0, 100.0])
            if calls["n"] > 4:
                return x + 100.0
            return x

        model = FunctionModel(f, lambda x: x, [[0.01]], [[0.1]], [0.0], [[1.0]], H=[[1.0]])
        ukf = UnscentedKalmanFilter(model)
        ukf.initialize()

        model.push_measurement([0.5])
        ukf.update()
        propagated = ukf.last_prediction.propagated.copy()
        measured = ukf.last_correction.measurement_points.copy()

        # one check call in initialize(), three sigma points per cycle: the third
        # point of the second cycle has the wrong length
        with self.assertRaises(DimensionMismatchError):
            ukf.update()

        np.testing.assert_array_equal(ukf.last_prediction.propagated, propagated)
        np.testing.assert_array_equal(ukf.last_correction.measurement_points, measured)

    def test_committed_diagnostics_do_not_share_buffers(self):
        model = random_walk()
        ukf = UnscentedKalmanFilter(model)
        ukf.initialize()

        model.push_measurement([0.5])
        ukf.update()
        first = ukf.last_prediction

        model.push_measurement([-0.5])
        ukf.update()

        self.assertFalse(np.shares_memory(first.propagated, ukf.last_prediction.propagated))

    def test_short_process_output_detected_at_initialize(self):
        model = FunctionModel(
            lambda x, dt: x[:2],
            lambda x: x[:1],
            np.eye(3) * 0.01,
            [[0.1]],
            [0.0, 0.0, 0.0],
            np.eye(3),
        )
        ukf = UnscentedKalmanFilter(model)

        with self.assertRaises(DimensionMismatchError):
            ukf.initialize()
        self.assertFalse(ukf.initialized)
        with self.assertRaises(UninitializedFilterError):
            ukf.update()

    def test_wrong_noise_covariance_shape(self):
        model = random_walk()
        model.Q = np.eye(2)

        with self.assertRaises(DimensionMismatchError):
            UnscentedKalmanFilter(model)

    def test_invalid_parameters(self):
        model = random_walk()

        for kwargs in (
            {"dt": 0.0},
            {"dt": -0.1},
            {"dt": np.inf},
            {"max_condition": 1.0},
            {"kappa": -1.0},
            {"jacobian_step": 0.0, "numerical_jacobians": True},
        ):
            with self.subTest(**kwargs):
                with self.assertRaises(InvalidParameterError):
                    UnscentedKalmanFilter(model, **kwargs)

    def test_invalid_model_dimensions(self):
        model = random_walk()
        model.state_dim = 0

        with self.assertRaises(InvalidParameterError):
            UnscentedKalmanFilter(model)

    def test_degenerate_numerical_jacobian(self):
        model = FunctionModel(
            lambda x, dt: np.array([x[0], 0.0]),
            lambda x: x[:1],
            np.eye(2) * 0.01,
            [[0.1]],
            [1.0, 1.0],
            np.eye(2),
        )

        ukf = UnscentedKalmanFilter(model, numerical_jacobians=True, discrete_process=False)
        ukf.initialize()
        before = ukf.state_post
        model.push_measurement([1.0])

        with self.assertRaises(JacobianError):
            ukf.update()
        self.assertStateUnchanged(ukf, before)

        # Discrete numerical mode never differentiates the process model
        ukf = UnscentedKalmanFilter(model, numerical_jacobians=True, discrete_process=True)
        ukf.initialize()
        ukf.update()
        self.assertTrue(ukf.initialized)


if __name__ == "__main__":
    unittest.main()
