"""
Linearization strategies and noise discretization.

Jacobians are never used to propagate sigma points; they only map the
process noise into the state space and discretize it over one time step.
Both strategies therefore build the transition matrix Phi for continuous
models only.
"""

import numpy as np

from config import UKF_PARAMS
from estimation.exceptions import InvalidParameterError, JacobianError, MissingJacobianError
from estimation.model import check_matrix, check_vector, provides_jacobian

# A column whose differences are within this many ulps of the function values
# carries no derivative information.
_CANCELLATION_ULPS = 64


def numerical_jacobian(func, x, *args, step=UKF_PARAMS["jacobian_step"]):
    """
    Computes the Jacobian of a vector-valued function using central differences.

    The perturbation along dimension i is step * max(1, |x_i|).

    Args:
        func: Callable f(x, *args) -> array_like
        x: 1D numpy array
        *args: Additional arguments passed to func
        step: Relative finite-difference step.

    Returns:
        J: Jacobian matrix (m x n)

    Raises:
        InvalidParameterError: If the step is not a positive finite number.
        JacobianError: If a column is non-finite, identically zero, or lost
            to floating point cancellation.
    """
    if not (np.isfinite(step) and step > 0):
        raise InvalidParameterError(f"Jacobian step must be positive, got {step}")

    x = np.asarray(x, dtype=float).reshape(-1)
    n = x.size

    y0 = np.asarray(func(x, *args), dtype=float).reshape(-1)
    m = y0.size

    J = np.zeros((m, n), dtype=float)
    ill_conditioned = []

    for i in range(n):
        h = step * max(1.0, abs(x[i]))
        dx = np.zeros(n)
        dx[i] = h
        f_plus = np.asarray(func(x + dx, *args), dtype=float).reshape(-1)
        f_minus = np.asarray(func(x - dx, *args), dtype=float).reshape(-1)

        diff = f_plus - f_minus
        J[:, i] = diff / (2 * h)

        scale = np.maximum(np.abs(f_plus), np.abs(f_minus))
        noise = _CANCELLATION_ULPS * np.finfo(float).eps * scale
        if np.any(diff) and np.all(np.abs(diff) <= noise):
            ill_conditioned.append(i)

    if not np.all(np.isfinite(J)):
        bad = np.where(~np.all(np.isfinite(J), axis=0))[0]
        raise JacobianError(f"Non-finite Jacobian column(s) {bad.tolist()} (step={step})")

    zero_cols = np.where(~np.any(J, axis=0))[0]
    if zero_cols.size:
        raise JacobianError(
            f"Degenerate Jacobian: column(s) {zero_cols.tolist()} are zero (step={step})"
        )

    if ill_conditioned:
        raise JacobianError(
            f"Ill-conditioned Jacobian: column(s) {ill_conditioned} are within "
            f"rounding error of the function values (step={step})"
        )

    return J


class AnalyticalJacobians:
    """Linearization through the model's own Jacobian providers."""

    numerical = False

    def check_model(self, model, discrete):
        """
        Raises:
            MissingJacobianError: If a continuous model has no process Jacobian.
        """
        if not discrete and not provides_jacobian(model, "process_jacobian"):
            raise MissingJacobianError(
                f"{type(model).__name__} is continuous and needs an analytical "
                f"process Jacobian (or numerical_jacobians=True)"
            )

    def transition_matrix(self, model, x, dt, discrete):
        """
        Discretized process Jacobian Phi.

        Discrete models supply Phi directly; continuous models supply
        F = dx_dot/dx and Phi = I + F dt.
        """
        n = model.state_dim
        F = check_matrix(model.process_jacobian(x, dt), (n, n), "Process Jacobian")
        if discrete:
            return F
        return np.eye(n) + F * dt

    def needs_transition(self, discrete):
        return not discrete

    def measurement_matrix(self, model, x):
        """Model measurement Jacobian for diagnostics, None if the model has none."""
        if not provides_jacobian(model, "measurement_jacobian"):
            return None
        return check_matrix(
            model.measurement_jacobian(x),
            (model.meas_dim, model.state_dim),
            "Measurement Jacobian",
        )


class NumericalJacobians:
    """
    Linearization by central differences of the true process model.

    Since process() already returns the propagated state, the finite
    difference yields Phi directly for both discrete and continuous models.
    """

    numerical = True

    def __init__(self, step=UKF_PARAMS["jacobian_step"]):
        if not (np.isfinite(step) and step > 0):
            raise InvalidParameterError(f"Jacobian step must be positive, got {step}")
        self.step = step

    def check_model(self, model, discrete):
        pass

    def transition_matrix(self, model, x, dt, discrete):
        n = model.state_dim
        return numerical_jacobian(
            lambda s: check_vector(model.process(s, dt), n, "Process output"),
            x,
            step=self.step,
        )

    def needs_transition(self, discrete):
        return not discrete

    def measurement_matrix(self, model, x):
        return None


def discretize_process_noise(Q, G, dt, discrete, Phi=None):
    """
    Process noise covariance added to the predicted state covariance.

    Discrete:   Q_d = G Q G^T
    Continuous: Q_d = Phi G Q G^T Phi^T dt
    """
    Q_d = G @ Q @ G.T
    if discrete:
        return Q_d
    return Phi @ Q_d @ Phi.T * dt


def discretize_measurement_noise(R, dt, discrete):
    """Measurement noise covariance: R for discrete models, R / dt for continuous ones."""
    if discrete:
        return R
    return R / dt
