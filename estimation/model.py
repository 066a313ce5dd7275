from abc import ABC, abstractmethod

import numpy as np

from estimation.exceptions import (
    DimensionMismatchError,
    MissingJacobianError,
    MissingMeasurementError,
)


def check_vector(value, size, name):
    """
    Converts value to a flat float vector and validates its length.

    Raises:
        DimensionMismatchError: If the vector does not have `size` entries.
    """
    vec = np.asarray(value, dtype=float)
    if vec.ndim == 0 or (vec.ndim > 1 and vec.size == max(vec.shape)):
        vec = vec.reshape(-1)

    if vec.shape != (size,):
        raise DimensionMismatchError(
            f"{name} must be a vector of length {size}, got shape {vec.shape}"
        )
    return vec


def check_matrix(value, shape, name):
    """
    Converts value to a 2D float array and validates its shape.

    Raises:
        DimensionMismatchError: If the matrix shape differs from `shape`.
    """
    mat = np.atleast_2d(np.asarray(value, dtype=float))
    if mat.shape != tuple(shape):
        raise DimensionMismatchError(
            f"{name} must be {shape[0]}x{shape[1]}, got {mat.shape}"
        )
    return mat


class StateModel(ABC):
    """
    Capability contract between the UKF engine and a concrete physical model.

    A concrete model declares its dimensions as class (or instance) attributes
    and implements the nonlinear transition and observation functions:

        x[k+1] = process(x[k], dt)         (N-vector)
        z[k]   = measure(x[k])             (K-vector)

    Process noise is P-dimensional and mapped into the state space by the
    noise Jacobian G (N x P). The process Jacobian is only needed by a
    continuous model under analytical linearization; the measurement Jacobian
    is optional and only reported for diagnostics.

    Attributes:
        state_dim (int): N, length of the state vector.
        noise_dim (int): P, length of the process noise vector.
        meas_dim (int): K, length of the measurement vector.
    """

    state_dim = None
    noise_dim = None
    meas_dim = None

    _measurement = None

    @abstractmethod
    def initial_state(self):
        """
        Returns:
            tuple: (x0 of shape (N,), P0 of shape (N, N)) seeding the filter.
        """

    @abstractmethod
    def process(self, x, dt):
        """Nonlinear state transition. Returns the propagated N-vector."""

    @abstractmethod
    def measure(self, x):
        """Nonlinear observation. Returns the predicted K-vector."""

    @abstractmethod
    def process_noise_covariance(self):
        """Process noise covariance Q, shape (P, P)."""

    @abstractmethod
    def measurement_noise_covariance(self):
        """Measurement noise covariance R, shape (K, K)."""

    @abstractmethod
    def filter_state(self, x):
        """Projection of the raw state vector reported by get_filter_state()."""

    def process_jacobian(self, x, dt):
        """
        Analytical process Jacobian, shape (N, N).

        Continuous models return dx_dot/dx; discrete models return the
        transition matrix d(x[k+1])/d(x[k]).
        """
        raise MissingJacobianError(
            f"{type(self).__name__} does not provide an analytical process Jacobian"
        )

    def noise_jacobian(self, x, dt):
        """Maps process noise into the state space, shape (N, P)."""
        if self.noise_dim == self.state_dim:
            return np.eye(self.state_dim)
        raise MissingJacobianError(
            f"{type(self).__name__} must provide a noise Jacobian "
            f"(noise_dim={self.noise_dim} != state_dim={self.state_dim})"
        )

    def measurement_jacobian(self, x):
        """Analytical measurement Jacobian dz/dx, shape (K, N)."""
        raise MissingJacobianError(
            f"{type(self).__name__} does not provide an analytical measurement Jacobian"
        )

    def update_controls(self):
        """Hook called at the start of every filter cycle to latch control inputs."""
        pass

    def push_measurement(self, z):
        """Stores the latest sensor sample consumed by the next correction."""
        self._measurement = check_vector(z, self.meas_dim, "Measurement")

    def actual_measurement(self):
        """Latest sensor sample, shape (K,)."""
        if self._measurement is None:
            raise MissingMeasurementError(
                f"No measurement has been pushed to {type(self).__name__}"
            )
        return self._measurement


def provides_jacobian(model, name):
    """True when the model overrides the optional Jacobian provider `name`."""
    return getattr(type(model), name) is not getattr(StateModel, name)
