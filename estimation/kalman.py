import numpy as np
import scipy.linalg

from estimation.exceptions import DimensionMismatchError, SingularMatrixError


class KalmanFilter:
    """
    Standard Linear Discrete-Time Kalman Filter.
    Closed-form reference for linear models: a UKF cycle on a linear model
    must reproduce one predict/update of this filter.

    System Model:
    x[k+1] = Phi * x[k] + Gamma * u[k] + G * w[k]
    y[k]   = C * x[k] + v[k]
    """

    def __init__(self, A, C, Q, R, x0, P0, B=None, G=None):
        """
        Args:
            A (Phi): State transition matrix (Discrete).
            C: Measurement matrix.
            Q: Process noise covariance (p x p).
            R: Measurement noise covariance.
            x0: Initial state guess.
            P0: Initial error covariance.
            B (Gamma): Input control matrix (Discrete). Optional.
            G: Noise input matrix (n x p). Defaults to identity.
        """
        self.Phi = np.atleast_2d(np.asarray(A, dtype=float))
        self.C = np.atleast_2d(np.asarray(C, dtype=float))
        self.Q = np.atleast_2d(np.asarray(Q, dtype=float))
        self.R = np.atleast_2d(np.asarray(R, dtype=float))

        self.x_hat = np.asarray(x0, dtype=float).reshape(-1)
        self.P = np.atleast_2d(np.asarray(P0, dtype=float)).copy()

        n = self.x_hat.shape[0]
        self.Gamma = None if B is None else np.atleast_2d(np.asarray(B, dtype=float))
        self.G = np.eye(n) if G is None else np.atleast_2d(np.asarray(G, dtype=float))

        if self.Phi.shape != (n, n):
            raise DimensionMismatchError(f"A must be {n}x{n}, got {self.Phi.shape}")
        if self.P.shape != (n, n):
            raise DimensionMismatchError(f"P0 must be {n}x{n}, got {self.P.shape}")
        if self.C.shape[1] != n:
            raise DimensionMismatchError(
                f"C must have {n} columns, got {self.C.shape}"
            )
        if self.G.shape != (n, self.Q.shape[0]):
            raise DimensionMismatchError(
                f"G must be {n}x{self.Q.shape[0]}, got {self.G.shape}"
            )

    def predict(self, u=None):
        """
        Performs the a priori prediction step.
        x[k|k-1] = Phi * x[k-1|k-1] + Gamma * u[k]
        P[k|k-1] = Phi * P[k-1|k-1] * Phi' + G Q G'

        Args:
            u: Control input vector (ignored when no Gamma was given).
        """
        self.x_hat = self.Phi @ self.x_hat
        if self.Gamma is not None and u is not None:
            self.x_hat = self.x_hat + self.Gamma @ np.atleast_1d(np.asarray(u, dtype=float))

        self.P = self.Phi @ self.P @ self.Phi.T + self.G @ self.Q @ self.G.T

    def update(self, y_meas):
        """
        Performs the a posteriori correction step.
        x[k|k] = x[k|k-1] + K * (y - C * x[k|k-1])
        P[k|k] = P[k|k-1] - K * S * K'

        Args:
            y_meas: Noisy measurement vector.

        Returns:
            np.array: The updated state estimate.
        """
        y_meas = np.asarray(y_meas, dtype=float).reshape(-1)

        y_err = y_meas - self.C @ self.x_hat

        S = self.C @ self.P @ self.C.T + self.R
        try:
            K = scipy.linalg.solve(S, self.C @ self.P, assume_a="sym").T
        except scipy.linalg.LinAlgError as exc:
            raise SingularMatrixError(f"Innovation covariance is singular: {exc}") from exc

        self.x_hat = self.x_hat + K @ y_err
        self.P = self.P - K @ S @ K.T

        return self.x_hat.copy()
