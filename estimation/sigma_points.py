"""
Unscented Transform primitives.

Generates the scaled (Van der Merwe) sigma point set of a Gaussian and
recombines propagated points into a mean and covariance. All functions are
pure: they never modify their inputs.
"""

from typing import NamedTuple

import numpy as np
import scipy.linalg

from config import UKF_PARAMS
from estimation.exceptions import (
    DecompositionError,
    DimensionMismatchError,
    InvalidParameterError,
)


class UnscentedParams(NamedTuple):
    """
    Scaling parameters of the unscented transform.

    Attributes:
        alpha: Spread of the sigma points around the mean.
        beta: Prior knowledge of the distribution (2 is optimal for Gaussians).
        kappa: Secondary scaling parameter.
    """

    alpha: float = UKF_PARAMS["alpha"]
    beta: float = UKF_PARAMS["beta"]
    kappa: float = UKF_PARAMS["kappa"]

    def lam(self, n):
        """Compound scaling parameter lambda = alpha^2 (n + kappa) - n."""
        return self.alpha**2 * (n + self.kappa) - n


class SigmaPointSet(NamedTuple):
    """
    Sigma points and their weights.

    Attributes:
        points: Sigma points, one per row, shape (2n+1, n).
        mean_weights: Weights for the mean reconstruction, shape (2n+1,).
        cov_weights: Weights for the covariance reconstruction, shape (2n+1,).
    """

    points: np.ndarray
    mean_weights: np.ndarray
    cov_weights: np.ndarray


def sigma_weights(n, params=UnscentedParams()):
    """
    Pre-computes the mean and covariance weights for 2n+1 sigma points.

    Raises:
        InvalidParameterError: If n < 1 or n + lambda <= 0.
    """
    if n < 1:
        raise InvalidParameterError(f"State dimension must be >= 1, got {n}")

    lam = params.lam(n)
    if not n + lam > 0:
        raise InvalidParameterError(
            f"n + lambda must be positive, got {n + lam} "
            f"(alpha={params.alpha}, kappa={params.kappa}, n={n})"
        )

    num_sigmas = 2 * n + 1
    Wm = np.full(num_sigmas, 0.5 / (n + lam))
    Wc = np.full(num_sigmas, 0.5 / (n + lam))

    Wm[0] = lam / (n + lam)
    Wc[0] = lam / (n + lam) + (1 - params.alpha**2 + params.beta)

    return Wm, Wc


def generate_sigma_points(mean, covariance, params=UnscentedParams()):
    """
    Generates the 2n+1 sigma points of N(mean, covariance).

    S = sqrt(n + lambda) * L with L the lower Cholesky factor of the covariance.
    Point 0 is the mean, points 1..n are mean + S[:, i] and points n+1..2n
    are mean - S[:, i].

    Args:
        mean: State mean, shape (n,).
        covariance: Symmetric positive-definite covariance, shape (n, n).
        params: Unscented scaling parameters.

    Returns:
        SigmaPointSet: Points with their mean and covariance weights.

    Raises:
        DimensionMismatchError: If the covariance is not (n, n).
        DecompositionError: If the covariance is not finite or not positive-definite.
    """
    x = np.asarray(mean, dtype=float).reshape(-1)
    P = np.asarray(covariance, dtype=float)
    n = x.shape[0]

    if P.shape != (n, n):
        raise DimensionMismatchError(
            f"Covariance must be {n}x{n} to match the mean, got {P.shape}"
        )

    Wm, Wc = sigma_weights(n, params)
    lam = params.lam(n)

    if not np.all(np.isfinite(P)):
        raise DecompositionError("Covariance contains NaN or Inf entries")

    try:
        L = scipy.linalg.cholesky(P, lower=True, check_finite=False)
    except scipy.linalg.LinAlgError as exc:
        raise DecompositionError(
            f"Covariance is not positive-definite: {exc}"
        ) from exc

    S = np.sqrt(n + lam) * L

    sigmas = np.empty((2 * n + 1, n))
    sigmas[0] = x
    sigmas[1 : n + 1] = x + S.T
    sigmas[n + 1 :] = x - S.T

    return SigmaPointSet(sigmas, Wm, Wc)


def recombine(points, mean_weights, cov_weights):
    """
    Weighted mean and covariance of a set of (propagated) sigma points.

    Args:
        points: Points, one per row, shape (L, m).
        mean_weights: Shape (L,).
        cov_weights: Shape (L,).

    Returns:
        tuple: (mean of shape (m,), covariance of shape (m, m)).
    """
    points = np.asarray(points, dtype=float)
    mean = np.dot(mean_weights, points)

    Y = points - mean
    cov = np.einsum("i,ij,ik->jk", cov_weights, Y, Y)

    return mean, cov


def cross_covariance(x_points, x_mean, z_points, z_mean, cov_weights):
    """Weighted cross-covariance between state and measurement sigma points, shape (n, m)."""
    DX = np.asarray(x_points, dtype=float) - x_mean
    DZ = np.asarray(z_points, dtype=float) - z_mean
    return np.einsum("i,ij,ik->jk", cov_weights, DX, DZ)
