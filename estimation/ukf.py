"""
Unscented Kalman Filter (UKF) engine.

One call to UnscentedKalmanFilter.update() runs one prediction step and,
when correction is enabled, one measurement correction step. The physical
meaning of the state and measurement lives entirely in a StateModel; the
engine only calls through that contract.

The prediction and correction steps are plain functions passing explicit
FilterState values. The filter object owns the running estimate and commits
a new one only after a whole cycle succeeded, so a failing cycle never leaves
a partially written estimate behind.
"""

import logging
import warnings
from typing import NamedTuple, Optional

import numpy as np
import scipy.linalg

from config import UKF_PARAMS
from estimation.exceptions import (
    DecompositionError,
    InvalidParameterError,
    SingularMatrixError,
    UninitializedFilterError,
)
from estimation.jacobians import (
    AnalyticalJacobians,
    NumericalJacobians,
    discretize_measurement_noise,
    discretize_process_noise,
)
from estimation.model import check_matrix, check_vector
from estimation.sigma_points import (
    UnscentedParams,
    cross_covariance,
    generate_sigma_points,
    recombine,
)

logger = logging.getLogger(__name__)


class FilterState(NamedTuple):
    """
    State estimate and error covariance.

    Attributes:
        x: State estimate, shape (N,).
        P: Error covariance, shape (N, N).
    """

    x: np.ndarray
    P: np.ndarray


class Prediction(NamedTuple):
    """Output of the prediction step."""

    state: FilterState
    sigma_points: np.ndarray
    propagated: np.ndarray
    process_jacobian: Optional[np.ndarray]
    noise_jacobian: np.ndarray
    process_noise: np.ndarray


class Correction(NamedTuple):
    """
    Output of the correction step.

    The innovation should be zero-mean and consistent with the innovation
    covariance for a healthy filter.
    """

    state: FilterState
    sigma_points: np.ndarray
    measurement_points: np.ndarray
    predicted_measurement: np.ndarray
    actual_measurement: np.ndarray
    innovation: np.ndarray
    innovation_covariance: np.ndarray
    cross_covariance: np.ndarray
    kalman_gain: np.ndarray
    measurement_jacobian: Optional[np.ndarray]
    measurement_noise: np.ndarray


def predict(
    filter_state,
    model,
    dt,
    discrete=True,
    params=UnscentedParams(),
    jacobians=None,
    out=None,
):
    """
    Time Update Step: propagates sigma points through model.process().

    Args:
        filter_state: Previous corrected estimate (x, P).
        model: StateModel providing process() and the noise terms.
        dt: Time step.
        discrete: Discrete (Q_d = G Q G^T) or continuous noise model.
        params: Unscented scaling parameters.
        jacobians: AnalyticalJacobians or NumericalJacobians. Defaults to analytical.
        out: Optional (2N+1, N) buffer receiving the propagated points.

    Returns:
        Prediction: Predicted state together with the intermediate matrices.
    """
    if jacobians is None:
        jacobians = AnalyticalJacobians()

    n = model.state_dim
    x, P = filter_state

    sigmas = generate_sigma_points(x, P, params)

    if out is None:
        out = np.empty((sigmas.points.shape[0], n))
    for i, s in enumerate(sigmas.points):
        out[i] = check_vector(model.process(s, dt), n, "Process output")

    x_pred, P_pred = recombine(out, sigmas.mean_weights, sigmas.cov_weights)

    Q = check_matrix(
        model.process_noise_covariance(),
        (model.noise_dim, model.noise_dim),
        "Process noise covariance",
    )
    G = check_matrix(
        model.noise_jacobian(x, dt), (n, model.noise_dim), "Noise Jacobian"
    )

    Phi = None
    if jacobians.needs_transition(discrete):
        Phi = jacobians.transition_matrix(model, x, dt, discrete)

    Q_d = discretize_process_noise(Q, G, dt, discrete, Phi)
    P_pred = P_pred + Q_d

    return Prediction(
        state=FilterState(x_pred, P_pred),
        sigma_points=sigmas.points,
        propagated=out,
        process_jacobian=Phi,
        noise_jacobian=G,
        process_noise=Q_d,
    )


def kalman_gain(Pxz, S, max_condition=UKF_PARAMS["max_condition"]):
    """
    K = Pxz S^-1, solved with a symmetric-indefinite (Bunch-Kaufman LDL^T)
    factorization of S instead of an explicit inverse.

    Raises:
        DecompositionError: If S is not finite or not positive-definite.
        SingularMatrixError: If S is singular or too ill-conditioned.
    """
    if not np.all(np.isfinite(S)):
        raise DecompositionError("Innovation covariance contains NaN or Inf entries")

    eigs = np.linalg.eigvalsh(S)
    lo, hi = eigs[0], eigs[-1]

    # |lambda_min| below lambda_max / max_condition counts as singular
    if abs(lo) * max_condition <= abs(hi):
        raise SingularMatrixError(
            f"Innovation covariance is singular or ill-conditioned "
            f"(eigenvalues {eigs}, max_condition={max_condition:.3e})"
        )
    if lo <= 0.0:
        raise DecompositionError(
            f"Innovation covariance is not positive-definite (eigenvalues {eigs})"
        )

    with warnings.catch_warnings():
        warnings.simplefilter("error", scipy.linalg.LinAlgWarning)
        try:
            K_T = scipy.linalg.solve(S, Pxz.T, assume_a="sym", check_finite=False)
        except (scipy.linalg.LinAlgError, scipy.linalg.LinAlgWarning) as exc:
            raise SingularMatrixError(
                f"Failed to factorize innovation covariance: {exc}"
            ) from exc

    return K_T.T


def correct(
    filter_state,
    model,
    dt,
    discrete=True,
    params=UnscentedParams(),
    jacobians=None,
    max_condition=UKF_PARAMS["max_condition"],
    out=None,
):
    """
    Measurement Update Step: maps regenerated sigma points to measurement space
    and applies the Kalman gain to the innovation.

    Args:
        filter_state: Predicted state (x, P).
        model: StateModel providing measure() and actual_measurement().
        dt: Time step, used to discretize continuous measurement noise.
        discrete: Use R directly (True) or R / dt (False).
        params: Unscented scaling parameters.
        jacobians: AnalyticalJacobians or NumericalJacobians. Defaults to analytical.
        max_condition: Largest accepted condition number of the innovation covariance.
        out: Optional (2N+1, K) buffer receiving the measurement points.

    Returns:
        Correction: Corrected state together with innovation diagnostics.
    """
    if jacobians is None:
        jacobians = AnalyticalJacobians()

    n = model.state_dim
    m = model.meas_dim
    x, P = filter_state

    sigmas = generate_sigma_points(x, P, params)

    if out is None:
        out = np.empty((sigmas.points.shape[0], m))
    for i, s in enumerate(sigmas.points):
        out[i] = check_vector(model.measure(s), m, "Measurement output")

    z_pred, P_zz = recombine(out, sigmas.mean_weights, sigmas.cov_weights)

    R = check_matrix(
        model.measurement_noise_covariance(), (m, m), "Measurement noise covariance"
    )
    R_d = discretize_measurement_noise(R, dt, discrete)
    S = P_zz + R_d

    Pxz = cross_covariance(sigmas.points, x, out, z_pred, sigmas.cov_weights)

    z = check_vector(model.actual_measurement(), m, "Actual measurement")
    y = z - z_pred

    K = kalman_gain(Pxz, S, max_condition)

    x_post = x + K @ y
    P_post = P - K @ S @ K.T
    P_post = 0.5 * (P_post + P_post.T)

    H = jacobians.measurement_matrix(model, x)

    return Correction(
        state=FilterState(x_post, P_post),
        sigma_points=sigmas.points,
        measurement_points=out,
        predicted_measurement=z_pred,
        actual_measurement=z,
        innovation=y,
        innovation_covariance=S,
        cross_covariance=Pxz,
        kalman_gain=K,
        measurement_jacobian=H,
        measurement_noise=R_d,
    )


class UnscentedKalmanFilter:
    """
    Unscented Kalman Filter (UKF) for Non-Linear Estimation.

    Uses the Unscented Transform (Sigma Points) to propagate mean and covariance
    through the non-linear process and measurement models of a StateModel.
    Jacobians (analytical or numerical) are only used to discretize the
    process noise, never to propagate the state.

    Attributes:
        model (StateModel): The concrete model adapter.
        dt (float): Fixed time step.
        params (UnscentedParams): Sigma point scaling parameters.
        jacobians: Linearization strategy selected by `numerical_jacobians`.
        discrete_process (bool): Discrete or continuous noise model.
        correction_enabled (bool): Run the measurement correction each cycle.
    """

    def __init__(
        self,
        model,
        numerical_jacobians=UKF_PARAMS["numerical_jacobians"],
        discrete_process=UKF_PARAMS["discrete_process"],
        correction_enabled=UKF_PARAMS["correction_enabled"],
        dt=UKF_PARAMS["dt"],
        alpha=UKF_PARAMS["alpha"],
        beta=UKF_PARAMS["beta"],
        kappa=UKF_PARAMS["kappa"],
        jacobian_step=UKF_PARAMS["jacobian_step"],
        max_condition=UKF_PARAMS["max_condition"],
    ):
        """
        Args:
            model: StateModel implementation.
            numerical_jacobians: Finite-difference instead of analytical linearization.
            discrete_process: Discrete (True) or continuous (False) noise model.
            correction_enabled: False makes update() prediction-only.
            dt: Time step used by the process model and noise discretization.
            alpha, beta, kappa: UKF Scaling parameters (Van der Merwe).
            jacobian_step: Central-difference step for numerical Jacobians.
            max_condition: Largest accepted innovation covariance condition number.

        Raises:
            InvalidParameterError: For a non-positive dt, a bad threshold or N + lambda <= 0.
            DimensionMismatchError: If the declared dimensions or noise covariances are inconsistent.
        """
        self.model = model

        for name in ("state_dim", "noise_dim", "meas_dim"):
            value = getattr(model, name, None)
            if not isinstance(value, (int, np.integer)) or value < 1:
                raise InvalidParameterError(
                    f"{type(model).__name__}.{name} must be a positive integer, got {value!r}"
                )

        if not (np.isfinite(dt) and dt > 0):
            raise InvalidParameterError(f"Time step dt must be positive, got {dt}")
        if not max_condition > 1.0:
            raise InvalidParameterError(
                f"max_condition must be greater than 1, got {max_condition}"
            )

        self.n = int(model.state_dim)
        self.p = int(model.noise_dim)
        self.k = int(model.meas_dim)
        self.num_sigmas = 2 * self.n + 1

        self.dt = dt
        self.discrete_process = discrete_process
        self.correction_enabled = correction_enabled
        self.max_condition = max_condition

        self.params = UnscentedParams(alpha, beta, kappa)
        self.lam = self.params.lam(self.n)
        if not self.n + self.lam > 0:
            raise InvalidParameterError(
                f"n + lambda must be positive, got {self.n + self.lam} "
                f"(alpha={alpha}, kappa={kappa}, n={self.n})"
            )

        if numerical_jacobians:
            self.jacobians = NumericalJacobians(jacobian_step)
        else:
            self.jacobians = AnalyticalJacobians()

        check_matrix(
            model.process_noise_covariance(), (self.p, self.p), "Process noise covariance"
        )
        check_matrix(
            model.measurement_noise_covariance(),
            (self.k, self.k),
            "Measurement noise covariance",
        )

        self._spoints_proc = np.empty((self.num_sigmas, self.n))
        self._spoints_meas = np.empty((self.num_sigmas, self.k))

        self._state_pre = None
        self._state_post = None
        self._last_prediction = None
        self._last_correction = None

    @property
    def initialized(self):
        return self._state_post is not None

    @property
    def state_pre(self):
        return self._state_pre

    @property
    def state_post(self):
        return self._state_post

    @property
    def last_prediction(self):
        return self._last_prediction

    @property
    def last_correction(self):
        return self._last_correction

    def initialize(self):
        """
        Seeds the running estimate from model.initial_state().

        The model's process, measurement and noise Jacobian outputs are evaluated once
        at the initial state so that shape errors surface here rather than
        inside the first update().

        Raises:
            DimensionMismatchError: If any evaluated output disagrees with N/P/K.
            MissingJacobianError: If the selected linearization needs a Jacobian
                provider the model does not implement.
        """
        x0, P0 = self.model.initial_state()
        x0 = check_vector(x0, self.n, "Initial state")
        P0 = check_matrix(P0, (self.n, self.n), "Initial covariance")

        self.jacobians.check_model(self.model, self.discrete_process)

        check_vector(self.model.process(x0, self.dt), self.n, "Process output")
        check_vector(self.model.measure(x0), self.k, "Measurement output")
        check_matrix(
            self.model.noise_jacobian(x0, self.dt), (self.n, self.p), "Noise Jacobian"
        )

        self._state_pre = None
        self._state_post = FilterState(x0.copy(), P0.copy())
        self._last_prediction = None
        self._last_correction = None

        logger.info(
            "%s initialized: N=%d, P=%d, K=%d, dt=%g, %s jacobians, %s process, correction %s",
            type(self.model).__name__,
            self.n,
            self.p,
            self.k,
            self.dt,
            "numerical" if self.jacobians.numerical else "analytical",
            "discrete" if self.discrete_process else "continuous",
            "on" if self.correction_enabled else "off",
        )

    def update(self):
        """
        Runs one predict(+correct) cycle.

        Returns:
            np.ndarray: The corrected state estimate x_post.

        Raises:
            UninitializedFilterError: If initialize() has not been called.
            UKFError: Any numerical or dimension failure of this cycle; the
                previous estimate is left untouched.
        """
        if self._state_post is None:
            raise UninitializedFilterError(
                "update() called before initialize(); no initial state available"
            )

        self.model.update_controls()

        prediction = predict(
            self._state_post,
            self.model,
            self.dt,
            discrete=self.discrete_process,
            params=self.params,
            jacobians=self.jacobians,
            out=self._spoints_proc,
        )

        correction = None
        if self.correction_enabled:
            correction = correct(
                prediction.state,
                self.model,
                self.dt,
                discrete=self.discrete_process,
                params=self.params,
                jacobians=self.jacobians,
                max_condition=self.max_condition,
                out=self._spoints_meas,
            )
            state_post = correction.state
        else:
            state_post = prediction.state

        # the sigma point buffers are overwritten by the next cycle
        self._state_pre = prediction.state
        self._state_post = state_post
        self._last_prediction = prediction._replace(
            propagated=prediction.propagated.copy()
        )
        if correction is not None:
            correction = correction._replace(
                measurement_points=correction.measurement_points.copy()
            )
        self._last_correction = correction

        return self._state_post.x

    def get_filter_state(self):
        """Caller-facing projection of the corrected state, as defined by the model."""
        if self._state_post is None:
            raise UninitializedFilterError(
                "get_filter_state() called before initialize()"
            )
        return self.model.filter_state(self._state_post.x.copy())

    def print_debug(self):
        """Dumps the internal matrices of the last cycle at DEBUG level."""
        if not logger.isEnabledFor(logging.DEBUG):
            return

        logger.debug(
            "UKF %s: alpha=%g beta=%g kappa=%g lambda=%g",
            type(self.model).__name__,
            self.params.alpha,
            self.params.beta,
            self.params.kappa,
            self.lam,
        )

        if self._state_post is None:
            logger.debug("filter not initialized")
            return

        if self._state_pre is not None:
            logger.debug("state_pre.x:\n%s", self._state_pre.x)
            logger.debug("state_pre.P:\n%s", self._state_pre.P)
        logger.debug("state_post.x:\n%s", self._state_post.x)
        logger.debug("state_post.P:\n%s", self._state_post.P)

        prediction = self._last_prediction
        if prediction is not None:
            logger.debug("sigma points (process):\n%s", prediction.propagated)
            if prediction.process_jacobian is not None:
                logger.debug("process jacobian (discrete):\n%s", prediction.process_jacobian)
            logger.debug("noise jacobian:\n%s", prediction.noise_jacobian)
            logger.debug("process noise (discrete):\n%s", prediction.process_noise)

        correction = self._last_correction
        if correction is not None:
            logger.debug("sigma points (measurement):\n%s", correction.measurement_points)
            logger.debug("meas_pred: %s", correction.predicted_measurement)
            logger.debug("meas_actual: %s", correction.actual_measurement)
            logger.debug("innovation: %s", correction.innovation)
            logger.debug("innovation covariance:\n%s", correction.innovation_covariance)
            logger.debug("cross covariance:\n%s", correction.cross_covariance)
            logger.debug("gain:\n%s", correction.kalman_gain)
            if correction.measurement_jacobian is not None:
                logger.debug("measurement jacobian:\n%s", correction.measurement_jacobian)
            logger.debug("measurement noise (discrete):\n%s", correction.measurement_noise)
