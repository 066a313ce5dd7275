import numpy as np

from config import LINEAR_MODEL_PARAMS
from estimation.model import StateModel, check_matrix, check_vector


class LinearGaussianModel(StateModel):
    """
    Discrete-time linear model with additive Gaussian noise.

    System Model:
        x[k+1] = A x[k] + B u[k] + G w[k],   w ~ N(0, Q)
        z[k]   = C x[k] + v[k],              v ~ N(0, R)

    The UKF is exact on this model: one cycle reproduces the closed-form
    KalmanFilter, which makes it the reference model for validating the engine.

    Attributes:
        A, B, C, G, Q, R (np.ndarray): System matrices.
        u (np.ndarray): Control input latched at the start of the current cycle.
    """

    def __init__(self, A, C, Q, R, x0, P0, B=None, G=None):
        self.A = np.atleast_2d(np.asarray(A, dtype=float))
        self.C = np.atleast_2d(np.asarray(C, dtype=float))
        self.Q = np.atleast_2d(np.asarray(Q, dtype=float))
        self.R = np.atleast_2d(np.asarray(R, dtype=float))

        self.state_dim = self.A.shape[0]
        self.noise_dim = self.Q.shape[0]
        self.meas_dim = self.C.shape[0]

        check_matrix(self.A, (self.state_dim, self.state_dim), "A")
        check_matrix(self.C, (self.meas_dim, self.state_dim), "C")

        if G is None:
            G = np.eye(self.state_dim, self.noise_dim)
        self.G = check_matrix(G, (self.state_dim, self.noise_dim), "G")

        if B is None:
            B = np.zeros((self.state_dim, 1))
        B = np.atleast_2d(np.asarray(B, dtype=float))
        self.B = check_matrix(B, (self.state_dim, B.shape[1]), "B")

        self.x0 = check_vector(x0, self.state_dim, "x0")
        self.P0 = np.asarray(P0, dtype=float)
        if self.P0.ndim == 0:
            self.P0 = np.eye(self.state_dim) * self.P0
        self.P0 = check_matrix(self.P0, (self.state_dim, self.state_dim), "P0")

        self.u = np.zeros(self.B.shape[1])
        self._pending_u = self.u

    @classmethod
    def constant_velocity(cls, dt, q, r, x0, P0):
        """
        Position/velocity tracker driven by white acceleration noise,
        observed by a position sensor.
        """
        A = [[1.0, dt], [0.0, 1.0]]
        C = [[1.0, 0.0]]
        G = [[0.5 * dt**2], [dt]]
        return cls(A, C, [[q]], [[r]], x0, P0, G=G)

    def command(self, u):
        """Queues the control input applied from the next cycle on."""
        self._pending_u = check_vector(u, self.B.shape[1], "Control input")

    def update_controls(self):
        self.u = self._pending_u

    def initial_state(self):
        return self.x0.copy(), self.P0.copy()

    def process(self, x, dt):
        return self.A @ x + self.B @ self.u

    def measure(self, x):
        return self.C @ x

    def process_jacobian(self, x, dt):
        return self.A

    def noise_jacobian(self, x, dt):
        return self.G

    def measurement_jacobian(self, x):
        return self.C

    def process_noise_covariance(self):
        return self.Q

    def measurement_noise_covariance(self):
        return self.R

    def filter_state(self, x):
        return x


def default_linear_model(cfg=LINEAR_MODEL_PARAMS):
    """Constant velocity tracker built from LINEAR_MODEL_PARAMS."""
    return LinearGaussianModel.constant_velocity(
        cfg["dt"],
        cfg["Q_diag"][0],
        cfg["R_diag"][0],
        cfg["x0_guess"],
        cfg["P0"],
    )
