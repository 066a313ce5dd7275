import numpy as np

from config import PENDULUM_PARAMS, PENDULUM_UKF_PARAMS
from estimation.model import StateModel


def _pendulum_step(theta, omega, g, l, b, m, dt):
    theta_next = theta + omega * dt
    omega_next = omega + (-(g / l) * np.sin(theta) - (b / (m * l * l)) * omega) * dt
    return theta_next, omega_next


class DampedPendulum(StateModel):
    """
    Continuous-time damped pendulum observed by an angle encoder.

    Dynamics:
        d(theta)/dt = omega
        d(omega)/dt = -(g/l) sin(theta) - b/(m l^2) omega + w

    State Vector:       [theta (rad), omega (rad/s)]
    Noise Vector:       [angular acceleration (rad/s^2)]
    Measurement Vector: [theta (rad)]

    process() integrates one explicit Euler step of length dt. The analytical
    process Jacobian is the continuous-time dx_dot/dx, so the filter must run
    with discrete_process=False for this model.

    Attributes:
        params (dict): System parameters (m, l, b, g).
        cfg (dict): Noise and initialization settings.
    """

    state_dim = 2
    noise_dim = 1
    meas_dim = 1

    def __init__(self, params=None, cfg=None, **kwargs):
        """
        Args:
            params (dict, optional): Overrides for PENDULUM_PARAMS.
            cfg (dict, optional): Overrides for PENDULUM_UKF_PARAMS.
            **kwargs: Individual physical parameters (m, l, b, g).
        """
        self.params = PENDULUM_PARAMS.copy()
        if params:
            self.params.update(params)
        self.params.update(kwargs)

        self.cfg = PENDULUM_UKF_PARAMS.copy()
        if cfg:
            self.cfg.update(cfg)

    def initial_state(self):
        x0 = np.array(self.cfg["x0_guess"], dtype=float)
        P0 = np.eye(self.state_dim) * self.cfg["P0"]
        return x0, P0

    def process(self, x, dt):
        p = self.params
        theta, omega = _pendulum_step(x[0], x[1], p["g"], p["l"], p["b"], p["m"], dt)
        return np.array([theta, omega])

    def measure(self, x):
        return np.array([x[0]])

    def process_jacobian(self, x, dt):
        p = self.params
        return np.array(
            [
                [0.0, 1.0],
                [-(p["g"] / p["l"]) * np.cos(x[0]), -p["b"] / (p["m"] * p["l"] ** 2)],
            ]
        )

    def noise_jacobian(self, x, dt):
        return np.array([[0.0], [1.0]])

    def measurement_jacobian(self, x):
        return np.array([[1.0, 0.0]])

    def process_noise_covariance(self):
        return np.diag(self.cfg["Q_diag"])

    def measurement_noise_covariance(self):
        return np.diag(self.cfg["R_diag"])

    def filter_state(self, x):
        """Angle wrapped to [-pi, pi) and angular rate."""
        theta = (x[0] + np.pi) % (2 * np.pi) - np.pi
        return np.array([theta, x[1]])
