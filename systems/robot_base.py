import numpy as np

from config import ROBOT_BASE_PARAMS, ROBOT_BASE_UKF_PARAMS
from estimation.model import StateModel, check_vector


class PlanarRobotBase(StateModel):
    """
    Unicycle robot base driven by velocity commands and ranged by fixed beacons.

    Discrete Dynamics (commanded velocities perturbed by noise w = [dv, dw]):
        x[k+1]   = x[k]   + (v + dv) cos(yaw) dt
        y[k+1]   = y[k]   + (v + dv) sin(yaw) dt
        yaw[k+1] = yaw[k] + (w + dw) dt

    Measurement: Euclidean range to every beacon.

    The velocity command is latched in update_controls(), so a command issued
    between two filter cycles only affects the next one.

    Attributes:
        beacons (np.ndarray): Beacon positions, shape (K, 2).
        v (float): Linear velocity command in use (m/s).
        w (float): Angular velocity command in use (rad/s).
    """

    state_dim = 3
    noise_dim = 2

    def __init__(self, beacons=None, cfg=None):
        if beacons is None:
            beacons = ROBOT_BASE_PARAMS["beacons"]
        self.beacons = np.atleast_2d(np.asarray(beacons, dtype=float))
        self.meas_dim = self.beacons.shape[0]

        self.cfg = ROBOT_BASE_UKF_PARAMS.copy()
        if cfg:
            self.cfg.update(cfg)

        self.v = 0.0
        self.w = 0.0
        self._pending = (0.0, 0.0)

    def command(self, v, w):
        """Queues a velocity command for the next cycle."""
        self._pending = (float(v), float(w))

    def update_controls(self):
        self.v, self.w = self._pending

    def initial_state(self):
        x0 = check_vector(self.cfg["x0_guess"], self.state_dim, "x0_guess")
        P0 = np.eye(self.state_dim) * self.cfg["P0"]
        return x0, P0

    def process(self, x, dt):
        px, py, yaw = x
        return np.array(
            [
                px + self.v * np.cos(yaw) * dt,
                py + self.v * np.sin(yaw) * dt,
                yaw + self.w * dt,
            ]
        )

    def measure(self, x):
        return np.linalg.norm(self.beacons - x[:2], axis=1)

    def process_jacobian(self, x, dt):
        yaw = x[2]
        return np.array(
            [
                [1.0, 0.0, -self.v * np.sin(yaw) * dt],
                [0.0, 1.0, self.v * np.cos(yaw) * dt],
                [0.0, 0.0, 1.0],
            ]
        )

    def noise_jacobian(self, x, dt):
        yaw = x[2]
        return np.array(
            [
                [np.cos(yaw) * dt, 0.0],
                [np.sin(yaw) * dt, 0.0],
                [0.0, dt],
            ]
        )

    def measurement_jacobian(self, x):
        diff = x[:2] - self.beacons
        ranges = np.linalg.norm(diff, axis=1)
        # the gradient is undefined on top of a beacon; that row is left at zero
        ranges = np.where(ranges > 0.0, ranges, 1.0)
        H = np.zeros((self.meas_dim, self.state_dim))
        H[:, :2] = diff / ranges[:, None]
        return H

    def process_noise_covariance(self):
        return np.diag(self.cfg["Q_diag"])

    def measurement_noise_covariance(self):
        return np.diag(self.cfg["R_diag"])

    def filter_state(self, x):
        """Position and heading wrapped to [-pi, pi)."""
        yaw = (x[2] + np.pi) % (2 * np.pi) - np.pi
        return np.array([x[0], x[1], yaw])
