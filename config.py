"""
Central Configuration Module for PyUKF.

This module acts as the control center for the estimation suite. It contains
the default filter tuning, the physical parameters of the bundled example
systems, simulation settings and visualization preferences.
"""

UKF_PARAMS = {
    "dt": 0.01,
    "alpha": 1e-3,
    "beta": 2.0,
    "kappa": 0.0,
    "numerical_jacobians": False,
    "discrete_process": True,
    "correction_enabled": True,
    "jacobian_step": 1e-6,
    "max_condition": 1e12,
}

LINEAR_MODEL_PARAMS = {
    "dt": 0.1,
    "t_end": 20.0,
    "seed": 0,
    "x0": [0.0, 1.0],
    "x0_guess": [0.0, 0.0],
    "P0": 1.0,
    "Q_diag": [1e-3],
    "R_diag": [0.25],
    "discrete_process": True,
    "numerical_jacobians": False,
}

PENDULUM_PARAMS = {
    "m": 1.0,
    "l": 0.5,
    "b": 0.1,
    "g": 9.81,
}

PENDULUM_UKF_PARAMS = {
    "dt": 0.01,
    "t_end": 10.0,
    "seed": 1,
    "x0": [1.2, 0.0],
    "x0_guess": [1.0, 0.0],
    "P0": 0.1,
    "Q_diag": [0.05],
    "R_diag": [1e-4],
    "discrete_process": False,
    "numerical_jacobians": False,
}

ROBOT_BASE_PARAMS = {
    "beacons": [[0.0, 0.0], [10.0, 0.0]],
}

ROBOT_BASE_UKF_PARAMS = {
    "dt": 0.1,
    "t_end": 30.0,
    "seed": 2,
    "x0": [2.0, 3.0, 0.0],
    "x0_guess": [2.5, 2.5, 0.1],
    "P0": 0.5,
    "Q_diag": [0.01, 0.005],
    "R_diag": [0.05, 0.05],
    "v_cmd": 0.5,
    "w_cmd": 0.1,
    "discrete_process": True,
    "numerical_jacobians": True,
}

PLOT_PARAMS = {
    "figsize": (10, 8),
    "grid_alpha": 0.3,
    "measurement_alpha": 0.3,
    "band_sigma": 2.0,
    "time_label": "Time (s)",
}

"""
--------------------------------------------------------------------------------
1. UKF_PARAMS (Filter Engine Defaults)
--------------------------------------------------------------------------------
Defaults applied by UnscentedKalmanFilter when a keyword is not given.

- dt (s): Fixed time step used by the process model and noise discretization.
- alpha, beta, kappa: Sigma point spread parameters (Van der Merwe).
    * Alpha: Spread of sigma points around mean (usually small, 1e-3).
    * Beta: Incorporates prior knowledge of distribution (2 is optimal for Gaussian).
    * Kappa: Secondary scaling parameter (usually 0).
    * Must satisfy N + lambda > 0 with lambda = alpha^2 * (N + kappa) - N.
- numerical_jacobians (bool): Finite-difference linearization instead of the
  model's analytical Jacobians. Only affects noise discretization.
- discrete_process (bool): Q_d = G Q G^T when True.
  Otherwise Q_d = Phi G Q G^T Phi^T dt and R_d = R / dt.
- correction_enabled (bool): Disable to run prediction-only cycles.
- jacobian_step: Central-difference step, scaled by max(1, |x_i|).
- max_condition: Innovation covariances above this condition number are rejected.

--------------------------------------------------------------------------------
2. LINEAR_MODEL_PARAMS (Constant Velocity Tracker)
--------------------------------------------------------------------------------
Position/velocity state driven by white acceleration noise, position sensor.

- x0: True initial state.  x0_guess: Filter initial estimate.
- P0: Scale of the initial identity covariance.
- Q_diag: Acceleration noise variance.  R_diag: Position sensor variance.

--------------------------------------------------------------------------------
3. PENDULUM_PARAMS / PENDULUM_UKF_PARAMS (Damped Pendulum)
--------------------------------------------------------------------------------
Continuous-time pendulum, theta'' = -(g/l) sin(theta) - b/(m l^2) theta'.

- m (kg), l (m), b (N*m*s), g (m/s^2): Physical parameters.
- Q_diag: Spectral density of the angular acceleration noise.
- R_diag: Spectral density of the angle encoder noise (divided by dt).

--------------------------------------------------------------------------------
4. ROBOT_BASE_PARAMS / ROBOT_BASE_UKF_PARAMS (Planar Robot Base)
--------------------------------------------------------------------------------
Unicycle base [x, y, yaw] driven by velocity commands, ranged by fixed beacons.

- beacons: Beacon positions (m); one range measurement per beacon.
- Q_diag: Variance of the commanded linear / angular velocity.
- R_diag: Range sensor variance per beacon.
- v_cmd (m/s), w_cmd (rad/s): Constant command used by the simulation.

--------------------------------------------------------------------------------
5. PLOT_PARAMS (Visualization)
--------------------------------------------------------------------------------
- band_sigma: Width of the shaded uncertainty band in standard deviations.
"""
