from config import LINEAR_MODEL_PARAMS, PENDULUM_UKF_PARAMS, ROBOT_BASE_UKF_PARAMS
from systems.linear import default_linear_model
from systems.pendulum import DampedPendulum
from systems.robot_base import PlanarRobotBase


class SystemDescriptor:
    def __init__(
        self,
        system_id,
        display_name,
        model_factory,
        state_labels,
        config,
        measured_states=None,
        controller=None,
    ):
        """
        Args:
            system_id (str): Registry key.
            display_name (str): Human readable name.
            model_factory: Callable cfg -> StateModel.
            state_labels (list): Axis label per reported state.
            config (dict): Default simulation/filter settings.
            measured_states (dict, optional): Measurement index -> state index,
                for measurements that observe a state directly.
            controller (optional): Callable (model, t, cfg) issuing commands.
        """
        self.system_id = system_id
        self.display_name = display_name
        self.model_factory = model_factory
        self.state_labels = state_labels
        self.config = config
        self.measured_states = measured_states or {}
        self.controller = controller


def _robot_base_controller(model, t, cfg):
    model.command(cfg["v_cmd"], cfg["w_cmd"])


SYSTEM_REGISTRY = {
    "linear": SystemDescriptor(
        system_id="linear",
        display_name="Constant Velocity Tracker",
        model_factory=default_linear_model,
        state_labels=["p (m)", "v (m/s)"],
        config=LINEAR_MODEL_PARAMS,
        measured_states={0: 0},
    ),
    "pendulum": SystemDescriptor(
        system_id="pendulum",
        display_name="Damped Pendulum",
        model_factory=lambda cfg: DampedPendulum(cfg=cfg),
        state_labels=["θ (rad)", "ω (rad/s)"],
        config=PENDULUM_UKF_PARAMS,
        measured_states={0: 0},
    ),
    "robot_base": SystemDescriptor(
        system_id="robot_base",
        display_name="Planar Robot Base",
        model_factory=lambda cfg: PlanarRobotBase(cfg=cfg),
        state_labels=["x (m)", "y (m)", "yaw (rad)"],
        config=ROBOT_BASE_UKF_PARAMS,
        controller=_robot_base_controller,
    ),
}
