"""
Centralized plotting utilities for PyUKF.
All visualization logic lives here to keep the estimation core headless.
"""

import matplotlib.pyplot as plt

from config import PLOT_PARAMS


def plot_ukf_estimation(
    t_vals,
    true_states,
    est_states,
    measurements,
    est_std,
    labels,
    measured_states=None,
    title="UKF Estimation",
):
    """
    One subplot per state: truth, UKF estimate with a +/- band_sigma band,
    and the raw measurement when it observes that state directly.

    Args:
        measured_states (dict, optional): Measurement index -> state index.
    """
    measured_states = measured_states or {}
    state_to_meas = {s: m for m, s in measured_states.items()}
    n_states = est_states.shape[1]
    band = PLOT_PARAMS["band_sigma"]

    fig, axes = plt.subplots(n_states, 1, figsize=PLOT_PARAMS["figsize"], sharex=True)
    if n_states == 1:
        axes = [axes]

    for i, ax in enumerate(axes):
        ax.plot(t_vals, true_states[:, i], "k-", label="True State")

        if i in state_to_meas:
            ax.plot(
                t_vals,
                measurements[:, state_to_meas[i]],
                "g.",
                alpha=PLOT_PARAMS["measurement_alpha"],
                label="Noisy Measure",
            )

        ax.plot(t_vals, est_states[:, i], "r--", linewidth=2, label="UKF Estimate")
        ax.fill_between(
            t_vals,
            est_states[:, i] - band * est_std[:, i],
            est_states[:, i] + band * est_std[:, i],
            color="r",
            alpha=0.15,
            label=f"±{band:g}σ",
        )

        ax.set_ylabel(labels[i])
        ax.legend(loc="upper right")
        ax.grid(True, alpha=PLOT_PARAMS["grid_alpha"])

    axes[0].set_title(title)
    axes[-1].set_xlabel(PLOT_PARAMS["time_label"])

    fig.tight_layout()
    plt.show()

    return fig
