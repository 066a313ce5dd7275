import logging
import os
import sys

import numpy as np

sys.path.append(os.getcwd())
from estimation.exceptions import UKFError
from helpers.plot import plot_ukf_estimation
from helpers.simulation_runner import rms_error, run_ukf_simulation
from helpers.system_registry import SYSTEM_REGISTRY

logger = logging.getLogger("pyukf")


class PyUKFApp:
    """
    Main Application Controller for the PyUKF estimation suite.

    This class handles the lifecycle of the application, including:
    1. User interaction via a CLI menu.
    2. Selection of the simulated system and filter options.
    3. Running the UKF simulation and plotting the estimate against the truth.
    """

    def __init__(self):
        self.running = True
        self.current_system_id = "pendulum"
        self.correction_enabled = True
        self.numerical_jacobians = None

    @property
    def descriptor(self):
        return SYSTEM_REGISTRY[self.current_system_id]

    def clear_screen(self):
        """
        Clears the terminal screen using OS-specific commands.
        Uses 'cls' for Windows (nt) and 'clear' for Unix-like systems.
        """
        os.system("cls" if os.name == "nt" else "clear")

    def print_header(self):
        """Prints the application banner and the active filter options."""
        if self.numerical_jacobians is None:
            jac = "system default"
        else:
            jac = "numerical" if self.numerical_jacobians else "analytical"

        print("\n" + "=" * 60)
        print(f"   PyUKF Estimation Suite | System: {self.descriptor.display_name}   ")
        print("=" * 60)
        print(f"Correction: {'on' if self.correction_enabled else 'off'} | Jacobians: {jac}")
        print("-" * 60)

    def main_menu(self):
        """Displays the main menu loop and handles user input routing."""
        self.clear_screen()
        while self.running:
            self.print_header()
            print("[1] Run UKF Simulation")
            print("[2] Switch Active System")
            print("[3] Toggle Measurement Correction")
            print("[4] Cycle Jacobian Strategy")
            print("[q] Exit")

            choice = input("\nSelect Option: ").strip()

            if choice == "1":
                self.run_ukf()
            elif choice == "2":
                self.switch_system_menu()
            elif choice == "3":
                self.correction_enabled = not self.correction_enabled
            elif choice == "4":
                self.cycle_jacobians()
            elif choice == "q":
                self.running = False
            else:
                input("Invalid option. Press Enter...")

    def switch_system_menu(self):
        ids = list(SYSTEM_REGISTRY)
        for i, system_id in enumerate(ids, start=1):
            print(f"  [{i}] {SYSTEM_REGISTRY[system_id].display_name}")
        choice = input("\nSelect System (or 'b' to go back): ").strip()
        if choice.isdigit() and 1 <= int(choice) <= len(ids):
            self.current_system_id = ids[int(choice) - 1]
        elif choice != "b":
            print("Unknown system.")

    def cycle_jacobians(self):
        """system default -> analytical -> numerical -> system default."""
        if self.numerical_jacobians is None:
            self.numerical_jacobians = False
        elif not self.numerical_jacobians:
            self.numerical_jacobians = True
        else:
            self.numerical_jacobians = None

    def run_ukf(self):
        """
        Simulates the active system with process and sensor noise, filters the
        noisy measurements with the UKF and plots the estimate.

        Prints the RMS error of every state. Numerical failures of the filter
        are reported and the menu stays available.
        """
        descriptor = self.descriptor
        print(f"\n--- Non-Linear State Estimation (UKF) - {descriptor.display_name} ---")

        try:
            t_vals, true_states, est_states, measurements, est_std = run_ukf_simulation(
                self.current_system_id,
                correction_enabled=self.correction_enabled,
                numerical_jacobians=self.numerical_jacobians,
            )
        except UKFError as e:
            print(f"\nFilter error ({type(e).__name__}): {e}")
            input("Press Enter to return to menu...")
            return

        errors = rms_error(true_states, est_states)
        for label, err in zip(descriptor.state_labels, errors):
            print(f"  RMS error {label:<12}: {err:.4f}")
        print(f"  Final 1-sigma: {np.array2string(est_std[-1], precision=4)}")

        plot_ukf_estimation(
            t_vals,
            true_states,
            est_states,
            measurements,
            est_std,
            descriptor.state_labels,
            measured_states=descriptor.measured_states,
            title=f"UKF Estimation: {descriptor.display_name}",
        )


if __name__ == "__main__":
    logging.basicConfig(
        level=os.environ.get("PYUKF_LOG_LEVEL", "INFO"),
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )
    app = PyUKFApp()
    try:
        app.main_menu()
    except (KeyboardInterrupt, EOFError):
        print("\n\nExiting...")
    finally:
        sys.stdout.flush()
        sys.stderr.flush()
