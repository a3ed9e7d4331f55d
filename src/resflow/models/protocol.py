"""Contains the protocol that declares the methods a physical model must provide to be
driven by :class:`~resflow.numerics.nonlinear.nonlinear_solvers.NewtonSolver`.

The Newton solver is generic over this protocol; the solver never inspects the
model beyond these methods. The protocol is meant for static type checkers, models
do not need to inherit from it.

"""

from typing import Any, Protocol

import numpy as np


class PhysicalModel(Protocol):
    """Capabilities of a model advanced by the Newton solver."""

    def prepare_step(self, dt: float, reservoir_state: Any, well_state: Any) -> None:
        """Model-specific once-per-step calculations."""

    def assemble(
        self, reservoir_state: Any, well_state: Any, initial_assembly: bool
    ) -> None:
        """Assemble the residual and Jacobian of the current state.

        Parameters:
            reservoir_state: Reservoir state.
            well_state: Well state.
            initial_assembly: True for the first assembly of a step.

        """

    def get_convergence(self, dt: float, iteration: int) -> bool:
        """Whether the most recently assembled residual is converged."""

    def compute_residual_norms(self) -> list[float]:
        """Per-phase norms of the most recently assembled residual."""

    def solve_jacobian_system(self) -> np.ndarray:
        """Newton update of the primary variables.

        The update is to be subtracted from the primary variables.

        """

    def update_state(self, dx: np.ndarray, reservoir_state: Any, well_state: Any) -> None:
        """Apply the update dx to the states, possibly after chopping."""

    def after_step(self, dt: float, reservoir_state: Any, well_state: Any) -> None:
        """Model-specific post-step actions."""

    def size_non_linear(self) -> int:
        """Number of primary variables."""

    def num_phases(self) -> int:
        """Number of phases, used for oscillation detection."""

    def terminal_output_enabled(self) -> bool:
        """Whether user-facing progress messages should be emitted."""

    def linear_iterations_last_solve(self) -> int:
        """Number of linear iterations used by the last linear solve."""
