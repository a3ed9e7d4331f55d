"""Newton solver for fully implicit models.

The solver drives a physical model (see :class:`~resflow.models.protocol.PhysicalModel`)
through one time step: assemble, check convergence, solve the linearized system,
stabilize the update, apply it and reassemble. Oscillating residuals across
consecutive iterations are countered by relaxation of the update, either by
dampening or by successive over-relaxation.

A step that does not converge within the maximum number of iterations is reported
through :attr:`NewtonStepReport.status`; the caller is expected to restart the step,
typically with a shorter time step.

"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import numpy as np

import resflow as rf
from resflow.models.protocol import PhysicalModel
from resflow.numerics.nonlinear.convergence_check import ConvergenceStatus
from resflow.utils.logging import time_logger

__all__ = [
    "RelaxType",
    "SolverParameters",
    "NewtonStepReport",
    "NewtonSolver",
    "detect_newton_oscillations",
    "stabilize_newton",
]

# Module-wide logger
logger = logging.getLogger(__name__)

module_sections = ["numerics"]

# Relative change of the residual below which a phase is considered stagnant.
STAGNATION_TOL = 1.0e-3


class RelaxType(Enum):
    """The Newton relaxation scheme."""

    DAMPEN = "dampen"
    SOR = "sor"

    def __str__(self):
        return self.value

    @classmethod
    def from_str(cls, relax_str: str) -> RelaxType:
        try:
            return cls[relax_str.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown relaxation type {relax_str}")


@dataclass(frozen=True)
class SolverParameters:
    """Parameters controlling the nonlinear Newton process."""

    relax_type: RelaxType = RelaxType.DAMPEN
    """Relaxation scheme applied when oscillations are detected."""
    relax_max: float = 0.5
    """Smallest relaxation factor reached by successive reductions. The relaxation
    factor starts at 1 and is clamped as ``omega = max(omega, relax_max)``."""
    relax_increment: float = 0.1
    """Reduction of the relaxation factor each time an oscillation is detected."""
    relax_rel_tol: float = 0.2
    """Relative tolerance of the oscillation detection."""
    max_iter: int = 15
    """Maximum number of Newton iterations per step."""
    min_iter: int = 1
    """Minimum number of Newton iterations per step."""

    @classmethod
    def from_params(cls, params: Optional[dict[str, Any]] = None) -> SolverParameters:
        """Overload the default values with those given in params.

        Values may be given as strings, as they are when read from a configuration
        file.

        Raises:
            ValueError: If the relaxation type is neither 'dampen' nor 'sor'.

        """
        if params is None:
            params = {}
        default = cls()

        relax_type = params.get("relax_type", default.relax_type)
        if not isinstance(relax_type, RelaxType):
            relax_type = RelaxType.from_str(str(relax_type))

        return cls(
            relax_type=relax_type,
            relax_max=float(params.get("relax_max", default.relax_max)),
            relax_increment=float(
                params.get("relax_increment", default.relax_increment)
            ),
            relax_rel_tol=float(params.get("relax_rel_tol", default.relax_rel_tol)),
            max_iter=int(params.get("max_iter", default.max_iter)),
            min_iter=int(params.get("min_iter", default.min_iter)),
        )

    @classmethod
    def from_config(cls) -> SolverParameters:
        """Parameters from the [newton] section of resflow.cfg, if present."""
        return cls.from_params(rf.config.get("newton", {}))


@dataclass
class NewtonStepReport:
    """Outcome of a call to :meth:`NewtonSolver.step`."""

    status: ConvergenceStatus
    """CONVERGED, or NOT_CONVERGED if the step must be restarted."""
    newton_iterations: int = 0
    """Number of Newton iterations performed in the step."""
    linear_iterations: int = 0
    """Number of linear iterations used in the step."""
    residual_norms_history: list[list[float]] = field(default_factory=list)
    """Per-phase residual norms of each assembly, including iteration 0."""

    @property
    def needs_restart(self) -> bool:
        return not self.status.is_converged()


def detect_newton_oscillations(
    residual_history: list,
    iteration: int,
    relax_rel_tol: float,
    num_phases: int,
) -> tuple[bool, bool]:
    """Detect oscillating or stagnating residuals.

    The three most recent residual norms F0 (newest), F1 and F2 are compared phase
    by phase. A phase oscillates if ``|F0 - F2| / F0 < relax_rel_tol`` and
    ``relax_rel_tol < |F0 - F1| / F0``, that is if the residual returns to the value
    of two iterations ago after a significant change. The iteration oscillates if
    more than one phase does.

    The iteration stagnates unless at least one phase exhibits a relative change
    ``|F1 - F2| / F2`` above 1e-3.

    Parameters:
        residual_history: Per-phase residual norms, one entry per iteration.
        iteration: Current iteration; ``residual_history[iteration]`` is F0.
        relax_rel_tol: Relative tolerance.
        num_phases: Number of phases to inspect.

    Returns:
        Whether the iteration oscillates, and whether it stagnates. Both are False
        before the third entry of the history is available.

    """
    if iteration < 2:
        return False, False

    F0 = np.asarray(residual_history[iteration][:num_phases], dtype=float)
    F1 = np.asarray(residual_history[iteration - 1][:num_phases], dtype=float)
    F2 = np.asarray(residual_history[iteration - 2][:num_phases], dtype=float)

    # Zero norms give inf or nan, which fail the comparisons below.
    with np.errstate(divide="ignore", invalid="ignore"):
        d1 = np.abs((F0 - F2) / F0)
        d2 = np.abs((F0 - F1) / F0)
        change = np.abs((F1 - F2) / F2)

    oscillate_phase = np.logical_and(d1 < relax_rel_tol, relax_rel_tol < d2)
    oscillate = int(np.count_nonzero(oscillate_phase)) > 1
    stagnate = not bool(np.any(change > STAGNATION_TOL))
    return oscillate, stagnate


def stabilize_newton(
    dx: np.ndarray,
    dx_old: np.ndarray,
    omega: float,
    relax_type: RelaxType,
) -> tuple[np.ndarray, np.ndarray]:
    """Relax the Newton update.

    Parameters:
        dx: Newton update of the current iteration.
        dx_old: Unrelaxed Newton update of the previous iteration.
        omega: Relaxation factor. For ``omega == 1`` no relaxation is applied.
        relax_type: Relaxation scheme.

    Returns:
        The relaxed update, and the unrelaxed update to be passed as ``dx_old`` in
        the next iteration.

    """
    new_dx_old = dx.copy()

    if relax_type == RelaxType.DAMPEN:
        if omega == 1.0:
            return dx, new_dx_old
        return dx * omega, new_dx_old
    elif relax_type == RelaxType.SOR:
        if omega == 1.0:
            return dx, new_dx_old
        return dx * omega + (1.0 - omega) * dx_old, new_dx_old
    else:
        raise ValueError("Can only handle DAMPEN and SOR relaxation type.")


class NewtonSolver:
    """A Newton solver suitable for general fully implicit models.

    Parameters:
        params: Parameters controlling the nonlinear Newton process.
        model: Physical simulation model. The solver holds on to the model for its
            lifetime.

    """

    def __init__(
        self, params: Optional[SolverParameters], model: PhysicalModel
    ) -> None:
        if params is None:
            params = SolverParameters()
        self.params = params
        self.model = model

        self.newton_iterations: int = 0
        """Number of Newton iterations used in all converged calls to step()."""
        self.linear_iterations: int = 0
        """Number of linear iterations used in all converged calls to step()."""
        self.newton_iterations_last_step: int = 0
        """Number of Newton iterations used in the last converged call to step()."""
        self.linear_iterations_last_step: int = 0
        """Number of linear iterations used in the last converged call to step()."""

    def relax_type(self) -> RelaxType:
        return self.params.relax_type

    def relax_max(self) -> float:
        return self.params.relax_max

    def relax_increment(self) -> float:
        return self.params.relax_increment

    def relax_rel_tol(self) -> float:
        return self.params.relax_rel_tol

    def max_iter(self) -> int:
        return self.params.max_iter

    def min_iter(self) -> int:
        return self.params.min_iter

    @time_logger(sections=module_sections)
    def step(self, dt: float, reservoir_state, well_state) -> NewtonStepReport:
        """Take a single forward step, after which the states are modified according
        to the physical model.

        Parameters:
            dt: Time step size.
            reservoir_state: Reservoir state variables.
            well_state: Well state variables.

        Returns:
            Report of the step. If the step did not converge, the report status is
            NOT_CONVERGED and the iteration counters of the solver are unchanged.

        """
        model = self.model

        # Do model-specific once-per-step calculations.
        model.prepare_step(dt, reservoir_state, well_state)

        # For each iteration we store the norms of the residual of the mass balance
        # for each active phase.
        residual_norms_history: list[list[float]] = []

        # Assemble residual and Jacobian, store residual norms.
        model.assemble(reservoir_state, well_state, True)
        residual_norms_history.append(list(model.compute_residual_norms()))

        # Set up for main Newton loop.
        omega = 1.0
        iteration = 0
        converged = model.get_convergence(dt, iteration)
        dx_old = np.zeros(model.size_non_linear())
        relax_type = self.relax_type()
        linear_iterations = 0

        while (not converged and iteration < self.max_iter()) or (
            self.min_iter() > iteration
        ):
            logger.debug(f"Newton iteration {iteration + 1} of {self.max_iter()}")

            # Compute the Newton update to the primary variables.
            dx = model.solve_jacobian_system()
            linear_iterations += model.linear_iterations_last_solve()

            # Stabilize the Newton update.
            is_oscillate, is_stagnate = detect_newton_oscillations(
                residual_norms_history,
                iteration,
                self.relax_rel_tol(),
                model.num_phases(),
            )
            if is_oscillate:
                omega -= self.relax_increment()
                omega = max(omega, self.relax_max())
                if model.terminal_output_enabled():
                    logger.info(
                        f"Oscillating behavior detected: Relaxation set to {omega}"
                    )
            if is_stagnate:
                logger.debug("Stagnating residuals detected")
            dx, dx_old = stabilize_newton(dx, dx_old, omega, relax_type)

            # Apply the update, the model may apply model-dependent limitations
            # and chopping of the update.
            model.update_state(dx, reservoir_state, well_state)

            # Assemble residual and Jacobian, store residual norms.
            model.assemble(reservoir_state, well_state, False)
            residual_norms_history.append(list(model.compute_residual_norms()))

            iteration += 1
            converged = model.get_convergence(dt, iteration)

        if not converged:
            if model.terminal_output_enabled():
                logger.warning(
                    f"Failed to compute converged solution in {iteration} iterations."
                )
            return NewtonStepReport(
                status=ConvergenceStatus.NOT_CONVERGED,
                newton_iterations=iteration,
                linear_iterations=linear_iterations,
                residual_norms_history=residual_norms_history,
            )

        self.linear_iterations += linear_iterations
        self.newton_iterations += iteration
        self.linear_iterations_last_step = linear_iterations
        self.newton_iterations_last_step = iteration

        # Do model-specific post-step actions.
        model.after_step(dt, reservoir_state, well_state)

        return NewtonStepReport(
            status=ConvergenceStatus.CONVERGED,
            newton_iterations=iteration,
            linear_iterations=linear_iterations,
            residual_norms_history=residual_norms_history,
        )
