"""Implicit pressure assembly with a two-point flux approximation.

The pressure equation of the implicit-pressure explicit-saturation (IMPES) scheme is
assembled with forward mode automatic differentiation. For each phase the mass
balance over a time step,

    pv * z0 + dt * (q - div(lambda * T * ngrad(p) / B)),

is multiplied with the formation volume factor B of the phase, and subtracted from
the pore volume. All phases thus collapse into a single equation per cell, stating
that the fluids must fill the pore volume. Mobilities and face formation volume
factors are upwinded with respect to the sign of ``T * ngrad(p)``.

Two simplifications are kept deliberately: the relative permeability derivatives
are discarded, and the pressure difference between the well bottom-hole and the
perforations (gravity) is zero unless a hook is supplied.

"""
from __future__ import annotations

import logging
from typing import Callable, Optional, Union

import numpy as np

from resflow.ad.forward_mode import AdArray, initAdArrays
from resflow.ad.utils import subset, superset
from resflow.grids.grid import Grid
from resflow.models.fluid_data import PressureDependentFluidData
from resflow.models.states import ReservoirState, WellState
from resflow.numerics.fv.operators import HelperOps
from resflow.numerics.fv.upwind import UpwindSelector
from resflow.numerics.linear_solvers import (
    LinearSolver,
    LinearSolverConvergenceError,
    LinearSolverReport,
)
from resflow.params.fluid import FluidModel
from resflow.params.geometry import DerivedGeology
from resflow.params.wells import Wells
from resflow.utils.logging import time_logger

__all__ = ["ImpesTPFAAD", "ImpesPressureModel", "no_gravity"]

logger = logging.getLogger(__name__)

module_sections = ["models", "assembly"]

GravityHook = Callable[[ReservoirState, WellState, Wells], np.ndarray]


def no_gravity(
    state: ReservoirState, well_state: WellState, wells: Wells
) -> np.ndarray:
    """Pressure increment from the well bottom-hole to each perforation, neglecting
    gravity."""
    return np.zeros(wells.num_perforations)


class ImpesTPFAAD:
    """Assembly and solution of the IMPES pressure equation.

    Parameters:
        grid: The grid.
        fluid: Fluid model.
        geo: Pore volumes and transmissibilities of the grid.
        wells: Well connection table.
        linsolver: Linear solver for the pressure system.
        gravity_dp: Hook computing the pressure increment from the bottom-hole to
            each perforation. Defaults to :func:`no_gravity`.
        well_sources: If True, perforations with a positive well index exchange fluid
            with the reservoir, driven by the difference between perforation and cell
            pressure. If False, all phase sources are zero.

    """

    def __init__(
        self,
        grid: Grid,
        fluid: FluidModel,
        geo: DerivedGeology,
        wells: Wells,
        linsolver: LinearSolver,
        gravity_dp: Optional[GravityHook] = None,
        well_sources: bool = True,
    ) -> None:
        self.grid = grid
        self.geo = geo
        self.wells = wells
        self.linsolver = linsolver
        self.fluid_data = PressureDependentFluidData(grid.num_cells, fluid)
        self.ops = HelperOps(grid)
        self.gravity_dp: GravityHook = no_gravity if gravity_dp is None else gravity_dp
        self.well_sources = well_sources

        self.cell_residual: Optional[AdArray] = None
        """Pressure residual of the most recent assembly."""
        self.phase_contributions: list[AdArray] = []
        """Surface volume of each phase at the end of the time step, as computed in the
        most recent assembly."""
        self.last_report: Optional[LinearSolverReport] = None
        """Report of the most recent linear solve."""

    @time_logger(sections=module_sections)
    def solve(
        self, dt: float, state: ReservoirState, well_state: WellState
    ) -> np.ndarray:
        """Assemble and solve the pressure equation, and update the pressure.

        Parameters:
            dt: Time step size.
            state: Reservoir state. The pressure is updated in place.
            well_state: Well state.

        Raises:
            LinearSolverConvergenceError: If the linear solver fails. The state is
                left untouched.

        Returns:
            The pressure increment, ``p_old - p_new``.

        """
        self.fluid_data.compute_sat_quant(state)

        self.assemble(dt, state, well_state)

        dp = self.solve_assembled()
        p = state.pressure - dp
        state.pressure[:] = p
        return dp

    def solve_assembled(self) -> np.ndarray:
        """Solve the linear system of the most recent assembly.

        The system matrix is the Jacobian of the residual with respect to the cell
        pressures, and the right-hand side is the residual value.

        Raises:
            LinearSolverConvergenceError: If the linear solver fails.

        """
        assert self.cell_residual is not None, "Assemble before solving"
        matr = self.cell_residual.derivative()[0].tocsr()
        nc = self.grid.num_cells
        dp, rep = self.linsolver.solve_csr(
            nc,
            matr.nnz,
            matr.indptr,
            matr.indices,
            matr.data,
            self.cell_residual.val,
        )
        self.last_report = rep
        if not rep.converged:
            raise LinearSolverConvergenceError(
                "ImpesTPFAAD.solve(): Linear solver convergence failure."
            )
        return dp

    @time_logger(sections=module_sections)
    def assemble(
        self, dt: float, state: ReservoirState, well_state: WellState
    ) -> None:
        """Assemble the pressure residual and its Jacobian.

        The saturation dependent quantities must have been computed from the current
        state before the assembly.

        Parameters:
            dt: Time step size.
            state: Reservoir state.
            well_state: Well state.

        """
        grid, ops, wells = self.grid, self.ops, self.wells
        pv = self.geo.pore_volume()
        nc = grid.num_cells
        np_ = state.num_phases
        nw = wells.number_of_wells

        assert well_state.bhp.size == nw

        self.fluid_data.compute_press_quant(state)

        z0all = state.surfacevol
        transi = self.geo.transmissibility()[ops.internal_faces]
        well_cells = wells.well_cells

        # Initialize Ad variables: p (cell pressures) and bhp (well bhp).
        p, bhp = initAdArrays([state.pressure.copy(), well_state.bhp.copy()])
        bpat = p.block_pattern

        # Compute T_ij * (p_i - p_j) and use for upwinding.
        nkgradp = transi * (ops.ngrad @ p)
        upwind = UpwindSelector(grid, ops, nkgradp.val)

        # Extract variables for perforation cell pressures and corresponding
        # perforation well pressures.
        p_perfcell = subset(p, well_cells)
        well_to_perf = wells.well_to_perforation()
        well_perf_dp = self.gravity_dp(state, well_state, wells)
        p_perfwell = well_to_perf @ bhp + well_perf_dp

        self.cell_residual = AdArray.constant(pv, bpat)
        self.phase_contributions = []
        for phase in range(np_):
            cell_B = self.fluid_data.fvf(phase, p)

            kr = self.fluid_data.phase_rel_perm(phase)
            mu = self.fluid_data.phase_viscosity(phase, p)
            mf = upwind.select(kr / mu)
            flux = mf * nkgradp

            face_B = upwind.select(cell_B)

            z0 = z0all[:, phase]
            q = self._phase_source(kr / mu, cell_B, p_perfcell, p_perfwell)

            component_contrib = pv * z0 + dt * (q - ops.div @ (flux / face_B))
            self.phase_contributions.append(component_contrib)
            self.cell_residual = self.cell_residual - cell_B * component_contrib

        logger.debug(
            f"Assembled pressure residual, max norm"
            f" {np.max(np.abs(self.cell_residual.val), initial=0):.3e}"
        )

    def _phase_source(
        self,
        mobility: AdArray,
        cell_B: AdArray,
        p_perfcell: AdArray,
        p_perfwell: AdArray,
    ) -> Union[AdArray, np.ndarray]:
        """Surface volume rate of a phase into each cell from the perforations.

        The perforation rate is ``WI * lambda / B * (p_perfwell - p_perfcell)``,
        evaluated with the mobility and formation volume factor of the perforated
        cell for both flow directions.

        """
        nc = self.grid.num_cells
        wells = self.wells
        if not self.well_sources or not np.any(wells.well_index != 0):
            return np.zeros(nc)

        cells = wells.well_cells
        lam_perf = subset(mobility, cells)
        B_perf = subset(cell_B, cells)
        q_perf = wells.well_index * (lam_perf / B_perf) * (p_perfwell - p_perfcell)
        return superset(q_perf, cells, nc)


class ImpesPressureModel:
    """Physical model wrapping the IMPES pressure assembly, to be driven by
    :class:`~resflow.numerics.nonlinear.nonlinear_solvers.NewtonSolver`.

    Saturation dependent quantities are frozen at the beginning of each step. The
    residual is measured relative to the pore volume.

    Parameters:
        impes: Pressure assembly.
        tolerance: Convergence tolerance of the scaled residual.
        terminal_output: Whether the Newton solver should report progress.

    """

    def __init__(
        self,
        impes: ImpesTPFAAD,
        tolerance: float = 1e-8,
        terminal_output: bool = False,
    ) -> None:
        self.impes = impes
        self.tolerance = tolerance
        self.terminal_output = terminal_output
        self.dt: float = 0.0
        self._saturation: Optional[np.ndarray] = None

    def prepare_step(
        self, dt: float, reservoir_state: ReservoirState, well_state: WellState
    ) -> None:
        self.dt = dt
        self.impes.fluid_data.compute_sat_quant(reservoir_state)
        self._saturation = reservoir_state.saturation.copy()

    def assemble(
        self,
        reservoir_state: ReservoirState,
        well_state: WellState,
        initial_assembly: bool,
    ) -> None:
        self.impes.assemble(self.dt, reservoir_state, well_state)

    def _scaled_residual(self) -> np.ndarray:
        assert self.impes.cell_residual is not None, "Assemble before use"
        return self.impes.cell_residual.val / self.impes.geo.pore_volume()

    def compute_residual_norms(self) -> list[float]:
        """Max-norm of the scaled residual weighted with the saturation of each
        phase."""
        assert self._saturation is not None, "Prepare the step before use"
        r = np.abs(self._scaled_residual())
        return [
            float(np.max(self._saturation[:, phase] * r, initial=0))
            for phase in range(self.num_phases())
        ]

    def get_convergence(self, dt: float, iteration: int) -> bool:
        residual = float(np.max(np.abs(self._scaled_residual()), initial=0))
        converged = residual < self.tolerance
        if self.terminal_output_enabled():
            logger.info(f"Iteration {iteration}: scaled residual {residual:.3e}")
        return converged

    def solve_jacobian_system(self) -> np.ndarray:
        return self.impes.solve_assembled()

    def update_state(
        self, dx: np.ndarray, reservoir_state: ReservoirState, well_state: WellState
    ) -> None:
        reservoir_state.pressure[:] = reservoir_state.pressure - dx

    def after_step(
        self, dt: float, reservoir_state: ReservoirState, well_state: WellState
    ) -> None:
        self._saturation = None

    def size_non_linear(self) -> int:
        return self.impes.grid.num_cells

    def num_phases(self) -> int:
        return self.impes.fluid_data.np

    def terminal_output_enabled(self) -> bool:
        return self.terminal_output

    def linear_iterations_last_solve(self) -> int:
        report = self.impes.last_report
        return 0 if report is None else report.iterations
