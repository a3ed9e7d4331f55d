"""Pressure and saturation dependent fluid quantities, exposed as Ad arrays."""
from __future__ import annotations

from typing import Optional

import numpy as np
import scipy.sparse as sps

from resflow.ad.forward_mode import AdArray, spdiag
from resflow.models.states import ReservoirState
from resflow.params.fluid import FluidModel
from resflow.utils.logging import time_logger

module_sections = ["models"]


class PressureDependentFluidData:
    """Cell-wise fluid quantities evaluated from a reservoir state.

    The formation volume factors and viscosities depend on pressure, and are
    recomputed by :meth:`compute_press_quant`. The relative permeabilities depend on
    saturation, and are recomputed by :meth:`compute_sat_quant`. The accessors
    return the values of the most recent recomputation, so both hooks must be
    called with the current state before the accessors are used.

    Since the properties are local to each cell, their Jacobians with respect to the
    cell pressures are diagonal. They do not depend on any other variable group.

    Parameters:
        nc: Number of cells.
        fluid: Fluid model.

    """

    def __init__(self, nc: int, fluid: FluidModel) -> None:
        self.nc = nc
        self.np = fluid.num_phases
        self.cells = np.arange(nc)
        self.fluid = fluid

        np_ = self.np
        # Pressure dependent quantities (essentially B and mu)
        self.A = np.zeros((nc, np_ * np_))
        self.dA = np.zeros((nc, np_ * np_))
        self.mu = np.zeros((nc, np_))
        self.dmu = np.zeros((nc, np_))

        # Saturation dependent quantities (rel-perm only), None until computed
        self.kr: Optional[np.ndarray] = None

    @time_logger(sections=module_sections)
    def compute_sat_quant(self, state: ReservoirState) -> None:
        s = state.saturation

        assert s.size == self.nc * self.np

        # Ignore rel-perm derivatives
        kr, _ = self.fluid.relperm(self.nc, s.ravel(), self.cells)
        self.kr = np.reshape(kr, (self.nc, self.np)).copy()

    @time_logger(sections=module_sections)
    def compute_press_quant(self, state: ReservoirState) -> None:
        p = state.pressure
        z = state.surfacevol

        assert p.size == self.nc * 1
        assert z.size == self.nc * self.np

        A, dA = self.fluid.matrix(self.nc, p, z.ravel(), self.cells)
        self.A = np.reshape(A, (self.nc, self.np * self.np)).copy()
        self.dA = np.reshape(dA, (self.nc, self.np * self.np)).copy()

        mu, dmu = self.fluid.viscosity(self.nc, p, z.ravel(), self.cells)
        self.mu = np.reshape(mu, (self.nc, self.np)).copy()
        if dmu is None:
            self.dmu = np.zeros_like(self.mu)
        else:
            self.dmu = np.reshape(dmu, (self.nc, self.np)).copy()

    def fvf(self, phase: int, p: AdArray) -> AdArray:
        """Formation volume factor of a phase, the reciprocal of the diagonal entry
        of the phase coupling matrix.

        Parameters:
            phase: Phase index.
            p: Cell pressure variable; block 0 of its block pattern is the pressure.

        """
        assert 0 <= phase
        assert phase < self.np

        A = self.A[:, phase * (self.np + 1)]
        dA = self.dA[:, phase * (self.np + 1)]
        return 1.0 / AdArray.function(A, self._pressure_jacobian(dA, p))

    def phase_rel_perm(self, phase: int) -> np.ndarray:
        """Relative permeability of a phase. Not an Ad array, as derivatives with
        respect to saturation are not needed."""
        assert 0 <= phase
        assert phase < self.np
        assert self.kr is not None, "compute_sat_quant before assembly"

        return self.kr[:, phase].copy()

    def phase_viscosity(self, phase: int, p: AdArray) -> AdArray:
        assert 0 <= phase
        assert phase < self.np

        mu = self.mu[:, phase]
        dmu = self.dmu[:, phase]
        return AdArray.function(mu, self._pressure_jacobian(dmu, p))

    def _pressure_jacobian(self, d: np.ndarray, p: AdArray) -> list:
        """Jacobian blocks of a cell-wise function of pressure: diag(d) with respect
        to the pressure, zero with respect to all other variable groups."""
        pattern = p.block_pattern
        assert pattern[0] == self.nc

        jac = [sps.csr_matrix((self.nc, n)) for n in pattern]
        jac[0] = spdiag(d)
        return jac
