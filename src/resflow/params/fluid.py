"""Fluid property models consumed by the pressure assembly.

The assembly only relies on the :class:`FluidModel` protocol. The implementation
:class:`LinearlyCompressibleFluid` is a minimal immiscible black-oil type fluid with
linearly pressure dependent reciprocal formation volume factors, constant
viscosities and Corey type relative permeabilities.

All property functions follow the same calling convention: the number of cells, the
cell-wise (row-major) input arrays and the cells the values refer to. Phase
quantities are returned as ``shape=(n, num_phases)`` arrays; the phase coupling
matrix is returned row-major with ``shape=(n, num_phases**2)``.

"""
from __future__ import annotations

from typing import Optional, Protocol, Sequence, Union

import numpy as np


class FluidModel(Protocol):
    """Declaration of the fluid capabilities used by the pressure assembly."""

    @property
    def num_phases(self) -> int:
        """Number of fluid phases."""

    def relperm(
        self, n: int, s: np.ndarray, cells: np.ndarray
    ) -> tuple[np.ndarray, Optional[np.ndarray]]:
        """Relative permeabilities and, optionally, their saturation derivatives."""

    def matrix(
        self, n: int, p: np.ndarray, z: np.ndarray, cells: np.ndarray
    ) -> tuple[np.ndarray, np.ndarray]:
        """Phase coupling matrix A, mapping reservoir to surface volumes, and its
        derivative with respect to pressure."""

    def viscosity(
        self, n: int, p: np.ndarray, z: np.ndarray, cells: np.ndarray
    ) -> tuple[np.ndarray, Optional[np.ndarray]]:
        """Phase viscosities and, optionally, their pressure derivatives."""


class LinearlyCompressibleFluid:
    """Immiscible fluid with linearly compressible phases.

    The reciprocal formation volume factor of phase j is

        b_j(p) = b_ref_j * (1 + c_j * (p - p_ref)),

    and the phase coupling matrix is ``diag(b)``. Viscosities are constant, and
    relative permeabilities are ``kr_j = s_j ** n_j``.

    Parameters:
        num_phases: Number of phases.
        b_ref: Reciprocal formation volume factors at the reference pressure.
        compressibility: Phase compressibilities.
        p_ref: Reference pressure.
        viscosity: Phase viscosities.
        corey_exponents: Relative permeability exponents.

    """

    def __init__(
        self,
        num_phases: int = 1,
        b_ref: Union[float, Sequence[float]] = 1.0,
        compressibility: Union[float, Sequence[float]] = 0.0,
        p_ref: float = 0.0,
        viscosity: Union[float, Sequence[float]] = 1.0,
        corey_exponents: Union[float, Sequence[float]] = 1.0,
    ) -> None:
        self._np = num_phases
        self.b_ref = self._per_phase(b_ref)
        self.compressibility = self._per_phase(compressibility)
        self.p_ref = p_ref
        self.mu = self._per_phase(viscosity)
        self.corey_exponents = self._per_phase(corey_exponents)

    @property
    def num_phases(self) -> int:
        return self._np

    def _per_phase(self, value) -> np.ndarray:
        value = np.broadcast_to(np.asarray(value, dtype=float), (self._np,))
        return value.copy()

    def relperm(self, n, s, cells):
        s = np.reshape(s, (n, self._np))
        s = np.clip(s, 0, 1)
        kr = np.power(s, self.corey_exponents)
        dkr = self.corey_exponents * np.power(s, self.corey_exponents - 1)
        return kr, dkr

    def b(self, p: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Reciprocal formation volume factors and their pressure derivatives,
        both with ``shape=(n, num_phases)``."""
        dp = np.reshape(p, (-1, 1)) - self.p_ref
        b = self.b_ref * (1 + self.compressibility * dp)
        db = np.broadcast_to(self.b_ref * self.compressibility, b.shape).copy()
        return b, db

    def matrix(self, n, p, z, cells):
        b, db = self.b(np.asarray(p)[:n])
        A = np.zeros((n, self._np, self._np))
        dA = np.zeros((n, self._np, self._np))
        diag = np.arange(self._np)
        A[:, diag, diag] = b
        dA[:, diag, diag] = db
        return A.reshape(n, -1), dA.reshape(n, -1)

    def viscosity(self, n, p, z, cells):
        mu = np.tile(self.mu, (n, 1))
        return mu, np.zeros_like(mu)
