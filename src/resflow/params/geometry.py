"""Geometric rock properties derived from a grid: pore volumes and two-point
transmissibilities.
"""
from __future__ import annotations

from typing import Union

import numpy as np

from resflow.grids.grid import Grid
from resflow.utils.logging import time_logger

module_sections = ["parameters"]


class DerivedGeology:
    """Pore volumes and face transmissibilities of a grid.

    Parameters:
        grid: Grid with geometry.
        permeability: Either a scalar, a cell-wise isotropic permeability with
            ``shape=(num_cells,)``, or a cell-wise diagonal tensor with
            ``shape=(dim, num_cells)``.
        porosity: Scalar or cell-wise porosity.

    """

    def __init__(
        self,
        grid: Grid,
        permeability: Union[float, np.ndarray],
        porosity: Union[float, np.ndarray],
    ) -> None:
        self.grid = grid
        nc = grid.num_cells

        perm = np.asarray(permeability, dtype=float)
        if perm.ndim == 0 or perm.ndim == 1:
            perm = np.broadcast_to(perm, (nc,))
            perm = np.tile(perm, (3, 1))
        else:
            padded = np.ones((3, nc))
            padded[: perm.shape[0]] = perm
            perm = padded
        self._perm = perm

        poro = np.broadcast_to(np.asarray(porosity, dtype=float), (nc,))
        self._pore_volume = poro * grid.cell_volumes
        self._trans = self._tpfa_transmissibility()

    def pore_volume(self) -> np.ndarray:
        return self._pore_volume

    def transmissibility(self) -> np.ndarray:
        """Transmissibility of all faces. Boundary faces carry the half
        transmissibility of their single neighbour cell."""
        return self._trans

    @time_logger(sections=module_sections)
    def _tpfa_transmissibility(self) -> np.ndarray:
        g = self.grid
        fi, ci, sgn = _find(g)

        # Normal vectors and permeability for each face (here and there side)
        n = g.face_normals[:, fi] * sgn
        perm = self._perm[:, ci]

        # Distance from face center to cell center
        fc_cc = g.face_centers[:, fi] - g.cell_centers[:, ci]

        t_face = (perm * n * fc_cc).sum(axis=0)
        dist_face_cell = np.power(fc_cc, 2).sum(axis=0)
        t_face = np.divide(t_face, dist_face_cell)

        # Harmonic average of the half transmissibilities
        t = 1 / np.bincount(fi, weights=1 / t_face, minlength=g.num_faces)
        return t


def _find(g: Grid):
    cf = g.cell_faces.tocoo()
    return cf.row, cf.col, cf.data
