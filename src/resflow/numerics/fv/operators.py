"""Discrete differential operators on the internal faces of a grid.

The operators act between cell quantities and quantities on the internal faces,
that is faces shared by two cells. Boundary faces are not represented, which
amounts to no-flow conditions on the domain boundary.
"""
import numpy as np
import scipy.sparse as sps

from resflow.grids.grid import Grid
from resflow.utils.logging import time_logger

module_sections = ["numerics", "assembly"]


class HelperOps:
    """Gradient and divergence operators for two-point discretizations.

    Attributes:
        internal_faces (np.ndarray): Indices of faces with two neighbour cells.
        nbi (np.ndarray): ``shape=(num_internal_faces, 2)`` Neighbour cells of each
            internal face. The face normal points from the first to the second cell.
        ngrad (sps.csr_matrix): ``shape=(num_internal_faces, num_cells)``
            Negative gradient, ``(ngrad @ x)[i] = x[nbi[i, 0]] - x[nbi[i, 1]]``.
        grad (sps.csr_matrix): The gradient, ``-ngrad``.
        div (sps.csr_matrix): ``shape=(num_cells, num_internal_faces)`` Divergence
            of face fluxes oriented along the face normals, ``ngrad.T``.

    """

    @time_logger(sections=module_sections)
    def __init__(self, grid: Grid) -> None:
        nc = grid.num_cells
        neighs = grid.cell_face_as_dense()

        self.internal_faces = np.flatnonzero(np.all(neighs >= 0, axis=0))
        self.nbi = neighs[:, self.internal_faces].T

        nif = self.internal_faces.size
        rows = np.hstack((np.arange(nif), np.arange(nif)))
        cols = np.hstack((self.nbi[:, 0], self.nbi[:, 1]))
        data = np.hstack((np.ones(nif), -np.ones(nif)))

        self.ngrad = sps.csr_matrix((data, (rows, cols)), shape=(nif, nc))
        self.grad = -self.ngrad
        self.div = self.ngrad.T.tocsr()
