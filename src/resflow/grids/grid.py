"""Module containing the grid class used by the discretization.

The grid stores the topology as a sparse cell-face map, together with the cell and
face geometry needed by the two-point flux approximation. The data structure is
inspired by that of the Matlab Reservoir Simulation Toolbox (MRST).

"""
from __future__ import annotations

from typing import Optional

import numpy as np
import scipy.sparse as sps


class Grid:
    """Grid topology and geometry.

    Parameters:
        dim: Grid dimension.
        cell_faces: ``shape=(num_faces, num_cells)``

            Map from cells to their faces. Matrix elements have value +-1, where +
            corresponds to the face normal vector pointing out of the cell.
        cell_centers: ``shape=(3, num_cells)``
        cell_volumes: ``shape=(num_cells,)``
        face_centers: ``shape=(3, num_faces)``
        face_normals: ``shape=(3, num_faces)``

            Face normals scaled with the face area.
        name: Name of grid.

    """

    def __init__(
        self,
        dim: int,
        cell_faces: sps.spmatrix,
        cell_centers: np.ndarray,
        cell_volumes: np.ndarray,
        face_centers: np.ndarray,
        face_normals: np.ndarray,
        name: Optional[str] = None,
    ) -> None:
        if not (dim >= 0 and dim <= 3):
            raise ValueError("A grid has to be of dimension 0, 1, 2, or 3.")

        self.dim: int = dim
        self.cell_faces: sps.csc_matrix = sps.csc_matrix(cell_faces)
        self.cell_faces.data = self.cell_faces.data.astype(int)
        self.num_faces, self.num_cells = self.cell_faces.shape

        self.cell_centers = np.asarray(cell_centers, dtype=float)
        self.cell_volumes = np.asarray(cell_volumes, dtype=float)
        self.face_centers = np.asarray(face_centers, dtype=float)
        self.face_normals = np.asarray(face_normals, dtype=float)
        self.face_areas = np.sqrt(np.power(self.face_normals, 2).sum(axis=0))
        self.name = "Grid" if name is None else name

        assert self.cell_centers.shape == (3, self.num_cells)
        assert self.cell_volumes.shape == (self.num_cells,)
        assert self.face_centers.shape == (3, self.num_faces)
        assert self.face_normals.shape == (3, self.num_faces)

    def __repr__(self) -> str:
        s = f"{self.name} in {self.dim} dimensions.\n"
        s += "Number of cells " + str(self.num_cells) + "\n"
        s += "Number of faces " + str(self.num_faces)
        return s

    def cell_face_as_dense(self) -> np.ndarray:
        """Obtain the cell-face relation in the form of two rows.

        Each column in the array corresponds to a face, and the elements in that column
        refers to cell indices. The value -1 signifies a boundary. The normal vector of
        the face points from the first to the second row.

        Returns:
            Array representation of face-cell relations with ``shape=(2, num_faces)``.

        """
        neighs = -np.ones((2, self.num_faces), dtype=int)
        fi, ci, sgn = sps.find(self.cell_faces)
        # The normal points out of the cell in the first row
        neighs[0, fi[sgn > 0]] = ci[sgn > 0]
        neighs[1, fi[sgn < 0]] = ci[sgn < 0]
        return neighs

    def get_internal_faces(self) -> np.ndarray:
        """
        Returns:
            An array with ``shape=(num_internal_faces,)`` containing indices of faces
            shared by two cells.

        """
        neighs = self.cell_face_as_dense()
        return np.flatnonzero(np.all(neighs >= 0, axis=0))

    def get_boundary_faces(self) -> np.ndarray:
        neighs = self.cell_face_as_dense()
        return np.flatnonzero(np.any(neighs < 0, axis=0))
