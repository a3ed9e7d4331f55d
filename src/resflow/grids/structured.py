""" Module containing the constructor for Cartesian grids.

Acknowledgements:
    The ordering of cells and faces follows the convention of the Matlab Reservoir
    Simulation Toolbox (MRST) developed by SINTEF ICT: cells are numbered with the
    x-index running fastest, and faces are numbered direction by direction, first
    the faces with normal vectors in the x-direction, then y, then z.

"""
import numpy as np
import scipy.sparse as sps

from resflow.grids.grid import Grid
from resflow.utils.logging import time_logger

module_sections = ["grids"]


class CartGrid(Grid):
    """Representation of a 1D, 2D or 3D Cartesian grid.

    For information on attributes and methods, see the documentation of the
    parent Grid class.

    """

    @time_logger(sections=module_sections)
    def __init__(self, nx, physdims=None):
        """
        Constructor for Cartesian grid

        Parameters
            nx (int or np.ndarray): Number of cells in each direction.
            physdims (float or np.ndarray): Physical dimensions in each direction.
                Defaults to same as nx, that is, cells of unit size.
        """
        nx = np.atleast_1d(np.asarray(nx, dtype=int))
        if physdims is None:
            physdims = nx
        physdims = np.atleast_1d(np.asarray(physdims, dtype=float))

        if nx.size > 3 or nx.size == 0:
            raise ValueError(
                "Cartesian grid only implemented for up to three dimensions"
            )
        if nx.shape != physdims.shape:
            raise ValueError("Number of cells and physical dimensions do not match")

        self.cart_dims = nx
        h = physdims / nx
        topology = self._create_topology(nx, h)
        super().__init__(nx.size, *topology, name="CartGrid")

    @staticmethod
    def _create_topology(nx, h):
        """Compute cell-face map and geometry for a tensor product of uniform
        intervals.

        This is really a part of the constructor, but put it here to improve
        readability.

        """
        dim = nx.size
        num_cells = int(np.prod(nx))
        cell_index = np.arange(num_cells).reshape(nx, order="F")

        centers_1d = [(np.arange(n) + 0.5) * hh for n, hh in zip(nx, h)]
        mesh = np.meshgrid(*centers_1d, indexing="ij")
        cell_centers = np.zeros((3, num_cells))
        for d in range(dim):
            cell_centers[d] = mesh[d].ravel(order="F")
        cell_volumes = np.full(num_cells, np.prod(h))

        rows, cols, data = [], [], []
        face_centers, face_normals = [], []
        offset = 0
        for d in range(dim):
            nf = nx.copy()
            nf[d] += 1
            num_faces_d = int(np.prod(nf))
            face_index = offset + np.arange(num_faces_d).reshape(nf, order="F")

            # Face m in direction d is the lower face of cell m and the upper face
            # of cell m - 1. Normals point in the positive coordinate direction.
            lower = [slice(None)] * dim
            lower[d] = slice(0, nx[d])
            upper = [slice(None)] * dim
            upper[d] = slice(1, nx[d] + 1)

            rows += [
                face_index[tuple(lower)].ravel(order="F"),
                face_index[tuple(upper)].ravel(order="F"),
            ]
            cols += [cell_index.ravel(order="F")] * 2
            data += [-np.ones(num_cells), np.ones(num_cells)]

            coords = list(centers_1d)
            coords[d] = np.arange(nx[d] + 1) * h[d]
            face_mesh = np.meshgrid(*coords, indexing="ij")
            fc = np.zeros((3, num_faces_d))
            for e in range(dim):
                fc[e] = face_mesh[e].ravel(order="F")
            fn = np.zeros((3, num_faces_d))
            fn[d] = np.prod(h) / h[d]

            face_centers.append(fc)
            face_normals.append(fn)
            offset += num_faces_d

        cell_faces = sps.csc_matrix(
            (np.hstack(data), (np.hstack(rows), np.hstack(cols))),
            shape=(offset, num_cells),
        )
        return (
            cell_faces,
            cell_centers,
            cell_volumes,
            np.hstack(face_centers),
            np.hstack(face_normals),
        )
