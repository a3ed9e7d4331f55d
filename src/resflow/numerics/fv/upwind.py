"""Upstream selection of cell quantities on internal faces."""
from __future__ import annotations

from typing import Union

import numpy as np
import scipy.sparse as sps

from resflow.ad.forward_mode import AdArray
from resflow.grids.grid import Grid
from resflow.numerics.fv.operators import HelperOps


class UpwindSelector:
    """Pick the upstream cell value on each internal face.

    The upstream cell of a face is the first neighbour (in the ordering of
    ``HelperOps.nbi``) if the face flux is non-negative, and the second neighbour
    otherwise. Only the numeric flux values enter the decision, so the selection
    itself is not differentiated.

    Parameters:
        grid: The grid. Only used for the number of cells.
        ops: Discrete operators of the grid.
        ifaceflux: ``shape=(num_internal_faces,)`` Signed flux on internal faces.

    """

    def __init__(self, grid: Grid, ops: HelperOps, ifaceflux: np.ndarray) -> None:
        ifaceflux = np.asarray(ifaceflux)
        nif = ops.internal_faces.size
        if ifaceflux.size != nif:
            raise ValueError(
                f"Expected {nif} internal face fluxes, got {ifaceflux.size}"
            )

        # Index of the upstream neighbour per face
        upstream = np.where(ifaceflux >= 0, ops.nbi[:, 0], ops.nbi[:, 1])
        self.select_: sps.csr_matrix = sps.csr_matrix(
            (np.ones(nif), (np.arange(nif), upstream)),
            shape=(nif, grid.num_cells),
        )

    def select(self, x: Union[AdArray, np.ndarray]) -> Union[AdArray, np.ndarray]:
        """Face values of the cell quantity x, taken from the upstream cells."""
        return self.select_ @ x
