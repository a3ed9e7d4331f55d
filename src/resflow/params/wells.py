"""Well connection table.

Wells are described in compressed row format: the perforations of well ``w`` are
``well_connpos[w]:well_connpos[w + 1]``, and perforation ``i`` is located in cell
``well_cells[i]``.
"""
from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import scipy.sparse as sps


class Wells:
    """Well and perforation topology.

    Parameters:
        well_connpos: ``shape=(num_wells + 1,)`` Start of the perforation range of
            each well, with a trailing end marker.
        well_cells: ``shape=(num_perforations,)`` Perforated cells.
        well_index: ``shape=(num_perforations,)`` Connection transmissibility
            (well index) of each perforation. Defaults to zero, meaning the
            perforations do not exchange fluid with the reservoir.
        names: Optional well names.

    """

    def __init__(
        self,
        well_connpos: Sequence[int],
        well_cells: Sequence[int],
        well_index: Optional[Sequence[float]] = None,
        names: Optional[list[str]] = None,
    ) -> None:
        self.well_connpos = np.asarray(well_connpos, dtype=int)
        self.well_cells = np.asarray(well_cells, dtype=int)
        if well_index is None:
            well_index = np.zeros(self.well_cells.size)
        self.well_index = np.asarray(well_index, dtype=float)

        if self.well_connpos.size == 0 or self.well_connpos[0] != 0:
            raise ValueError("Perforation ranges must start at zero")
        if np.any(np.diff(self.well_connpos) < 0):
            raise ValueError("Perforation ranges must be non-decreasing")
        if self.well_connpos[-1] != self.well_cells.size:
            raise ValueError(
                f"Perforation ranges cover {self.well_connpos[-1]} perforations,"
                f" but {self.well_cells.size} perforated cells are given"
            )
        if self.well_index.size != self.well_cells.size:
            raise ValueError("One well index per perforation is required")

        if names is None:
            names = [f"well_{w}" for w in range(self.number_of_wells)]
        self.names = names

    @classmethod
    def empty(cls) -> Wells:
        """Well table without wells."""
        return cls([0], [])

    @classmethod
    def from_cells(
        cls, cells: Sequence[int], well_index: Optional[Sequence[float]] = None
    ) -> Wells:
        """One single-perforation well per given cell."""
        cells = np.asarray(cells, dtype=int)
        return cls(np.arange(cells.size + 1), cells, well_index)

    @property
    def number_of_wells(self) -> int:
        return self.well_connpos.size - 1

    @property
    def num_perforations(self) -> int:
        return self.well_cells.size

    def well_to_perforation(self) -> sps.csr_matrix:
        """Incidence matrix with one row per perforation and one column per well.

        Element ``(perf, w)`` is 1 if perforation ``perf`` belongs to well ``w``.

        """
        nw = self.number_of_wells
        num_perf = np.diff(self.well_connpos)
        rows = np.arange(self.num_perforations)
        cols = np.repeat(np.arange(nw), num_perf)
        data = np.ones(self.num_perforations)
        return sps.csr_matrix(
            (data, (rows, cols)), shape=(self.num_perforations, nw)
        )

    def __repr__(self) -> str:
        return (
            f"Wells with {self.number_of_wells} wells and"
            f" {self.num_perforations} perforations"
        )
