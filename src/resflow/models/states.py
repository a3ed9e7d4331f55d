"""Reservoir and well states.

The states are owned by the caller and are mutated in place by the solvers, only at
the end of a successful update.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np


@dataclass
class ReservoirState:
    """Cell-wise primary and derived variables of the reservoir.

    Attributes:
        pressure: ``shape=(num_cells,)`` Cell pressures.
        saturation: ``shape=(num_cells, num_phases)`` Phase saturations.
        surfacevol: ``shape=(num_cells, num_phases)`` Surface volumes per unit pore
            volume.

    """

    pressure: np.ndarray
    saturation: np.ndarray
    surfacevol: np.ndarray

    def __post_init__(self) -> None:
        self.pressure = np.asarray(self.pressure, dtype=float)
        self.saturation = np.atleast_2d(np.asarray(self.saturation, dtype=float))
        self.surfacevol = np.atleast_2d(np.asarray(self.surfacevol, dtype=float))
        if self.saturation.shape[0] != self.pressure.size:
            # A single phase given as a flat cell vector
            self.saturation = self.saturation.reshape(self.pressure.size, -1)
        if self.surfacevol.shape[0] != self.pressure.size:
            self.surfacevol = self.surfacevol.reshape(self.pressure.size, -1)

    @classmethod
    def uniform(
        cls,
        num_cells: int,
        pressure: float,
        saturation: list[float],
        surfacevol: Optional[list[float]] = None,
    ) -> ReservoirState:
        """State with the same values in all cells.

        Parameters:
            num_cells: Number of cells.
            pressure: Pressure.
            saturation: Saturation of each phase.
            surfacevol: Surface volume of each phase. Defaults to the saturations,
                corresponding to unit reciprocal formation volume factors.

        """
        saturation = np.asarray(saturation, dtype=float)
        if surfacevol is None:
            surfacevol = saturation
        return cls(
            pressure=np.full(num_cells, pressure, dtype=float),
            saturation=np.tile(saturation, (num_cells, 1)),
            surfacevol=np.tile(np.asarray(surfacevol, dtype=float), (num_cells, 1)),
        )

    @property
    def num_cells(self) -> int:
        return self.pressure.size

    @property
    def num_phases(self) -> int:
        return self.saturation.shape[1]


@dataclass
class WellState:
    """Well variables.

    Attributes:
        bhp: ``shape=(num_wells,)`` Bottom-hole pressures.

    """

    bhp: np.ndarray = field(default_factory=lambda: np.zeros(0))

    def __post_init__(self) -> None:
        self.bhp = np.atleast_1d(np.asarray(self.bhp, dtype=float))

    @property
    def num_wells(self) -> int:
        return self.bhp.size
