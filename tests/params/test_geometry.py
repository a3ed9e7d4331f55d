"""Tests of pore volumes and two-point transmissibilities."""
import numpy as np
import pytest

from resflow.grids.structured import CartGrid
from resflow.params.geometry import DerivedGeology


def test_pore_volume():
    g = CartGrid([2, 2], physdims=[2.0, 4.0])
    geo = DerivedGeology(g, permeability=1.0, porosity=np.array([0.1, 0.2, 0.3, 0.4]))
    assert np.allclose(geo.pore_volume(), [0.2, 0.4, 0.6, 0.8])


def test_uniform_1d_transmissibility():
    g = CartGrid(4)
    geo = DerivedGeology(g, permeability=1.0, porosity=1.0)
    t = geo.transmissibility()
    internal = g.get_internal_faces()
    boundary = g.get_boundary_faces()
    assert np.allclose(t[internal], 1)
    # Boundary faces only see the half transmissibility of the single neighbour
    assert np.allclose(t[boundary], 2)


def test_harmonic_average():
    g = CartGrid(2)
    geo = DerivedGeology(g, permeability=np.array([1.0, 3.0]), porosity=1.0)
    t = geo.transmissibility()
    # Half transmissibilities 2 * k, harmonic average 1 / (1 / 2 + 1 / 6)
    assert np.isclose(t[1], 1.5)


@pytest.mark.parametrize("kx, ky", [(1.0, 1.0), (2.0, 0.5)])
def test_diagonal_tensor_2d(kx, ky):
    g = CartGrid([2, 2], physdims=[2.0, 1.0])
    perm = np.vstack((np.full(4, kx), np.full(4, ky)))
    geo = DerivedGeology(g, permeability=perm, porosity=1.0)
    t = geo.transmissibility()
    # Cells are 1 x 0.5. x-face area 0.5, distance between centers 1.
    assert np.isclose(t[1], kx * 0.5 / 1.0)
    # y-face area 1, distance between centers 0.5. Face 6 + 2 connects cells 0, 2.
    assert np.isclose(t[8], ky * 1.0 / 0.5)
