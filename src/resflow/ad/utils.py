"""Helpers for restricting and extending Ad arrays and plain vectors."""
from __future__ import annotations

from typing import Union

import numpy as np
import scipy.sparse as sps

from resflow.ad.forward_mode import AdArray, spdiag

__all__ = ["spdiag", "subset", "superset", "selection_matrix"]


def selection_matrix(indices: np.ndarray, n: int) -> sps.csr_matrix:
    """Matrix picking the rows ``indices`` out of a vector of length n."""
    indices = np.asarray(indices, dtype=int)
    data = np.ones(indices.size)
    rows = np.arange(indices.size)
    return sps.csr_matrix((data, (rows, indices)), shape=(indices.size, n))


def subset(
    x: Union[AdArray, np.ndarray], indices: np.ndarray
) -> Union[AdArray, np.ndarray]:
    """Restrict x to the entries given by indices.

    For an Ad array the Jacobian rows are restricted alongside the values.

    """
    if isinstance(x, AdArray):
        return selection_matrix(indices, x.val.size) @ x
    return np.asarray(x)[np.asarray(indices, dtype=int)]


def superset(
    x: Union[AdArray, np.ndarray], indices: np.ndarray, n: int
) -> Union[AdArray, np.ndarray]:
    """Extend x to a vector of length n, with x placed at the given indices.

    Repeated indices are summed. Entries not covered by indices are zero.

    """
    return selection_matrix(indices, n).T.tocsr() @ x
