"""Forward mode automatic differentiation with block-structured Jacobians.

An :class:`AdArray` pairs a value vector with the sparse Jacobian of that value with
respect to an ordered set of variable groups (for instance cell pressures and well
bottom-hole pressures). The Jacobian is stored as a single sparse matrix whose
columns are partitioned according to the ``block_pattern``, the tuple of sizes of
the variable groups. Arithmetic between two Ad arrays is only defined when their
block patterns agree; a mismatch is a programming error and raises a ValueError.

"""
from __future__ import annotations

from typing import Optional, Sequence, Union

import numpy as np
import scipy.sparse as sps

__all__ = ["AdArray", "initAdArrays", "spdiag"]


def spdiag(a: np.ndarray) -> sps.csr_matrix:
    """Sparse diagonal matrix with the entries of a on the diagonal."""
    a = np.atleast_1d(np.asarray(a, dtype=float))
    if a.size == 0:
        return sps.csr_matrix((0, 0))
    return sps.diags(a, format="csr")


def initAdArrays(variables):
    """Initialize a set of primary variables.

    Parameters:
        variables (np.ndarray or list of np.ndarray): Values of the variables. If a
            single array is given, a single Ad array with an identity Jacobian is
            returned.

    Returns:
        AdArray or list of AdArray: Variable i has an identity Jacobian in block i
            and zero blocks elsewhere.

    """
    if not isinstance(variables, list):
        val = np.atleast_1d(np.asarray(variables, dtype=float))
        return AdArray(val, sps.identity(val.size, format="csr"))

    num_val = [np.asarray(v).size for v in variables]
    block_pattern = tuple(num_val)
    ad_arrays = []
    for i, val in enumerate(variables):
        n = num_val[i]
        # initiate zero jacobian
        jac = [sps.csr_matrix((n, m)) for m in num_val]
        # set jacobian of variable i to I
        jac[i] = sps.identity(n, format="csr")
        ad_arrays.append(
            AdArray(
                np.atleast_1d(np.asarray(val, dtype=float)),
                _hstack(jac, n),
                block_pattern,
            )
        )

    return ad_arrays


class AdArray:
    """Value and Jacobian pair for forward mode automatic differentiation.

    Parameters:
        val: Value vector.
        jac: Sparse Jacobian of the value, one row per entry in ``val``.
        block_pattern: Sizes of the variable groups the columns of ``jac`` are
            partitioned into. Defaults to a single block.

    """

    # Make numpy defer to the reflected operators of this class, so that
    # np.ndarray * AdArray is evaluated by AdArray.__rmul__.
    __array_ufunc__ = None

    def __init__(
        self,
        val: np.ndarray,
        jac: sps.spmatrix,
        block_pattern: Optional[Sequence[int]] = None,
    ) -> None:
        self.val = val
        self.jac = sps.csr_matrix(jac)
        if block_pattern is None:
            block_pattern = (self.jac.shape[1],)
        self.block_pattern = tuple(int(b) for b in block_pattern)

        if sum(self.block_pattern) != self.jac.shape[1]:
            raise ValueError(
                f"Block pattern {self.block_pattern} is incompatible with a Jacobian"
                f" of {self.jac.shape[1]} columns"
            )

    @classmethod
    def constant(cls, val: np.ndarray, block_pattern: Sequence[int]) -> AdArray:
        """Ad array with the given value and a zero Jacobian."""
        val = np.atleast_1d(np.asarray(val, dtype=float))
        jac = sps.csr_matrix((val.size, sum(block_pattern)))
        return cls(val.copy(), jac, block_pattern)

    @classmethod
    def function(cls, val: np.ndarray, jac_blocks: Sequence[sps.spmatrix]) -> AdArray:
        """Ad array with the given value and Jacobian blocks.

        The block pattern is the list of column counts of ``jac_blocks``.

        """
        val = np.atleast_1d(np.asarray(val, dtype=float))
        for J in jac_blocks:
            if J.shape[0] != val.size:
                raise ValueError(
                    f"Jacobian block with {J.shape[0]} rows for value of size"
                    f" {val.size}"
                )
        block_pattern = [J.shape[1] for J in jac_blocks]
        return cls(val, _hstack(jac_blocks, val.size), block_pattern)

    def __repr__(self) -> str:
        return (
            f"Ad array of size {self.val.size} with block pattern"
            f" {list(self.block_pattern)}"
        )

    def num_blocks(self) -> int:
        return len(self.block_pattern)

    def derivative(self) -> list[sps.csr_matrix]:
        """Split the Jacobian into the blocks given by the block pattern."""
        offsets = np.hstack((0, np.cumsum(self.block_pattern))).astype(int)
        return [
            self.jac[:, offsets[i] : offsets[i + 1]]
            for i in range(len(self.block_pattern))
        ]

    def value(self) -> np.ndarray:
        return self.val

    def __add__(self, other):
        b = self._cast(other)
        return AdArray(self.val + b.val, self.jac + b.jac, self.block_pattern)

    def __radd__(self, other):
        return self.__add__(other)

    def __sub__(self, other):
        b = self._cast(other)
        return AdArray(self.val - b.val, self.jac - b.jac, self.block_pattern)

    def __rsub__(self, other):
        return -self.__sub__(other)

    def __mul__(self, other):
        if not isinstance(other, AdArray):
            val = self.val * other
            if isinstance(other, np.ndarray):
                jac = self.diagvec_mul_jac(other)
            else:
                jac = self.jac * other
            return AdArray(val, jac, self.block_pattern)

        self._check_pattern(other)
        val = self.val * other.val
        jac = self.diagvec_mul_jac(other.val) + other.diagvec_mul_jac(self.val)
        return AdArray(val, jac, self.block_pattern)

    def __rmul__(self, other):
        if isinstance(other, AdArray):
            # other is an Ad array, so __mul__ should have been called
            raise RuntimeError("Something went horribly wrong")
        return self.__mul__(other)

    def __truediv__(self, other):
        if not isinstance(other, AdArray):
            return self * (1.0 / np.asarray(other, dtype=float))

        self._check_pattern(other)
        val = self.val / other.val
        jac = self.diagvec_mul_jac(1.0 / other.val) - other.diagvec_mul_jac(
            self.val / other.val**2
        )
        return AdArray(val, jac, self.block_pattern)

    def __rtruediv__(self, other):
        if isinstance(other, AdArray):
            raise RuntimeError("Something went horribly wrong")
        val = other / self.val
        jac = self.diagvec_mul_jac(-other / self.val**2)
        return AdArray(val, jac, self.block_pattern)

    def __pow__(self, other):
        if isinstance(other, AdArray):
            self._check_pattern(other)
            val = self.val**other.val
            jac = self.diagvec_mul_jac(
                other.val * self.val ** (other.val - 1)
            ) + other.diagvec_mul_jac(val * np.log(self.val))
        else:
            val = self.val**other
            jac = self.diagvec_mul_jac(other * self.val ** (other - 1))
        return AdArray(val, jac, self.block_pattern)

    def __neg__(self):
        return AdArray(-self.val, -self.jac, self.block_pattern)

    def __rmatmul__(self, other):
        # other is a sparse (or dense) matrix acting on this array from the left
        if isinstance(other, AdArray):
            raise RuntimeError("Something went horribly wrong")
        return AdArray(
            other @ self.val, sps.csr_matrix(other @ self.jac), self.block_pattern
        )

    def copy(self) -> AdArray:
        return AdArray(self.val.copy(), self.jac.copy(), self.block_pattern)

    def diagvec_mul_jac(self, a: Union[np.ndarray, float]) -> sps.csr_matrix:
        """Multiply the Jacobian from the left by a diagonal matrix."""
        a = np.broadcast_to(np.asarray(a, dtype=float), (self.val.size,))
        return spdiag(a) @ self.jac

    def _check_pattern(self, other: AdArray) -> None:
        if self.block_pattern != other.block_pattern:
            raise ValueError(
                f"Incompatible block patterns {list(self.block_pattern)} and"
                f" {list(other.block_pattern)}"
            )

    def _cast(self, other) -> AdArray:
        """Represent other as an Ad array with the block pattern of self."""
        if isinstance(other, AdArray):
            self._check_pattern(other)
            return other
        val = np.broadcast_to(np.asarray(other, dtype=float), self.val.shape)
        return AdArray(val, sps.csr_matrix(self.jac.shape), self.block_pattern)


def _hstack(blocks: Sequence[sps.spmatrix], num_rows: int) -> sps.csr_matrix:
    """Horizontal concatenation of sparse blocks, allowing empty blocks."""
    nonempty = [sps.csr_matrix(b) for b in blocks if b.shape[1] > 0]
    if len(nonempty) == 0:
        return sps.csr_matrix((num_rows, 0))
    return sps.hstack(nonempty, format="csr")
