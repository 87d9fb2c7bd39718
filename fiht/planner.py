"""
Dimension/parity planning and index maps for the multi-level Hankel lifting.

A tensor x of shape (n1, n2, n3) is lifted into the (never materialized)
multi-level Hankel matrix

    H[(a1, a2, a3), (b1, b2, b3)] = x[a1 + b1, a2 + b2, a3 + b3]

with row blocks 0 <= a_k < p_k and column blocks 0 <= b_k < q_k, where

    p = (n + 1) / 2,  q = p       for odd n
    p = n / 2,        q = p + 1   for even n

so that p + q - 1 = n on every axis. Block-local coordinates are flattened
in C order, the same order used by ``np.reshape`` on the factor columns.

This module provides:
- Per-axis tent sequences and the multiplicity tensor DD
- Linear index tables (index maps) for the blocks used by the operator
- HankelPlan: everything that depends only on (n1, n2, n3)
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np


Shape3 = Tuple[int, int, int]


def half_dimensions(n: int) -> Tuple[int, int]:
    """
    Row/column block extents (p, q) of one axis.

    Parameters
    ----------
    n : int
        Axis length (n >= 1)

    Returns
    -------
    p : int
        Row block extent
    q : int
        Column block extent, q = n + 1 - p

    Examples
    --------
    >>> half_dimensions(5)
    (3, 3)
    >>> half_dimensions(4)
    (2, 3)
    """
    if n < 1:
        raise ValueError(f"Axis length must be >= 1, got {n}")

    if n % 2:
        p = (n + 1) // 2
    else:
        p = n // 2

    return p, n + 1 - p


def tent(n: int) -> np.ndarray:
    """
    Per-axis multiplicity sequence.

    Entry k counts the pairs (a, b), 0 <= a < p, 0 <= b < q with a + b = k.
    Odd n gives 1, 2, ..., p, ..., 2, 1; even n duplicates the peak:
    1, 2, ..., p, p, ..., 2, 1.

    Examples
    --------
    >>> tent(5)
    array([1., 2., 3., 2., 1.])
    >>> tent(4)
    array([1., 2., 2., 1.])
    """
    p, _ = half_dimensions(n)
    rising = np.arange(1, p + 1, dtype=np.float64)

    if n % 2:
        return np.concatenate([rising, rising[-2::-1]])

    return np.concatenate([rising, rising[::-1]])


def multiplicity_tensor(shape: Shape3) -> np.ndarray:
    """
    Multiplicity tensor DD of shape (n1, n2, n3).

    DD[i, j, k] is the number of Hankel entries that hold x[i, j, k], i.e.
    the outer product of the three tent sequences. Strictly positive, so it
    can be used as an elementwise divisor when folding a lifted matrix back.
    """
    n1, n2, n3 = shape
    return np.einsum('i,j,k->ijk', tent(n1), tent(n2), tent(n3))


def block_indices(shape: Shape3, block_shape: Shape3, offset: Shape3 = (0, 0, 0)) -> np.ndarray:
    """
    Linear index table of a rectangular block inside a tensor.

    Entry t of the result is the C-order linear index, in a tensor of
    ``shape``, of the t-th (C-order) element of the block of size
    ``block_shape`` anchored at ``offset``.

    Parameters
    ----------
    shape : tuple of int
        Full tensor shape (n1, n2, n3)
    block_shape : tuple of int
        Block extents (s1, s2, s3)
    offset : tuple of int, default=(0, 0, 0)
        Block origin inside the tensor

    Returns
    -------
    index : np.ndarray
        Integer array of length s1 * s2 * s3

    Raises
    ------
    ValueError
        If the block does not fit inside the tensor

    Examples
    --------
    >>> block_indices((3, 3, 3), (2, 2, 2), (1, 1, 1))
    array([13, 14, 16, 17, 22, 23, 25, 26])
    """
    _, n2, n3 = shape
    s1, s2, s3 = block_shape
    o1, o2, o3 = offset

    for axis, (n, s, o) in enumerate(zip(shape, block_shape, offset)):
        if o < 0 or o + s > n:
            raise ValueError(
                f"Block of extent {s} at offset {o} does not fit axis {axis} of length {n}"
            )

    index = np.zeros(s1 * s2 * s3, dtype=np.intp)
    for i in range(s1):
        ix = i * s2 * s3
        ixx = (o1 + i) * n2 * n3
        for j in range(s2):
            start = ixx + (o2 + j) * n3 + o3
            index[ix + j * s3 : ix + (j + 1) * s3] = np.arange(start, start + s3)

    return index


@dataclass(frozen=True, eq=False)
class HankelPlan:
    """
    Precomputed geometry of the Hankel lifting for a fixed tensor shape.

    Attributes
    ----------
    shape : tuple of int
        Tensor shape (n1, n2, n3)
    p, q : tuple of int
        Row and column block extents per axis
    l1, l2 : int
        Number of Hankel rows (prod(p)) and columns (prod(q))
    dd : np.ndarray
        Multiplicity tensor, shape (n1, n2, n3)
    epsilon : float
        Rank truncation threshold, spacing of the float l1 * l2
    symmetric : bool
        True when all axes are odd; the lifting is then complex symmetric
        (p == q) and a single basis U describes both sides
    ind1 : np.ndarray
        q-block at the origin (length l2), forward source
    ind2 : np.ndarray
        p-block at offset q - 1 (length l1), forward target
    ind3, ind4 : np.ndarray or None
        p-block at the origin and q-block at offset p - 1, adjoint
        source/target; None for symmetric plans, which reuse ind1/ind2
    """

    shape: Shape3
    p: Shape3
    q: Shape3
    l1: int
    l2: int
    dd: np.ndarray
    epsilon: float
    symmetric: bool
    ind1: np.ndarray
    ind2: np.ndarray
    ind3: Optional[np.ndarray] = None
    ind4: Optional[np.ndarray] = None

    @property
    def size(self) -> int:
        """Number of tensor entries N = n1 * n2 * n3."""
        return int(np.prod(self.shape))

    @property
    def adjoint_source(self) -> np.ndarray:
        """Index map of the p-block the adjoint product reads its input from."""
        return self.ind1 if self.symmetric else self.ind3

    @property
    def adjoint_target(self) -> np.ndarray:
        """Index map of the q-block the adjoint product gathers its output from."""
        return self.ind2 if self.symmetric else self.ind4

    def __repr__(self) -> str:
        kind = "symmetric" if self.symmetric else "general"
        return (
            f"HankelPlan(shape={self.shape}, p={self.p}, q={self.q}, "
            f"l1={self.l1}, l2={self.l2}, {kind})"
        )


def plan_hankel(n1: int, n2: int, n3: int) -> HankelPlan:
    """
    Build the HankelPlan for a tensor of shape (n1, n2, n3).

    Parameters
    ----------
    n1, n2, n3 : int
        Tensor dimensions (each >= 1)

    Returns
    -------
    plan : HankelPlan

    Raises
    ------
    ValueError
        If a dimension is not a positive integer

    Examples
    --------
    >>> plan = plan_hankel(5, 5, 5)
    >>> plan.symmetric, plan.l1, plan.l2
    (True, 27, 27)
    >>> plan = plan_hankel(4, 5, 5)
    >>> plan.symmetric, plan.p, plan.q
    (False, (2, 3, 3), (3, 3, 3))
    """
    shape = (int(n1), int(n2), int(n3))
    halves = [half_dimensions(n) for n in shape]
    p = tuple(h[0] for h in halves)
    q = tuple(h[1] for h in halves)

    l1 = int(np.prod(p))
    l2 = int(np.prod(q))

    symmetric = all(n % 2 for n in shape)

    ind1 = block_indices(shape, q)
    ind2 = block_indices(shape, p, tuple(qk - 1 for qk in q))

    if symmetric:
        ind3 = ind4 = None
    else:
        ind3 = block_indices(shape, p)
        ind4 = block_indices(shape, q, tuple(pk - 1 for pk in p))

    return HankelPlan(
        shape=shape,
        p=p,
        q=q,
        l1=l1,
        l2=l2,
        dd=multiplicity_tensor(shape),
        epsilon=float(np.spacing(float(l1 * l2))),
        symmetric=symmetric,
        ind1=ind1,
        ind2=ind2,
        ind3=ind3,
        ind4=ind4,
    )
