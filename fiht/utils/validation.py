"""
Argument validation for FIHT reconstruction.

Observation Conventions
-----------------------
Observed entries of a tensor x of shape (n1, n2, n3) are given as two
matching 1-D arrays:

obs:
    - shape (m,), real or complex values x.ravel()[K]

K (indices):
    - shape (m,), unique integer linear indices in [0, n1 * n2 * n3)
    - C (row-major) order, i.e. np.ravel_multi_index((i, j, k), shape)

Every check runs before any computation; failures raise ValueError.
"""

from typing import Sequence, Tuple

import numpy as np

from fiht.planner import HankelPlan


def validate_shape(shape: Sequence[int]) -> Tuple[int, int, int]:
    """
    Validate a 3-D tensor shape.

    Parameters
    ----------
    shape : sequence of int
        (n1, n2, n3)

    Returns
    -------
    shape : tuple of int

    Raises
    ------
    ValueError
        If shape does not have three positive integer entries

    Examples
    --------
    >>> validate_shape([4, 5, 6])
    (4, 5, 6)
    """
    shape = tuple(shape)
    if len(shape) != 3:
        raise ValueError(f"Shape must have 3 dimensions (n1, n2, n3), got {shape}")

    for n in shape:
        if int(n) != n or n < 1:
            raise ValueError(f"Dimensions must be positive integers, got {shape}")

    return tuple(int(n) for n in shape)


def validate_observations(
    obs: np.ndarray, indices: np.ndarray, shape: Tuple[int, int, int]
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Validate observed values and their linear indices.

    Parameters
    ----------
    obs : array_like
        Observed values, shape (m,)
    indices : array_like
        Linear indices of the observations, shape (m,)
    shape : tuple of int
        Tensor shape (n1, n2, n3)

    Returns
    -------
    obs : np.ndarray
        Complex copy of the observations
    indices : np.ndarray
        Integer (np.intp) copy of the indices

    Raises
    ------
    ValueError
        If arrays are not 1-D, lengths differ, the set is empty, values are
        not finite, or indices are non-integer, out of range or repeated

    Examples
    --------
    >>> obs, K = validate_observations([1.0, 2.0], [0, 7], (2, 2, 2))
    >>> obs.dtype, K.tolist()
    (dtype('complex128'), [0, 7])

    >>> validate_observations([1.0], [8], (2, 2, 2))  # Raises ValueError
    """
    obs = np.array(obs, dtype=np.complex128)
    indices = np.asarray(indices)

    if obs.ndim != 1:
        raise ValueError(f"obs must be 1D (m,), got shape {obs.shape}")
    if indices.ndim != 1:
        raise ValueError(f"Indices must be 1D (m,), got shape {indices.shape}")

    if obs.shape[0] != indices.shape[0]:
        raise ValueError(
            f"obs and indices must have same length, got {obs.shape[0]} and {indices.shape[0]}"
        )
    if obs.shape[0] == 0:
        raise ValueError("At least one observation is required (m=0)")

    if not np.all(np.isfinite(obs)):
        raise ValueError("obs must contain only finite values")

    if not np.issubdtype(indices.dtype, np.integer):
        raise ValueError(f"Indices must be integers, got dtype {indices.dtype}")

    N = int(np.prod(shape))
    if indices.min() < 0 or indices.max() >= N:
        raise ValueError(
            f"Indices must lie in [0, {N}) for shape {shape}, "
            f"got range [{indices.min()}, {indices.max()}]"
        )

    if np.unique(indices).shape[0] != indices.shape[0]:
        raise ValueError("Indices must be unique")

    return obs, indices.astype(np.intp)


def validate_rank(rank: int, plan: HankelPlan) -> int:
    """
    Validate the model order against the Hankel matrix size.

    The Hankel matrix has at most min(l1, l2) singular values, so
    1 <= rank <= min(l1, l2).

    Raises
    ------
    ValueError
        If rank is not an integer in that range
    """
    if int(rank) != rank:
        raise ValueError(f"rank must be an integer, got {rank}")

    rank = int(rank)
    limit = min(plan.l1, plan.l2)
    if rank < 1 or rank > limit:
        raise ValueError(
            f"rank must satisfy 1 <= rank <= {limit} for shape {plan.shape} "
            f"(Hankel matrix {plan.l1} x {plan.l2}), got {rank}"
        )

    return rank
